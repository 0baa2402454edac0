"""Custom exceptions and helpers for consistent error responses."""

import json
from typing import Any, Dict


class AppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Raised when a requested resource is missing."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class SessionNotFoundError(NotFoundError):
    """No live session exists for the user."""

    def __init__(self, user_id: str, message: str = "Session not found"):
        super().__init__(message)
        self.user_id = user_id


class SessionExpiredError(SessionNotFoundError):
    """The session existed but timed out; callers treat it as not found."""

    def __init__(self, user_id: str):
        super().__init__(user_id, message="Session expired")


class RateLimitExceededError(AppError):
    """The user has used up today's ticket allowance."""

    def __init__(self, user_id: str, limit: int):
        super().__init__(f"Daily limit of {limit} tickets reached", status_code=429)
        self.user_id = user_id
        self.limit = limit


class InvalidTransitionError(AppError):
    """A ticket record was asked to move to a status it cannot reach."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move ticket from {current} to {target}", status_code=409)


class TrackerError(AppError):
    """Base class for failures talking to the issue tracker."""


class TrackerUnavailableError(TrackerError):
    """Tracker unreachable, timed out or answered with a server error."""

    def __init__(self, message: str = "Issue tracker unavailable"):
        super().__init__(message, status_code=503)


class TrackerRejectedError(TrackerError):
    """Tracker understood the request and refused it."""

    def __init__(self, message: str = "Issue tracker rejected the request"):
        super().__init__(message, status_code=502)


class StorageError(AppError):
    """Persistence backend failed; the in-flight event is abandoned."""

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, status_code=500)


class ConfigurationError(AppError):
    """Settings are incomplete for the requested wiring."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


def to_response(error: AppError) -> Dict[str, Any]:
    """Convert an AppError into a Lambda proxy integration response."""
    return {
        "statusCode": error.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"message": str(error), "status": "error"}),
    }
