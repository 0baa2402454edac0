"""
Maintenance handlers, invoked by scheduled rules or an operator.

- POST /maintenance/sweep: delete expired sessions.
- POST /maintenance/reset-counters: daily reset of per-user ticket counts.
- POST /maintenance/retry/{record_id}: one more tracker attempt for a failed record.
- GET /maintenance/failed: failed records waiting for a retry, newest first.
- GET /maintenance/usage/{user_id}: a user's daily and lifetime ticket counts.
"""

import json

from models.ticket import TicketStatus
from utils.error_handling import AppError, to_response
from utils.logging_config import get_logger

logger = get_logger(__name__)

RETRY_PREFIX = "/maintenance/retry/"
USAGE_PREFIX = "/maintenance/usage/"


def _get_container():
    from services.container import get_container

    return get_container()


def _path_param(event, name, prefix):
    path = event.get("requestContext", {}).get("http", {}).get("path", "")
    return (event.get("pathParameters") or {}).get(name) or path[len(prefix):]


def _ok(body):
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def sweep_handler(event, context):
    """Delete every session idle past the timeout."""
    try:
        removed = _get_container().sessions.sweep_expired()
    except AppError as exc:
        logger.error("Session sweep failed", extra={"error": str(exc)})
        return to_response(exc)
    return _ok({"status": "ok", "removed": removed})


def reset_counters_handler(event, context):
    """Zero today's ticket counts; lifetime totals are kept."""
    try:
        reset = _get_container().rate_limiter.reset_all()
    except AppError as exc:
        logger.error("Counter reset failed", extra={"error": str(exc)})
        return to_response(exc)
    return _ok({"status": "ok", "reset": reset})


def retry_handler(event, context):
    """Retry tracker creation for a failed ticket record."""
    record_id = _path_param(event, "record_id", RETRY_PREFIX)
    if not record_id:
        return to_response(AppError("record_id is required", status_code=400))

    try:
        result = _get_container().submitter.retry(record_id)
    except AppError as exc:
        logger.warning("Retry refused", extra={"record_id": record_id, "error": str(exc)})
        return to_response(exc)

    logger.info(
        "Retry finished",
        extra={"record_id": record_id, "outcome": result.outcome.value},
    )
    return _ok(
        {
            "status": "ok" if result.created else "failed",
            "outcome": result.outcome.value,
            "record": result.record.model_dump(mode="json"),
            "reason": result.reason,
        }
    )


def failed_records_handler(event, context):
    """List failed records so an operator can pick one to retry."""
    params = event.get("queryStringParameters") or {}
    try:
        limit = int(params.get("limit", 50))
    except ValueError:
        return to_response(AppError("limit must be an integer", status_code=400))

    try:
        records = _get_container().submitter.tickets.list_by_status(TicketStatus.FAILED, limit)
    except AppError as exc:
        logger.error("Failed-record listing failed", extra={"error": str(exc)})
        return to_response(exc)
    return _ok(
        {
            "status": "ok",
            "count": len(records),
            "records": [record.model_dump(mode="json") for record in records],
        }
    )


def usage_handler(event, context):
    """Report a user's ticket counts against the daily limit."""
    user_id = _path_param(event, "user_id", USAGE_PREFIX)
    if not user_id:
        return to_response(AppError("user_id is required", status_code=400))

    limiter = _get_container().rate_limiter
    try:
        body = {
            "user_id": user_id,
            "tickets_today": limiter.count_today(user_id),
            "tickets_total": limiter.total(user_id),
            "limit": limiter.max_per_day,
        }
    except AppError as exc:
        logger.error("Usage lookup failed", extra={"user_id": user_id, "error": str(exc)})
        return to_response(exc)
    return _ok(body)
