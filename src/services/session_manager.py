"""
Session lifecycle service.

Owns create / get / update / delete for the per-user session record.
Expiry is enforced twice against the same store primitive
(``delete_inactive``): lazily on every read, and by a periodic sweep that
removes sessions nobody reads again.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from models.session import CreationDraft, OperationDraft, Session, SessionDraft, WorkflowState
from repositories.audit_repo import AuditLog
from repositories.session_repo import SessionStore
from utils.clock import utcnow
from utils.error_handling import SessionExpiredError, SessionNotFoundError, StorageError
from utils.logging_config import get_logger

logger = get_logger(__name__)

SESSION_CREATED = "SESSION_CREATED"
SESSION_DELETED = "SESSION_DELETED"
SESSION_EXPIRED = "SESSION_EXPIRED"


class SessionManager:
    """Per-user session lifecycle on top of a ``SessionStore``."""

    def __init__(
        self,
        store: SessionStore,
        timeout_minutes: int = 30,
        audit: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.timeout_minutes = timeout_minutes
        self.audit = audit
        self.clock = clock
        self._sweeper: Optional[threading.Thread] = None
        self._stop_sweeper = threading.Event()

    def create(self, user_id: str) -> Session:
        """Start a fresh Idle session, replacing whatever the user had."""
        now = self.clock()
        session = Session(user_id=user_id, created_at=now, last_activity=now)
        self.store.put(session)
        self._audit(user_id, SESSION_CREATED)
        return session

    def get(self, user_id: str) -> Optional[Session]:
        """Return the live session, or None if absent or timed out."""
        try:
            return self.require(user_id)
        except SessionNotFoundError:
            return None

    def require(self, user_id: str) -> Session:
        """
        Return the live session or raise.

        A timed-out session is deleted here and reported as
        ``SessionExpiredError``; callers may treat both errors alike.
        """
        session = self.store.get(user_id)
        if session is None:
            raise SessionNotFoundError(user_id)
        if not session.is_expired(self.clock(), self.timeout_minutes):
            return session

        # Conditional on last_activity so a concurrent refresh is not lost.
        if self.store.delete_inactive(self._cutoff(), user_id=user_id):
            logger.info(
                "Session expired",
                extra={"user_id": user_id, "state": session.state.value},
            )
            self._audit(user_id, SESSION_EXPIRED)
        raise SessionExpiredError(user_id)

    def update(
        self,
        user_id: str,
        state: Optional[WorkflowState] = None,
        draft: Optional[Dict[str, Any]] = None,
        *,
        new_draft: Optional[SessionDraft] = None,
        reset_draft: bool = False,
    ) -> Session:
        """
        Apply a partial change and refresh ``last_activity``.

        ``draft`` is shallow-merged into the current draft: keys it names
        overwrite, everything else is kept. ``new_draft`` replaces the draft
        outright and ``reset_draft`` clears it.
        """
        session = self.require(user_id)

        changes: Dict[str, Any] = {"last_activity": self.clock()}
        if state is not None:
            changes["state"] = state
        if reset_draft:
            changes["draft"] = None
        elif new_draft is not None:
            changes["draft"] = new_draft
        elif draft:
            changes["draft"] = _merge_draft(session.draft, draft)

        updated = session.model_copy(update=changes)
        if not self.store.update(updated):
            # Swept between our read and write; leave it gone.
            raise SessionNotFoundError(user_id)
        return updated

    def reset(self, user_id: str) -> Session:
        """Return the session to Idle with an empty draft."""
        return self.update(user_id, state=WorkflowState.IDLE, reset_draft=True)

    def delete(self, user_id: str) -> None:
        """Remove the session; deleting a missing one is a no-op."""
        if self.store.delete(user_id):
            self._audit(user_id, SESSION_DELETED)

    def sweep_expired(self) -> int:
        """Delete every session idle past the timeout. Returns the count."""
        removed = self.store.delete_inactive(self._cutoff())
        if removed:
            logger.info("Expired sessions swept", extra={"removed": removed})
        return removed

    def start_sweeper(self, interval_seconds: int = 300) -> None:
        """Run ``sweep_expired`` on a daemon thread every ``interval_seconds``."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_sweeper.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval_seconds,),
            name="session-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.info("Session sweeper started", extra={"interval_seconds": interval_seconds})

    def stop_sweeper(self, timeout: Optional[float] = None) -> None:
        self._stop_sweeper.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None

    def _sweep_loop(self, interval_seconds: int) -> None:
        while not self._stop_sweeper.wait(interval_seconds):
            try:
                self.sweep_expired()
            except StorageError as exc:
                # Next tick tries again; request-path lazy expiry still holds.
                logger.warning("Session sweep failed", extra={"error": str(exc)})

    def _cutoff(self) -> datetime:
        return self.clock() - timedelta(minutes=self.timeout_minutes)

    def _audit(self, user_id: str, action: str) -> None:
        if self.audit is not None:
            self.audit.record(user_id, action, self.clock())
        else:
            logger.info("Session lifecycle", extra={"user_id": user_id, "action": action})


def _merge_draft(current: Optional[SessionDraft], changes: Dict[str, Any]) -> SessionDraft:
    """Shallow merge preserving the draft's kind."""
    if current is None:
        kind = OperationDraft if "operation" in changes else CreationDraft
        return kind.model_validate(changes)
    return type(current).model_validate({**current.model_dump(), **changes})
