"""Audit trail of session and ticket lifecycle events."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from repositories.database import audit_log, storage_errors
from utils.logging_config import get_logger

logger = get_logger(__name__)


class AuditLog:
    """Append-only log; every entry is also emitted as a structured log line."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def record(
        self, user_id: str, action: str, now: datetime, details: Optional[str] = None
    ) -> None:
        logger.info(
            "Audit event", extra={"user_id": user_id, "action": action, "details": details}
        )
        with storage_errors("audit.record"):
            with self.engine.begin() as conn:
                conn.execute(
                    insert(audit_log).values(
                        user_id=user_id, action=action, details=details, created_at=now
                    )
                )

    def actions_for(self, user_id: str, limit: int = 50) -> List[str]:
        """Most recent actions for a user, oldest first."""
        stmt = (
            select(audit_log.c.action)
            .where(audit_log.c.user_id == user_id)
            .order_by(audit_log.c.id.desc())
            .limit(limit)
        )
        with storage_errors("audit.actions_for"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        return [row.action for row in reversed(rows)]
