"""Session persistence: the store contract and its SQL implementation."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine

from models.session import Session, WorkflowState, parse_draft
from repositories.database import sessions, storage_errors


class SessionStore(Protocol):
    """Durable map of user id -> one session record."""

    def get(self, user_id: str) -> Optional[Session]: ...

    def put(self, session: Session) -> None:
        """Insert or fully replace the user's record."""

    def update(self, session: Session) -> bool:
        """Overwrite an existing record; False when it no longer exists."""

    def delete(self, user_id: str) -> bool: ...

    def delete_inactive(self, cutoff: datetime, user_id: Optional[str] = None) -> int:
        """Delete records whose last activity is older than ``cutoff``."""


class SqlSessionStore:
    """Sessions table accessed through SQLAlchemy Core."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self, user_id: str) -> Optional[Session]:
        stmt = select(sessions).where(sessions.c.user_id == user_id)
        with storage_errors("session.get"):
            with self.engine.connect() as conn:
                row = conn.execute(stmt).fetchone()
        return _row_to_session(row._mapping) if row else None

    def put(self, session: Session) -> None:
        with storage_errors("session.put"):
            with self.engine.begin() as conn:
                conn.execute(delete(sessions).where(sessions.c.user_id == session.user_id))
                conn.execute(insert(sessions).values(**_session_to_row(session)))

    def update(self, session: Session) -> bool:
        values = _session_to_row(session)
        values.pop("user_id")
        stmt = update(sessions).where(sessions.c.user_id == session.user_id).values(**values)
        with storage_errors("session.update"):
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        return result.rowcount > 0

    def delete(self, user_id: str) -> bool:
        with storage_errors("session.delete"):
            with self.engine.begin() as conn:
                result = conn.execute(delete(sessions).where(sessions.c.user_id == user_id))
        return result.rowcount > 0

    def delete_inactive(self, cutoff: datetime, user_id: Optional[str] = None) -> int:
        stmt = delete(sessions).where(sessions.c.last_activity < cutoff)
        if user_id is not None:
            stmt = stmt.where(sessions.c.user_id == user_id)
        with storage_errors("session.delete_inactive"):
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
        return result.rowcount


def _session_to_row(session: Session) -> dict:
    return {
        "user_id": session.user_id,
        "state": session.state.value,
        "draft": json.dumps(session.draft_dict()) if session.draft else None,
        "last_activity": session.last_activity,
        "created_at": session.created_at,
    }


def _row_to_session(row) -> Session:
    return Session(
        user_id=row["user_id"],
        state=WorkflowState(row["state"]),
        draft=parse_draft(json.loads(row["draft"])) if row["draft"] else None,
        last_activity=row["last_activity"],
        created_at=row["created_at"],
    )
