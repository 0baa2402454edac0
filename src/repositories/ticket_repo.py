"""Ticket record repository using SQLAlchemy Core."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Engine

from models.ticket import TicketRecord, TicketStatus, TrackerTicket
from repositories.database import storage_errors, ticket_records
from utils.error_handling import InvalidTransitionError, NotFoundError


class TicketRecordRepository:
    """Keeps SQL organized and enforces forward-only status changes."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def insert(self, record: TicketRecord) -> TicketRecord:
        values = record.model_dump()
        values["label"] = record.label.value
        values["priority"] = record.priority.value
        values["status"] = record.status.value
        with storage_errors("ticket.insert"):
            with self.engine.begin() as conn:
                conn.execute(insert(ticket_records).values(**values))
        return record

    def get(self, record_id: str) -> Optional[TicketRecord]:
        stmt = select(ticket_records).where(ticket_records.c.id == record_id)
        with storage_errors("ticket.get"):
            with self.engine.connect() as conn:
                row = conn.execute(stmt).fetchone()
        return TicketRecord.model_validate(dict(row._mapping)) if row else None

    def transition(
        self,
        record_id: str,
        status: TicketStatus,
        *,
        tracker: Optional[TrackerTicket] = None,
        submitted_at: Optional[datetime] = None,
    ) -> TicketRecord:
        """Move a record forward, optionally attaching the tracker identity."""
        values = {"status": status.value}
        if tracker is not None:
            values.update(
                tracker_id=tracker.external_id,
                tracker_identifier=tracker.identifier,
                tracker_url=tracker.url,
            )
        if submitted_at is not None:
            values["submitted_at"] = submitted_at

        with storage_errors("ticket.transition"):
            with self.engine.begin() as conn:
                current = conn.execute(
                    select(ticket_records.c.status).where(ticket_records.c.id == record_id)
                ).scalar()
                if current is None:
                    raise NotFoundError(f"Ticket record {record_id} not found")
                if not TicketStatus(current).can_transition_to(status):
                    raise InvalidTransitionError(current, status.value)
                # Guarded on the status read above so racing writers cannot both win.
                result = conn.execute(
                    update(ticket_records)
                    .where(ticket_records.c.id == record_id)
                    .where(ticket_records.c.status == current)
                    .values(**values)
                )
                if result.rowcount == 0:
                    raise InvalidTransitionError(current, status.value)

        return self.get(record_id)

    def title_exists_since(
        self, title: str, since: datetime, statuses: Iterable[TicketStatus]
    ) -> bool:
        stmt = (
            select(func.count())
            .select_from(ticket_records)
            .where(ticket_records.c.title == title)
            .where(ticket_records.c.created_at >= since)
            .where(ticket_records.c.status.in_([s.value for s in statuses]))
        )
        with storage_errors("ticket.title_exists_since"):
            with self.engine.connect() as conn:
                return (conn.execute(stmt).scalar() or 0) > 0

    def list_by_status(self, status: TicketStatus, limit: int = 50) -> List[TicketRecord]:
        stmt = (
            select(ticket_records)
            .where(ticket_records.c.status == status.value)
            .order_by(ticket_records.c.created_at.desc())
            .limit(limit)
        )
        with storage_errors("ticket.list_by_status"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        return [TicketRecord.model_validate(dict(row._mapping)) for row in rows]
