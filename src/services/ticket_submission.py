"""
Ticket submission: turns a confirmed draft into a ticket record and a
tracker issue.

The record is written before the tracker is called, so a tracker failure
still leaves a ``failed`` record that can be retried explicitly later.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from models.events import Outcome
from models.session import CreationDraft
from models.ticket import TicketRecord, TicketStatus
from repositories.audit_repo import AuditLog
from repositories.ticket_repo import TicketRecordRepository
from services.rate_limiter import RateLimiter
from services.tracker_gateway import TrackerGateway
from utils.clock import utcnow
from utils.error_handling import (
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    TrackerError,
    TrackerRejectedError,
)
from utils.logging_config import get_logger

logger = get_logger(__name__)

TICKET_CREATED = "TICKET_CREATED"
TICKET_FAILED = "TICKET_FAILED"
TICKET_RETRIED = "TICKET_RETRIED"


@dataclass
class SubmissionResult:
    """Outcome of one tracker attempt for one record."""

    outcome: Outcome
    record: TicketRecord
    reason: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.outcome is Outcome.TICKET_CREATED


class TicketSubmitter:
    """Creates records and issues; exactly one tracker call per attempt."""

    def __init__(
        self,
        tickets: TicketRecordRepository,
        gateway: TrackerGateway,
        rate_limiter: RateLimiter,
        audit: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tickets = tickets
        self.gateway = gateway
        self.rate_limiter = rate_limiter
        self.audit = audit
        self.clock = clock

    def submit(self, user_id: str, draft: CreationDraft) -> SubmissionResult:
        """Persist the draft, submit it, and record what the tracker said."""
        now = self.clock()
        record = self.tickets.insert(
            TicketRecord(
                id=str(uuid.uuid4()),
                requester_id=user_id,
                title=draft.title,
                description=draft.description,
                label=draft.label,
                priority=draft.priority,
                created_at=now,
            )
        )
        record = self.tickets.transition(record.id, TicketStatus.SUBMITTED, submitted_at=now)
        return self._attempt(record, TICKET_CREATED)

    def retry(self, record_id: str) -> SubmissionResult:
        """Give a failed record one more tracker attempt."""
        record = self.tickets.get(record_id)
        if record is None:
            raise NotFoundError(f"Ticket record {record_id} not found")
        if record.status is not TicketStatus.FAILED:
            raise InvalidTransitionError(record.status.value, TicketStatus.CREATED.value)
        return self._attempt(record, TICKET_RETRIED)

    def _attempt(self, record: TicketRecord, success_action: str) -> SubmissionResult:
        try:
            tracker_ticket = self.gateway.create_ticket(record)
        except TrackerError as exc:
            outcome = (
                Outcome.TRACKER_REJECTED
                if isinstance(exc, TrackerRejectedError)
                else Outcome.TRACKER_UNAVAILABLE
            )
            if record.status is not TicketStatus.FAILED:
                record = self.tickets.transition(record.id, TicketStatus.FAILED)
            logger.warning(
                "Tracker submission failed",
                extra={"record_id": record.id, "outcome": outcome.value, "error": str(exc)},
            )
            self._audit(record, TICKET_FAILED, str(exc))
            return SubmissionResult(outcome=outcome, record=record, reason=str(exc))

        created = record.model_copy(
            update={
                "status": TicketStatus.CREATED,
                "tracker_id": tracker_ticket.external_id,
                "tracker_identifier": tracker_ticket.identifier,
                "tracker_url": tracker_ticket.url,
            }
        )
        try:
            created = self.tickets.transition(
                record.id, TicketStatus.CREATED, tracker=tracker_ticket
            )
            self.rate_limiter.increment(record.requester_id)
            self._audit(created, success_action, tracker_ticket.identifier)
        except StorageError as exc:
            # The issue exists upstream; report it as created so nobody files it twice.
            logger.error(
                "Ticket bookkeeping failed after tracker creation",
                extra={
                    "record_id": record.id,
                    "identifier": tracker_ticket.identifier,
                    "error": str(exc),
                },
            )
            return SubmissionResult(
                outcome=Outcome.TICKET_CREATED, record=created, reason=str(exc)
            )
        return SubmissionResult(outcome=Outcome.TICKET_CREATED, record=created)

    def _audit(self, record: TicketRecord, action: str, details: Optional[str]) -> None:
        if self.audit is not None:
            self.audit.record(record.requester_id, action, self.clock(), f"{record.id} {details}")
        else:
            logger.info(
                "Ticket lifecycle",
                extra={"record_id": record.id, "action": action, "details": details},
            )
