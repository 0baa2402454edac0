"""Duplicate title check over recently submitted tickets."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable

from models.ticket import TicketStatus
from repositories.ticket_repo import TicketRecordRepository
from utils.clock import utcnow

# Failed records do not block a resubmission of the same title.
BLOCKING_STATUSES = (TicketStatus.SUBMITTED, TicketStatus.CREATED)


class DuplicateDetector:
    """Exact title match against any requester's tickets in a trailing window."""

    def __init__(
        self,
        tickets: TicketRecordRepository,
        window_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tickets = tickets
        self.window_days = window_days
        self.clock = clock

    def is_duplicate(self, title: str) -> bool:
        """``title`` must already be sanitized."""
        since = self.clock() - timedelta(days=self.window_days)
        return self.tickets.title_exists_since(title, since, BLOCKING_STATUSES)
