"""Ticket models."""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel


class TicketLabel(str, Enum):
    """Request categories; the category step and the label step share them."""

    BUG = "Bug"
    IMPROVEMENT = "Improvement"
    REQUEST = "Request"

    @property
    def offers_template(self) -> bool:
        return self is TicketLabel.BUG


class TicketPriority(str, Enum):
    """Priority levels as shown to the requester."""

    URGENT = "Urgent"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def tracker_value(self) -> int:
        """Numeric priority used by the tracker (1 = most urgent)."""
        return _TRACKER_PRIORITY[self]


_TRACKER_PRIORITY: Dict[TicketPriority, int] = {
    TicketPriority.URGENT: 1,
    TicketPriority.HIGH: 2,
    TicketPriority.MEDIUM: 3,
    TicketPriority.LOW: 4,
}


class TicketStatus(str, Enum):
    """Lifecycle of a persisted ticket record."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    CREATED = "created"
    FAILED = "failed"

    def can_transition_to(self, target: "TicketStatus") -> bool:
        return target in _FORWARD[self]


# failed -> created is only reachable through an explicit retry.
_FORWARD: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.DRAFT: frozenset({TicketStatus.SUBMITTED}),
    TicketStatus.SUBMITTED: frozenset({TicketStatus.CREATED, TicketStatus.FAILED}),
    TicketStatus.CREATED: frozenset(),
    TicketStatus.FAILED: frozenset({TicketStatus.CREATED}),
}


class TicketRecord(BaseModel):
    """Persisted copy of a confirmed draft and its tracker outcome."""

    id: str
    requester_id: str
    title: str
    description: str
    label: TicketLabel
    priority: TicketPriority
    status: TicketStatus = TicketStatus.DRAFT
    tracker_id: Optional[str] = None
    tracker_identifier: Optional[str] = None
    tracker_url: Optional[str] = None
    created_at: datetime
    submitted_at: Optional[datetime] = None


class TrackerTicket(BaseModel):
    """Identity of an issue as returned by the tracker."""

    external_id: str
    identifier: str
    url: str


class TrackerComment(BaseModel):
    """Comment created on a tracker issue."""

    id: str
    body: str
    created_at: Optional[datetime] = None
    author_name: Optional[str] = None
    issue_identifier: Optional[str] = None
