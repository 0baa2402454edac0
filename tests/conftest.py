"""
Pytest configuration and shared fixtures.

``src/`` is put on sys.path to mirror the Lambda layout, where the asset
root is ``src`` and modules import as ``handlers.*``, ``services.*`` etc.
Storage runs on in-memory SQLite and the tracker is an in-process fake, so
no test needs network or AWS access.
"""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

import boto3
import pytest


def _ensure_paths_on_sys_path() -> None:
    """Add src/ to sys.path if missing."""
    src_root = Path(__file__).resolve().parents[1] / "src"
    src_str = str(src_root)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)


_ensure_paths_on_sys_path()

# Offline-friendly defaults so nothing reaches AWS or the tracker.
os.environ.setdefault("AWS_REGION", "eu-west-2")
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-2")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_SESSION_TOKEN", "test")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_SWEEP_INTERVAL_SECONDS", "0")
os.environ.pop("LINEAR_API_KEY", None)
os.environ.pop("DB_SECRET_ARN", None)

boto3.setup_default_session(region_name="eu-west-2")

from models.session import CreationDraft  # noqa: E402
from models.ticket import TicketPriority, TicketRecord, TrackerComment, TrackerTicket  # noqa: E402
from repositories.audit_repo import AuditLog  # noqa: E402
from repositories.counter_repo import RateCounterRepository  # noqa: E402
from repositories.database import create_db_engine, init_schema  # noqa: E402
from repositories.session_repo import SqlSessionStore  # noqa: E402
from repositories.ticket_repo import TicketRecordRepository  # noqa: E402
from services.duplicate_detector import DuplicateDetector  # noqa: E402
from services.rate_limiter import RateLimiter  # noqa: E402
from services.session_manager import SessionManager  # noqa: E402
from services.ticket_submission import TicketSubmitter  # noqa: E402
from services.ticket_workflow import TicketWorkflow  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGateway:
    """Records every call; ``fail_with`` makes ``create_ticket`` raise."""

    def __init__(self):
        self.created: List[TicketRecord] = []
        self.status_updates: List[Tuple[str, str]] = []
        self.assignments: List[Tuple[str, str]] = []
        self.comments: List[Tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None
        self.operations_succeed = True
        self.next_ticket = TrackerTicket(
            external_id="abc", identifier="FAL-42", url="https://linear.app/acme/issue/FAL-42"
        )

    def create_ticket(self, record: TicketRecord) -> TrackerTicket:
        self.created.append(record)
        if self.fail_with is not None:
            raise self.fail_with
        return self.next_ticket

    def update_status(self, ticket_id: str, status_id: str) -> bool:
        self.status_updates.append((ticket_id, status_id))
        return self.operations_succeed

    def update_assignee(self, ticket_id: str, user_id: str) -> bool:
        self.assignments.append((ticket_id, user_id))
        return self.operations_succeed

    def add_comment(self, ticket_id: str, text: str) -> Optional[TrackerComment]:
        self.comments.append((ticket_id, text))
        if not self.operations_succeed:
            return None
        return TrackerComment(id="c-1", body=text, issue_identifier=ticket_id)


class Stack:
    """Fully wired services over one in-memory database."""

    def __init__(self, clock: FakeClock, gateway: FakeGateway, **workflow_options):
        self.clock = clock
        self.gateway = gateway
        self.engine = create_db_engine("sqlite://")
        init_schema(self.engine)
        self.audit = AuditLog(self.engine)
        self.store = SqlSessionStore(self.engine)
        self.tickets = TicketRecordRepository(self.engine)
        self.counters = RateCounterRepository(self.engine)
        self.sessions = SessionManager(self.store, 30, audit=self.audit, clock=clock)
        self.rate_limiter = RateLimiter(
            self.counters, workflow_options.pop("max_per_day", 5), clock=clock
        )
        self.duplicates = DuplicateDetector(self.tickets, 30, clock=clock)
        self.submitter = TicketSubmitter(
            self.tickets, gateway, self.rate_limiter, audit=self.audit, clock=clock
        )
        self.workflow = TicketWorkflow(
            self.sessions,
            self.rate_limiter,
            self.duplicates,
            self.submitter,
            gateway,
            **workflow_options,
        )

    def seed_ticket(self, title: str, age_days: int, status: str = "created") -> TicketRecord:
        """Insert a ticket record created ``age_days`` ago."""
        created_at = self.clock() - timedelta(days=age_days)
        record = TicketRecord(
            id=f"seed-{title[:8]}-{age_days}",
            requester_id="someone-else",
            title=title,
            description="Seeded description text",
            label="Bug",
            priority=TicketPriority.LOW,
            status=status,
            created_at=created_at,
        )
        return self.tickets.insert(record)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def make_stack(clock, gateway):
    """Factory so tests can choose workflow options (streamlined flow etc.)."""

    def _make(**workflow_options) -> Stack:
        return Stack(clock, gateway, **workflow_options)

    return _make


@pytest.fixture
def stack(make_stack):
    return make_stack()


@pytest.fixture
def complete_draft():
    return CreationDraft(
        title="Fix login crash on startup",
        description="The app crashes right after entering credentials.",
        label="Bug",
        priority=TicketPriority.HIGH,
    )
