"""
Service wiring.

Builds the object graph once per process from ``Settings``. Handlers reach it
through ``get_container()`` so the first invocation pays the setup cost and
warm invocations reuse the engine, stores and HTTP client.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from config.settings import Settings
from models.ticket import TicketLabel, TicketPriority
from repositories.audit_repo import AuditLog
from repositories.counter_repo import RateCounterRepository
from repositories.database import create_db_engine, init_schema, resolve_db_url
from repositories.dynamodb_repo import DynamoDbSessionStore
from repositories.session_repo import SessionStore, SqlSessionStore
from repositories.ticket_repo import TicketRecordRepository
from services.duplicate_detector import DuplicateDetector
from services.rate_limiter import RateLimiter
from services.session_manager import SessionManager
from services.ticket_submission import TicketSubmitter
from services.ticket_workflow import TicketWorkflow
from services.tracker_gateway import LabelDirectory, LinearGateway, OfflineGateway, TrackerGateway
from utils.error_handling import ConfigurationError
from utils.logging_config import get_logger
from utils.user_locks import UserLockRegistry

logger = get_logger(__name__)

_container: Optional["ServiceContainer"] = None


@dataclass
class ServiceContainer:
    settings: Settings
    sessions: SessionManager
    rate_limiter: RateLimiter
    submitter: TicketSubmitter
    gateway: TrackerGateway
    workflow: TicketWorkflow

    def close(self) -> None:
        """Stop the sweeper and release the tracker client."""
        self.sessions.stop_sweeper(timeout=5)
        close = getattr(self.gateway, "close", None)
        if close is not None:
            close()


def build_gateway(settings: Settings) -> TrackerGateway:
    """Linear when an API key is configured, otherwise the offline gateway."""
    if not settings.tracker_enabled:
        logger.warning("LINEAR_API_KEY not set; tickets will only be recorded locally")
        return OfflineGateway()

    missing = settings.missing_tracker_fields()
    if missing:
        raise ConfigurationError(f"Missing tracker settings: {', '.join(missing)}")

    labels = LabelDirectory(
        {
            TicketLabel.BUG: settings.tracker_label_bug,
            TicketLabel.IMPROVEMENT: settings.tracker_label_improvement,
            TicketLabel.REQUEST: settings.tracker_label_request,
        }
    )
    return LinearGateway(
        api_key=settings.tracker_api_key,
        team_id=settings.tracker_team_id,
        project_id=settings.tracker_project_id,
        assignee_id=settings.tracker_assignee_id,
        labels=labels,
        api_url=settings.tracker_api_url,
        timeout_seconds=settings.tracker_timeout_seconds,
    )


def build_container(
    settings: Settings, gateway: Optional[TrackerGateway] = None
) -> ServiceContainer:
    """Wire every service against the configured backends."""
    engine = create_db_engine(resolve_db_url(settings.database_url))
    init_schema(engine)

    store: SessionStore
    if settings.session_backend == "dynamodb":
        store = DynamoDbSessionStore(settings.sessions_table)
    elif settings.session_backend == "sql":
        store = SqlSessionStore(engine)
    else:
        raise ConfigurationError(f"Unknown session backend: {settings.session_backend}")

    audit = AuditLog(engine)
    tickets = TicketRecordRepository(engine)
    gateway = gateway or build_gateway(settings)

    sessions = SessionManager(store, settings.session_timeout_minutes, audit=audit)
    rate_limiter = RateLimiter(RateCounterRepository(engine), settings.max_tickets_per_day)
    submitter = TicketSubmitter(tickets, gateway, rate_limiter, audit=audit)
    workflow = TicketWorkflow(
        sessions,
        rate_limiter,
        DuplicateDetector(tickets, settings.duplicate_window_days),
        submitter,
        gateway,
        UserLockRegistry(),
        description_min_length=settings.description_min_length,
        default_priority=TicketPriority(settings.default_priority),
        streamlined_flow=settings.streamlined_flow,
        reviewer_channel=settings.reviewer_channel,
    )
    if settings.sweep_interval_seconds > 0:
        sessions.start_sweeper(settings.sweep_interval_seconds)

    logger.info(
        "Services wired",
        extra={
            "environment": settings.environment,
            "session_backend": settings.session_backend,
            "tracker": type(gateway).__name__,
            "sweep_interval_seconds": settings.sweep_interval_seconds,
        },
    )
    return ServiceContainer(
        settings=settings,
        sessions=sessions,
        rate_limiter=rate_limiter,
        submitter=submitter,
        gateway=gateway,
        workflow=workflow,
    )


def get_container() -> ServiceContainer:
    """Lazy-load the process-wide container."""
    global _container
    if _container is None:
        _container = build_container(Settings.from_environment())
    return _container


def set_container(container: Optional[ServiceContainer]) -> None:
    """Replace (or clear) the process-wide container, e.g. in tests."""
    global _container
    if _container is not None and _container is not container:
        _container.close()
    _container = container
