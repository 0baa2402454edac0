"""
Environment-specific configuration settings.

Defaults keep a local run self-contained: SQLite storage and an offline
tracker gateway until LINEAR_API_KEY is provided.
"""

from dataclasses import dataclass
from typing import List, Optional
import os


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).strip().lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """Application settings with local-friendly defaults."""

    # Environment
    environment: str = "dev"

    # Storage
    database_url: str = "sqlite:///./data/intake.db"
    session_backend: str = "sql"  # sql | dynamodb
    sessions_table: str = "intake-sessions"

    # Sessions
    session_timeout_minutes: int = 30
    sweep_interval_seconds: int = 300  # 0 leaves sweeping to the scheduled handler

    # Intake rules
    max_tickets_per_day: int = 5
    duplicate_window_days: int = 30
    description_min_length: int = 10
    default_priority: str = "Medium"
    streamlined_flow: bool = True

    # Side-channel notification target for newly created tickets
    reviewer_channel: Optional[str] = None

    # Tracker (Linear)
    tracker_api_url: str = "https://api.linear.app/graphql"
    tracker_api_key: Optional[str] = None
    tracker_team_id: Optional[str] = None
    tracker_project_id: Optional[str] = None
    tracker_assignee_id: Optional[str] = None
    tracker_label_bug: Optional[str] = None
    tracker_label_improvement: Optional[str] = None
    tracker_label_request: Optional[str] = None
    tracker_timeout_seconds: float = 15.0

    @property
    def tracker_enabled(self) -> bool:
        return bool(self.tracker_api_key)

    def missing_tracker_fields(self) -> List[str]:
        """Names of tracker settings required once an API key is configured."""
        if not self.tracker_enabled:
            return []
        required = {
            "LINEAR_TEAM_ID": self.tracker_team_id,
            "LINEAR_PROJECT_ID": self.tracker_project_id,
            "LINEAR_ASSIGNEE_ID": self.tracker_assignee_id,
        }
        return [name for name, value in required.items() if not value]

    @classmethod
    def from_environment(cls) -> "Settings":
        """Load settings from environment variables."""
        env = os.environ.get
        database_url = env("DATABASE_URL") or cls.database_url

        return cls(
            environment=env("ENVIRONMENT", "dev"),
            database_url=database_url,
            session_backend=env("SESSION_BACKEND", "sql").lower(),
            sessions_table=env("SESSIONS_TABLE", cls.sessions_table),
            session_timeout_minutes=int(env("SESSION_TIMEOUT_MINUTES", "30")),
            sweep_interval_seconds=int(env("SESSION_SWEEP_INTERVAL_SECONDS", "300")),
            max_tickets_per_day=int(env("MAX_TICKETS_PER_DAY", "5")),
            duplicate_window_days=int(env("DUPLICATE_WINDOW_DAYS", "30")),
            description_min_length=int(env("DESCRIPTION_MIN_LENGTH", "10")),
            default_priority=env("DEFAULT_PRIORITY", "Medium"),
            streamlined_flow=_env_bool("STREAMLINED_FLOW", True),
            reviewer_channel=env("REVIEWER_CHANNEL") or None,
            tracker_api_url=env("LINEAR_API_URL", cls.tracker_api_url),
            tracker_api_key=env("LINEAR_API_KEY") or None,
            tracker_team_id=env("LINEAR_TEAM_ID") or None,
            tracker_project_id=env("LINEAR_PROJECT_ID") or None,
            tracker_assignee_id=env("LINEAR_ASSIGNEE_ID") or None,
            tracker_label_bug=env("LINEAR_LABEL_BUG") or None,
            tracker_label_improvement=env("LINEAR_LABEL_IMPROVEMENT") or None,
            tracker_label_request=env("LINEAR_LABEL_REQUEST") or None,
            tracker_timeout_seconds=float(env("LINEAR_TIMEOUT_SECONDS", "15")),
        )
