"""Single source of wall-clock time so services can be driven from tests."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every table column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
