"""Per-user daily ticket allowance."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from repositories.counter_repo import RateCounterRepository
from utils.clock import utcnow
from utils.error_handling import RateLimitExceededError
from utils.logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Daily counter of successful submissions.

    Only successful tracker creations count. The daily reset is driven by an
    external schedule (see the maintenance handler), never by the workflow.
    """

    def __init__(
        self,
        counters: RateCounterRepository,
        max_per_day: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.counters = counters
        self.max_per_day = max_per_day
        self.clock = clock

    def count_today(self, user_id: str) -> int:
        return self.counters.tickets_today(user_id)

    def total(self, user_id: str) -> int:
        return self.counters.tickets_total(user_id)

    def is_exceeded(self, user_id: str) -> bool:
        return self.count_today(user_id) >= self.max_per_day

    def check(self, user_id: str) -> None:
        """Raise when the user has no submissions left today."""
        if self.is_exceeded(user_id):
            logger.info(
                "Daily ticket limit reached",
                extra={"user_id": user_id, "limit": self.max_per_day},
            )
            raise RateLimitExceededError(user_id, self.max_per_day)

    def increment(self, user_id: str) -> int:
        count = self.counters.increment(user_id, self.clock())
        logger.info("Ticket counted", extra={"user_id": user_id, "tickets_today": count})
        return count

    def reset_all(self) -> int:
        reset = self.counters.reset_daily(self.clock())
        logger.info("Daily ticket counters reset", extra={"users": reset})
        return reset
