"""Per-user ticket counters."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine

from repositories.database import rate_counters, storage_errors


class RateCounterRepository:
    """Daily and lifetime ticket counts keyed by user id."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def tickets_today(self, user_id: str) -> int:
        stmt = select(rate_counters.c.tickets_today).where(rate_counters.c.user_id == user_id)
        with storage_errors("counter.get"):
            with self.engine.connect() as conn:
                return conn.execute(stmt).scalar() or 0

    def tickets_total(self, user_id: str) -> int:
        stmt = select(rate_counters.c.tickets_total).where(rate_counters.c.user_id == user_id)
        with storage_errors("counter.total"):
            with self.engine.connect() as conn:
                return conn.execute(stmt).scalar() or 0

    def increment(self, user_id: str, now: datetime) -> int:
        """Add one to both counters, creating the row on first use."""
        with storage_errors("counter.increment"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(rate_counters)
                    .where(rate_counters.c.user_id == user_id)
                    .values(
                        tickets_today=rate_counters.c.tickets_today + 1,
                        tickets_total=rate_counters.c.tickets_total + 1,
                        updated_at=now,
                    )
                )
                if result.rowcount == 0:
                    conn.execute(
                        insert(rate_counters).values(
                            user_id=user_id, tickets_today=1, tickets_total=1, updated_at=now
                        )
                    )
                return conn.execute(
                    select(rate_counters.c.tickets_today).where(rate_counters.c.user_id == user_id)
                ).scalar()

    def reset_daily(self, now: datetime) -> int:
        """Zero every user's daily count; lifetime totals are kept."""
        with storage_errors("counter.reset_daily"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(rate_counters)
                    .where(rate_counters.c.tickets_today != 0)
                    .values(tickets_today=0, updated_at=now)
                )
        return result.rowcount
