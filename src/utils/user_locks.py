"""
Per-user lock registry.

Serializes work for one user identity while leaving other users free to run
concurrently. Entries are reference counted: a lock that is held or waited on
is never evicted, idle ones are dropped oldest-first past ``max_size``.
"""

from collections import OrderedDict
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Iterator, List


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = RLock()
        self.users = 0


class UserLockRegistry:
    """Thread-safe map of user id -> re-entrant lock."""

    def __init__(self, max_size: int = 1024):
        self.max_size = max_size
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._guard = Lock()

    def _checkout(self, user_id: str) -> _Entry:
        with self._guard:
            entry = self._entries.get(user_id)
            if entry is None:
                entry = _Entry()
                self._entries[user_id] = entry
            entry.users += 1
            self._entries.move_to_end(user_id)
            return entry

    def _checkin(self, user_id: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            excess = len(self._entries) - self.max_size
            if excess <= 0:
                return
            idle: List[str] = [k for k, e in self._entries.items() if e.users == 0]
            for key in idle[:excess]:
                del self._entries[key]

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        """Block until the user's lock is free, then hold it for the block."""
        entry = self._checkout(user_id)
        try:
            with entry.lock:
                yield
        finally:
            self._checkin(user_id, entry)

    def stats(self) -> dict:
        """Return registry statistics."""
        with self._guard:
            return {"size": len(self._entries), "max_size": self.max_size}
