"""
Best-effort throttle for anonymous users.

The counter lives in client-local state and is advisory only: clearing the
store resets it. Real enforcement for guests would need a server-side key
(IP, device) and is not attempted here.
"""
from app.errors import QuotaExceeded
from app.usage.local_store import GUEST_QUERY_COUNT_KEY, LocalStore


class GuestThrottle:
    """Lifetime cap on guest queries, counted in a LocalStore."""

    def __init__(self, store: LocalStore, limit: int = 3):
        self.store = store
        self.limit = limit

    def used(self) -> int:
        try:
            return max(0, int(self.store.get(GUEST_QUERY_COUNT_KEY, 0) or 0))
        except (TypeError, ValueError):
            return 0

    def remaining(self) -> int:
        return max(0, self.limit - self.used())

    def check(self) -> None:
        """Raise QuotaExceeded once the lifetime cap is reached."""
        if self.used() >= self.limit:
            raise QuotaExceeded(window="lifetime", ceiling=self.limit)

    def record(self) -> int:
        """Count one successful guest query; returns the new total."""
        new_used = self.used() + 1
        self.store.set(GUEST_QUERY_COUNT_KEY, new_used)
        return new_used
