"""
Per-user quota accounting.

Counts are derived from the queries table at call time; there is no running
total and no reservation token. The row inserted after a successful answer is
what moves the next count.

Known race: two concurrent requests from one user can both pass the check
before either row is persisted, so a burst of k in-flight requests can
over-admit by at most k - 1. No lock or transactional check-and-increment is
used; tightening this would change behaviour under burst traffic.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.config import DEFAULT_QUOTA_POLICY
from app.db.repository import QueryRepository, UserRepository
from app.errors import PersistenceFailure, QuotaExceeded
from app.models import UsageCounters

logger = logging.getLogger(__name__)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_next_day(now: datetime) -> datetime:
    return start_of_day(now) + timedelta(days=1)


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_next_month(now: datetime) -> datetime:
    first = start_of_month(now)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


class QuotaPolicy:
    """Role -> (daily, monthly) ceilings. None means unlimited."""

    FALLBACK_ROLE = "free"

    def __init__(self, limits: Optional[Dict[str, Tuple[Optional[int], Optional[int]]]] = None):
        self.limits = dict(limits if limits is not None else DEFAULT_QUOTA_POLICY)

    def ceilings(self, role: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
        if role in self.limits:
            return self.limits[role]
        return self.limits.get(self.FALLBACK_ROLE, DEFAULT_QUOTA_POLICY["free"])

    def daily(self, role: Optional[str]) -> Optional[int]:
        return self.ceilings(role)[0]

    def monthly(self, role: Optional[str]) -> Optional[int]:
        return self.ceilings(role)[1]


class QuotaLedger:
    """Admits or rejects a user's next query based on role ceilings."""

    def __init__(
        self,
        queries: QueryRepository,
        policy: Optional[QuotaPolicy] = None,
        users: Optional[UserRepository] = None,
    ):
        self.queries = queries
        self.policy = policy or QuotaPolicy()
        self.users = users

    def usage(self, user_id: str, now: Optional[datetime] = None) -> UsageCounters:
        """Count the user's queries in the current day and month windows."""
        now = now or datetime.now()
        daily = self.queries.count_between(user_id, start_of_day(now), start_of_next_day(now))
        monthly = self.queries.count_between(user_id, start_of_month(now), start_of_next_month(now))
        return UsageCounters(user_id=user_id, daily_count=max(0, daily), monthly_count=max(0, monthly))

    def check_and_reserve(self, user_id: str, role: Optional[str], now: Optional[datetime] = None) -> UsageCounters:
        """
        Admit the next query or raise QuotaExceeded.

        The day window is checked before the month window, so a user over both
        ceilings is told about the daily one.
        """
        daily_ceiling, monthly_ceiling = self.policy.ceilings(role)
        if daily_ceiling is None and monthly_ceiling is None:
            # Unlimited roles skip the count queries entirely
            return UsageCounters(user_id=user_id, daily_count=0, monthly_count=0)

        counters = self.usage(user_id, now)
        logger.debug(
            f"Usage for {user_id} ({role}): day={counters.daily_count}/{daily_ceiling} "
            f"month={counters.monthly_count}/{monthly_ceiling}"
        )

        if daily_ceiling is not None and counters.daily_count >= daily_ceiling:
            logger.info(f"Daily quota reached for user {user_id} ({role}): {daily_ceiling}")
            raise QuotaExceeded(window="day", ceiling=daily_ceiling)
        if monthly_ceiling is not None and counters.monthly_count >= monthly_ceiling:
            logger.info(f"Monthly quota reached for user {user_id} ({role}): {monthly_ceiling}")
            raise QuotaExceeded(window="month", ceiling=monthly_ceiling)

        return counters

    def refresh_counters(self, user_id: str, now: Optional[datetime] = None) -> Optional[UsageCounters]:
        """
        Recompute counters after an insert and copy them onto the user row.

        Best effort: failures are logged and None is returned.
        """
        if self.users is None:
            return None
        try:
            counters = self.usage(user_id, now)
            self.users.set_counters(user_id, counters.daily_count, counters.monthly_count)
            return counters
        except (PersistenceFailure, SQLAlchemyError) as e:
            logger.warning(f"Could not refresh usage counters for {user_id}: {e}")
            return None
