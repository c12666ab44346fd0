"""Per-user daily request quota."""

import logging
import sqlite3
from collections.abc import Callable
from datetime import date
from enum import Enum

from .logging import get_logger
from .storage import Store

logger = logging.getLogger(__name__)


class QuotaDecision(Enum):
    """Outcome of a quota check."""

    ALLOWED = "allowed"
    DENIED = "denied"


class AccessController:
    """Gates requests against a per-user daily limit.

    Every call either consumes one unit and returns ALLOWED, or returns
    DENIED without touching the row. Both the check and the increment run
    inside one store transaction. The window rolls over lazily: the first
    request seen on a new calendar day resets the count.
    """

    def __init__(
        self,
        store: Store,
        owner_username: str,
        daily_limit: int = 2,
        *,
        free_first_contact: bool = True,
        fail_open: bool = True,
        today: Callable[[], date] = date.today,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Shared SQLite store holding the user_limits table.
            owner_username: Display name that is never limited or tracked.
            daily_limit: Requests allowed per user per day.
            free_first_contact: If True, the request that creates a user's
                row does not count against the limit.
            fail_open: Decision returned when the store fails.
            today: Clock returning the current local date.
        """
        self.store = store
        self.owner_username = owner_username
        self.daily_limit = daily_limit
        self.free_first_contact = free_first_contact
        self.fail_open = fail_open
        self._today = today

    def is_owner(self, username: str | None) -> bool:
        """Check whether a display name is the privileged identity."""
        return bool(username) and username == self.owner_username

    def used_today(self, user_id: int) -> int | None:
        """Requests counted for a user in the current window.

        Returns None when the store cannot be read.
        """
        try:
            quota = self.store.get_quota(user_id)
        except sqlite3.Error as e:
            logger.warning("Quota lookup failed for user %s: %s", user_id, e)
            return None
        if quota is None or quota.window_date != self._today().isoformat():
            return 0
        return quota.count

    def check_and_consume(self, user_id: int, username: str | None) -> QuotaDecision:
        """Decide whether a request may proceed, consuming a unit if so.

        Never raises: storage failures resolve to the fail_open policy.
        """
        if self.is_owner(username):
            return QuotaDecision.ALLOWED

        try:
            decision, count = self._consume(user_id, username or "")
        except sqlite3.Error as e:
            decision = QuotaDecision.ALLOWED if self.fail_open else QuotaDecision.DENIED
            logger.warning("Quota check failed for user %s: %s", user_id, e)
            get_logger().log(
                "quota_error",
                user_id=user_id,
                error=str(e),
                decision=decision.value,
            )
            return decision

        if decision is QuotaDecision.DENIED:
            logger.info(
                "User %s (%s) is over the limit: %d/%d",
                username, user_id, count, self.daily_limit,
            )
            get_logger().log("quota_denied", user_id=user_id, count=count)
        else:
            logger.info("User %s: request %d/%d", username, count, self.daily_limit)
        return decision

    def _consume(self, user_id: int, username: str) -> tuple[QuotaDecision, int]:
        today = self._today().isoformat()

        with self.store.transaction() as conn:
            row = conn.execute(
                "SELECT date, request_count FROM user_limits WHERE user_id = ?",
                (user_id,),
            ).fetchone()

            if row is None:
                count = 0 if self.free_first_contact else 1
                conn.execute(
                    "INSERT INTO user_limits (user_id, username, date, request_count) "
                    "VALUES (?, ?, ?, ?)",
                    (user_id, username, today, count),
                )
                return QuotaDecision.ALLOWED, count

            if row["date"] != today:
                conn.execute(
                    "UPDATE user_limits SET date = ?, request_count = 1 WHERE user_id = ?",
                    (today, user_id),
                )
                return QuotaDecision.ALLOWED, 1

            count = row["request_count"]
            if count >= self.daily_limit:
                return QuotaDecision.DENIED, count

            conn.execute(
                "UPDATE user_limits SET request_count = request_count + 1 WHERE user_id = ?",
                (user_id,),
            )
            return QuotaDecision.ALLOWED, count + 1
