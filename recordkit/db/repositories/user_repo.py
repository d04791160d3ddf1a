"""
Repository for user accounts.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from recordkit.db.query import QueryBuilder
from recordkit.db.repositories.base import BaseRepository
from recordkit.models.pagination import UserStatistics
from recordkit.models.user import User
from recordkit.utils.text import LIKE_ESCAPE, escape_like, format_timestamp, utc_now

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Read/write access to the ``users`` table."""

    model = User

    def find_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by their unique email address.

        Args:
            email: Exact email to match.

        Returns:
            ``User`` or ``None``.
        """
        return self.new_query().where("email", email).first()

    def find_by_status(self, status: str) -> list[User]:
        """All users with the given ``subscription_status``."""
        return self.new_query().where("subscription_status", status).order_by("id").get()

    def search(self, term: str) -> list[User]:
        """Substring match on name or email.

        Args:
            term: Literal text to look for. ``%`` and ``_`` in it match
                themselves, not as wildcards.

        Returns:
            Matching users ordered by name.
        """
        return self.search_query(term).get()

    def search_query(self, term: str) -> QueryBuilder:
        """The builder behind ``search``, for callers that paginate or filter it."""
        pattern = f"%{escape_like(term)}%"
        return (
            self.new_query()
            .where_like("name", pattern, escape=LIKE_ESCAPE)
            .or_where_like("email", pattern, escape=LIKE_ESCAPE)
            .order_by("name")
        )

    def get_recent_users(self, days: int = 7) -> list[User]:
        """Users created within the last ``days`` days, newest first."""
        return (
            self.new_query()
            .where("created_at", ">=", _days_ago(days))
            .order_by_desc("created_at")
            .get()
        )

    def get_statistics(self) -> UserStatistics:
        """Headline counts across all users.

        Returns:
            ``UserStatistics``; every field is 0 on an empty table.
        """
        stats = UserStatistics(
            total_users=self.new_query().count(),
            verified_users=self.new_query().where_not_null("email_verified_at").count(),
            active_subscribers=self.new_query().where("subscription_status", "active").count(),
            new_last_7_days=self.new_query().where("created_at", ">=", _days_ago(7)).count(),
            total_credits_outstanding=self.new_query().sum("credits"),
        )
        logger.debug("User statistics: %s", stats.model_dump())
        return stats


def _days_ago(days: int) -> str:
    return format_timestamp(utc_now() - timedelta(days=days))
