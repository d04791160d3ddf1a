"""
Repository for gifts.

A gift is *pending* until redeemed or until ``expires_at`` passes.
``mark_expired_gifts()`` is the only place that moves overdue pending gifts
to ``expired``; read methods compare ``expires_at`` against the current UTC
time so overdue gifts are treated as expired even before that sweep runs.
"""

from __future__ import annotations

import logging
from typing import Optional

from recordkit.db.repositories.base import BaseRepository
from recordkit.models.gift import STATUS_EXPIRED, STATUS_PENDING, STATUS_REDEEMED, Gift
from recordkit.models.pagination import GiftCodeCheck, GiftStats
from recordkit.utils.text import format_timestamp, utc_now

logger = logging.getLogger(__name__)

_GIFT_STATS_SQL = """
SELECT
    COUNT(*)                                              AS total_sent,
    SUM(CASE WHEN status = 'redeemed' THEN 1 ELSE 0 END)  AS redeemed,
    SUM(CASE WHEN status = 'pending'  THEN 1 ELSE 0 END)  AS pending,
    SUM(CASE WHEN status = 'expired'  THEN 1 ELSE 0 END)  AS expired,
    SUM(credits_amount)                                   AS total_credits_gifted,
    SUM(purchase_amount)                                  AS total_amount_spent
FROM gifts
WHERE sender_user_id = ?;
"""


class GiftRepository(BaseRepository[Gift]):
    """Read/write access to the ``gifts`` table."""

    model = Gift

    def find_by_code(self, gift_code: str) -> Optional[Gift]:
        return self.new_query().where("gift_code", gift_code).first()

    def get_by_sender(self, user_id: int) -> list[Gift]:
        """Gifts bought by ``user_id``, newest first."""
        return (
            self.new_query()
            .where("sender_user_id", user_id)
            .order_by_desc("created_at")
            .order_by_desc("id")
            .get()
        )

    def get_pending_gifts(self) -> list[Gift]:
        """Pending gifts that can still be redeemed."""
        return (
            self.new_query()
            .where("status", STATUS_PENDING)
            .where("expires_at", ">", _now())
            .order_by("expires_at")
            .get()
        )

    def get_expired_gifts(self) -> list[Gift]:
        """Pending gifts whose ``expires_at`` has passed, latest expiry first."""
        return (
            self.new_query()
            .where("status", STATUS_PENDING)
            .where("expires_at", "<=", _now())
            .order_by_desc("expires_at")
            .get()
        )

    def mark_expired_gifts(self) -> int:
        """Move overdue pending gifts to ``expired``.

        Returns:
            Number of gifts updated.
        """
        now = _now()
        affected = (
            self.new_query()
            .where("status", STATUS_PENDING)
            .where("expires_at", "<=", now)
            .update({"status": STATUS_EXPIRED, "updated_at": now})
        )
        logger.info("Marked %d gift(s) expired.", affected)
        return affected

    def get_user_gift_stats(self, user_id: int) -> GiftStats:
        """Counters and totals over every gift sent by ``user_id``."""
        row = self.fetchone(_GIFT_STATS_SQL, (user_id,))
        return GiftStats(**row) if row else GiftStats()

    def get_total_revenue(self) -> float:
        """Sum of ``purchase_amount`` over all gifts."""
        return float(self.new_query().sum("purchase_amount"))

    def get_conversion_rate(self) -> float:
        """Percentage of gifts that were redeemed (0.0 when none were sent)."""
        total = self.new_query().count()
        if total == 0:
            return 0.0
        redeemed = self.new_query().where("status", STATUS_REDEEMED).count()
        return redeemed / total * 100

    def is_valid_gift_code(self, gift_code: str) -> GiftCodeCheck:
        """Check whether ``gift_code`` can be redeemed now.

        Returns:
            ``GiftCodeCheck`` with ``valid=True`` and the gift, or
            ``valid=False`` and a human-readable reason.
        """
        gift = self.find_by_code(gift_code)
        if gift is None:
            return GiftCodeCheck(valid=False, reason="Gift code not found")
        if gift.status == STATUS_REDEEMED:
            return GiftCodeCheck(valid=False, reason="Gift already redeemed")
        if gift["is_expired"]:
            return GiftCodeCheck(valid=False, reason="Gift has expired")
        return GiftCodeCheck(valid=True, gift=gift)


def _now() -> str:
    return format_timestamp(utc_now())
