"""
Gifted credits or plans, redeemable once by code before ``expires_at``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from recordkit.db.model import Model
from recordkit.utils.text import utc_now

if TYPE_CHECKING:
    from recordkit.models.user import User

STATUS_PENDING = "pending"
STATUS_REDEEMED = "redeemed"
STATUS_EXPIRED = "expired"

VALID_GIFT_STATUSES = frozenset({STATUS_PENDING, STATUS_REDEEMED, STATUS_EXPIRED})


class Gift(Model):
    """A gift purchase (``gifts`` table)."""

    table = "gifts"
    fillable = frozenset({
        "gift_code",
        "sender_user_id",
        "sender_name",
        "recipient_email",
        "recipient_name",
        "gift_message",
        "credits_amount",
        "plan_id",
        "purchase_amount",
        "stripe_payment_intent_id",
        "status",
        "expires_at",
        "redeemed_at",
        "redeemed_by_user_id",
    })
    casts = {
        "sender_user_id": "int",
        "credits_amount": "int",
        "purchase_amount": "float",
        "expires_at": "datetime",
        "redeemed_at": "datetime",
        "redeemed_by_user_id": "int",
        "created_at": "datetime",
        "updated_at": "datetime",
    }
    timestamps = True

    @property
    def gift_code(self) -> Optional[str]:
        return self.get_attribute("gift_code")

    @property
    def status(self) -> str:
        return self.get_attribute("status") or STATUS_PENDING

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.get_attribute("expires_at")

    def get_is_expired_attribute(self) -> bool:
        if self.status == STATUS_EXPIRED:
            return True
        return self.expires_at is not None and self.expires_at < utc_now()

    def sender(self) -> Optional["User"]:
        from recordkit.models.user import User

        return self.belongs_to(User, foreign_key="sender_user_id")
