"""
User accounts.

``credits`` is the spendable balance; ``subscription_status`` is one of
``VALID_SUBSCRIPTION_STATUSES``. Passwords are stored as opaque hashes and
are never part of ``to_public_dict()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from recordkit.db.model import Model

if TYPE_CHECKING:
    from recordkit.models.credit_transaction import CreditTransaction

VALID_SUBSCRIPTION_STATUSES = frozenset({"none", "active", "cancelled", "past_due"})

HIDDEN_ATTRIBUTES = frozenset({"password", "remember_token"})


class User(Model):
    """A registered user (``users`` table)."""

    table = "users"
    fillable = frozenset({
        "name",
        "email",
        "password",
        "credits",
        "subscription_status",
        "subscription_ends_at",
        "email_verified_at",
        "remember_token",
    })
    casts = {
        "credits": "int",
        "subscription_ends_at": "datetime",
        "email_verified_at": "datetime",
        "created_at": "datetime",
        "updated_at": "datetime",
    }
    timestamps = True

    @property
    def name(self) -> Optional[str]:
        return self.get_attribute("name")

    @property
    def email(self) -> Optional[str]:
        return self.get_attribute("email")

    @property
    def credits(self) -> int:
        return self.get_attribute("credits") or 0

    @property
    def subscription_status(self) -> str:
        return self.get_attribute("subscription_status") or "none"

    def get_is_subscribed_attribute(self) -> bool:
        """Computed ``is_subscribed`` attribute."""
        return self.subscription_status == "active"

    def get_is_verified_attribute(self) -> bool:
        return self.get_attribute("email_verified_at") is not None

    def transactions(self) -> list["CreditTransaction"]:
        from recordkit.models.credit_transaction import CreditTransaction

        return self.has_many(CreditTransaction)

    def to_public_dict(self) -> dict:
        """``to_dict()`` without credential columns."""
        return {k: v for k, v in self.to_dict().items() if k not in HIDDEN_ATTRIBUTES}
