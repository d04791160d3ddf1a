"""
Credit ledger entries. Positive ``amount`` values with type ``credit`` or
``credit_purchase`` add to a balance; ``debit`` entries subtract from it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from recordkit.db.model import Model

if TYPE_CHECKING:
    from recordkit.models.user import User

TYPE_CREDIT = "credit"
TYPE_DEBIT = "debit"
TYPE_CREDIT_PURCHASE = "credit_purchase"

VALID_TRANSACTION_TYPES = frozenset({TYPE_CREDIT, TYPE_DEBIT, TYPE_CREDIT_PURCHASE})


class CreditTransaction(Model):
    """One ledger row (``credit_transactions`` table)."""

    table = "credit_transactions"
    fillable = frozenset({
        "user_id",
        "amount",
        "type",
        "description",
        "reference_id",
        "reference_type",
        "metadata",
    })
    casts = {
        "user_id": "int",
        "amount": "int",
        "metadata": "json",
        "created_at": "datetime",
        "updated_at": "datetime",
    }
    timestamps = True

    @property
    def amount(self) -> int:
        return self.get_attribute("amount") or 0

    @property
    def type(self) -> Optional[str]:
        return self.get_attribute("type")

    @property
    def metadata(self) -> Optional[dict[str, Any]]:
        return self.get_attribute("metadata")

    def user(self) -> Optional["User"]:
        from recordkit.models.user import User

        return self.belongs_to(User)
