"""
Purchasable credit packs shown on the pricing page, ordered by ``sort_order``.
"""

from __future__ import annotations

from typing import Optional

from recordkit.db.model import Model


class CreditPack(Model):
    """A one-time credit bundle (``credit_packs`` table)."""

    table = "credit_packs"
    fillable = frozenset({
        "name",
        "description",
        "credits",
        "price",
        "stripe_product_id",
        "stripe_price_id",
        "is_active",
        "sort_order",
    })
    casts = {
        "credits": "int",
        "price": "float",
        "is_active": "bool",
        "sort_order": "int",
        "created_at": "datetime",
        "updated_at": "datetime",
    }
    timestamps = True

    @property
    def name(self) -> Optional[str]:
        return self.get_attribute("name")

    @property
    def credits(self) -> int:
        return self.get_attribute("credits") or 0

    @property
    def price(self) -> float:
        return self.get_attribute("price") or 0.0

    @property
    def is_active(self) -> bool:
        return bool(self.get_attribute("is_active"))

    def get_price_per_credit_attribute(self) -> Optional[float]:
        if not self.credits:
            return None
        return round(self.price / self.credits, 4)
