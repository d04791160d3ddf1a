"""
Repository for purchasable credit packs.
"""

from __future__ import annotations

from recordkit.db.repositories.base import BaseRepository
from recordkit.models.credit_pack import CreditPack


class CreditPackRepository(BaseRepository[CreditPack]):
    """Read/write access to the ``credit_packs`` table."""

    model = CreditPack

    def find_active(self) -> list[CreditPack]:
        """Active packs in display order (``sort_order`` ascending)."""
        return (
            self.new_query()
            .where("is_active", True)
            .order_by("sort_order", "asc")
            .order_by("id")
            .get()
        )
