"""
Repository for the credit ledger.

Totals are computed with SQL aggregates over ``amount``; the ledger itself is
append-only from this layer's point of view.
"""

from __future__ import annotations

from typing import Optional

from recordkit.db.query import QueryBuilder
from recordkit.db.repositories.base import BaseRepository
from recordkit.models.credit_transaction import TYPE_CREDIT, TYPE_DEBIT, CreditTransaction


class CreditTransactionRepository(BaseRepository[CreditTransaction]):
    """Read/write access to the ``credit_transactions`` table."""

    model = CreditTransaction

    def find_by_user_id(
        self,
        user_id: int,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[CreditTransaction]:
        """A user's ledger rows, newest first.

        Args:
            user_id: Owner of the rows.
            limit: Maximum rows to return; ``None`` for all.
            offset: Rows to skip before returning.
        """
        query = (
            self.new_query()
            .where("user_id", user_id)
            .order_by_desc("created_at")
            .order_by_desc("id")
        )
        if limit is not None:
            query.limit(limit)
        if offset is not None:
            query.offset(offset)
        return query.get()

    def count_by_user_id(self, user_id: int) -> int:
        return self.new_query().where("user_id", user_id).count()

    def get_total_credits_by_user_id(self, user_id: int) -> int:
        """Sum of ``credit`` entries for one user (0 when none)."""
        return int(
            self.new_query().where("user_id", user_id).where("type", TYPE_CREDIT).sum("amount")
        )

    def get_total_debits_by_user_id(self, user_id: int) -> int:
        """Sum of ``debit`` entries for one user (0 when none)."""
        return int(
            self.new_query().where("user_id", user_id).where("type", TYPE_DEBIT).sum("amount")
        )

    def find_by_reference(self, reference_id: str, reference_type: str) -> list[CreditTransaction]:
        """Rows tied to an external object (payment, gift, ...)."""
        return (
            self.new_query()
            .where({"reference_id": reference_id, "reference_type": reference_type})
            .order_by("id")
            .get()
        )

    def get_totals_by_type(self, user_id: int) -> dict[str, int]:
        """Per-type amount totals for one user.

        Returns:
            Mapping of transaction type to summed amount; types with no rows
            are absent.
        """
        rows = (
            QueryBuilder(self.db, self.get_table())
            .select("type", "SUM(amount) AS total")
            .where("user_id", user_id)
            .group_by("type")
            .order_by("type")
            .get()
        )
        return {row["type"]: int(row["total"]) for row in rows}
