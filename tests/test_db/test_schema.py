"""Tests for SQLite schema — idempotency, table/index creation, constraints."""

from __future__ import annotations

import pytest

from recordkit.db.schema import (
    ALL_TABLE_NAMES,
    apply_schema,
    get_existing_indexes,
    get_existing_tables,
)
from recordkit.exceptions import QueryError, TransactionError


def _columns(db, table: str) -> list[str]:
    return [row["name"] for row in db.all(f"PRAGMA table_info({table});")]


class TestApplySchema:
    def test_all_tables_created(self, in_memory_db):
        tables = get_existing_tables(in_memory_db)
        for expected_table in ALL_TABLE_NAMES:
            assert expected_table in tables, (
                f"Expected table '{expected_table}' not found in database. "
                f"Found: {tables}"
            )

    def test_internal_tables_hidden(self, in_memory_db):
        assert not any(name.startswith("sqlite_") for name in get_existing_tables(in_memory_db))

    def test_idempotent_double_apply(self, in_memory_db):
        """apply_schema() called twice must not raise errors."""
        apply_schema(in_memory_db)
        assert sorted(get_existing_tables(in_memory_db)) == sorted(ALL_TABLE_NAMES)

    def test_refuses_to_run_inside_open_transaction(self, in_memory_db):
        in_memory_db.begin_transaction()
        with pytest.raises(TransactionError):
            apply_schema(in_memory_db)
        in_memory_db.roll_back()

    def test_key_indexes_created(self, in_memory_db):
        indexes = get_existing_indexes(in_memory_db)
        expected_indexes = [
            "idx_credit_packs_active_sort",
            "idx_credit_tx_user_created",
            "idx_gifts_sender",
            "idx_gifts_status_expiry",
        ]
        for idx in expected_indexes:
            assert idx in indexes, (
                f"Expected index '{idx}' not found. Found: {indexes}"
            )


class TestConstraints:
    def test_duplicate_email_rejected(self, in_memory_db):
        in_memory_db.insert("users", {"name": "Ada", "email": "ada@example.com"})
        with pytest.raises(QueryError):
            in_memory_db.insert("users", {"name": "Other", "email": "ada@example.com"})

    def test_transaction_type_checked(self, in_memory_db):
        user_id = in_memory_db.insert("users", {"name": "Ada", "email": "ada@example.com"})
        with pytest.raises(QueryError):
            in_memory_db.insert(
                "credit_transactions", {"user_id": user_id, "amount": 1, "type": "refund"}
            )

    def test_deleting_user_cascades_to_ledger(self, in_memory_db):
        user_id = in_memory_db.insert("users", {"name": "Ada", "email": "ada@example.com"})
        in_memory_db.insert("credit_transactions", {"user_id": user_id, "amount": 1, "type": "credit"})
        in_memory_db.delete("users", "id = ?", (user_id,))
        assert in_memory_db.scalar("SELECT COUNT(*) FROM credit_transactions") == 0


class TestTableStructure:
    @pytest.mark.parametrize("table", ALL_TABLE_NAMES)
    def test_every_table_has_id_and_timestamps(self, in_memory_db, table):
        cols = _columns(in_memory_db, table)
        assert {"id", "created_at", "updated_at"} <= set(cols)

    def test_gifts_columns(self, in_memory_db):
        cols = _columns(in_memory_db, "gifts")
        assert "gift_code" in cols
        assert "expires_at" in cols
        assert "redeemed_by_user_id" in cols
