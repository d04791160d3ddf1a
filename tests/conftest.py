"""
Shared pytest fixtures for the recordkit test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory ``ConnectionManager`` with the full
    schema applied. Created anew for each test that requests it.
  - Row factories (``make_user``, ``make_pack``, ``make_gift``,
    ``make_transaction``) that insert through the models and return them.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable, Generator

import pytest

from recordkit.config import DatabaseConfig
from recordkit.db.connection import ConnectionManager
from recordkit.db.schema import apply_schema
from recordkit.models.credit_pack import CreditPack
from recordkit.models.credit_transaction import CreditTransaction
from recordkit.models.gift import Gift
from recordkit.models.user import User
from recordkit.utils.text import format_timestamp, utc_now


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[ConnectionManager, None, None]:
    """Yield a ConnectionManager on a fresh in-memory database with the schema applied.

    Foreign key enforcement is ON. The handle is closed after the test.
    """
    db = ConnectionManager(DatabaseConfig(db_path=":memory:", wal_mode=False))
    apply_schema(db)
    yield db
    db.close()


# ── Row factories ─────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(in_memory_db) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(**overrides: Any) -> User:
        counter["n"] += 1
        data = {
            "name": f"User {counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "credits": 0,
        }
        data.update(overrides)
        return User.create(in_memory_db, data)

    return _make


@pytest.fixture
def make_pack(in_memory_db) -> Callable[..., CreditPack]:
    def _make(**overrides: Any) -> CreditPack:
        data = {"name": "Starter", "credits": 100, "price": 9.99, "is_active": True, "sort_order": 0}
        data.update(overrides)
        return CreditPack.create(in_memory_db, data)

    return _make


@pytest.fixture
def make_gift(in_memory_db) -> Callable[..., Gift]:
    counter = {"n": 0}

    def _make(**overrides: Any) -> Gift:
        counter["n"] += 1
        data = {
            "gift_code": f"GIFT-{counter['n']:04d}",
            "recipient_email": "friend@example.com",
            "credits_amount": 50,
            "purchase_amount": 5.0,
            "status": "pending",
            "expires_at": format_timestamp(utc_now() + timedelta(days=30)),
        }
        data.update(overrides)
        return Gift.create(in_memory_db, data)

    return _make


@pytest.fixture
def make_transaction(in_memory_db) -> Callable[..., CreditTransaction]:
    def _make(user_id: int, **overrides: Any) -> CreditTransaction:
        data = {"user_id": user_id, "amount": 10, "type": "credit"}
        data.update(overrides)
        return CreditTransaction.create(in_memory_db, data)

    return _make
