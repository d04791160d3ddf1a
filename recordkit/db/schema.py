"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Every table follows the conventions the ``Model`` base relies on:
  - an ``id INTEGER PRIMARY KEY AUTOINCREMENT`` column;
  - ``created_at`` / ``updated_at`` TEXT columns (``YYYY-MM-DD HH:MM:SS``,
    UTC) populated by the model on insert/update.

Table creation order respects foreign key dependencies:
  1. users                (no FKs)
  2. credit_packs         (no FKs)
  3. credit_transactions  (→ users)
  4. gifts                (→ users × 2)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from recordkit.db.connection import ConnectionManager

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id                    INTEGER PRIMARY KEY AUTOINCREMENT,
    name                  TEXT    NOT NULL,
    email                 TEXT    NOT NULL UNIQUE,
    password              TEXT,
    credits               INTEGER NOT NULL DEFAULT 0,
    subscription_status   TEXT    NOT NULL DEFAULT 'none',
    subscription_ends_at  TEXT,
    email_verified_at     TEXT,
    remember_token        TEXT,
    created_at            TEXT,
    updated_at            TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_created ON users(created_at);
"""

_DDL_CREDIT_PACKS = """
CREATE TABLE IF NOT EXISTS credit_packs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT    NOT NULL,
    description         TEXT,
    credits             INTEGER NOT NULL,
    price               REAL    NOT NULL,
    stripe_product_id   TEXT,
    stripe_price_id     TEXT,
    is_active           INTEGER NOT NULL DEFAULT 1,
    sort_order          INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT,
    updated_at          TEXT
);
CREATE INDEX IF NOT EXISTS idx_credit_packs_active_sort ON credit_packs(is_active, sort_order);
"""

_DDL_CREDIT_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS credit_transactions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    amount          INTEGER NOT NULL,
    type            TEXT    NOT NULL CHECK (type IN ('credit', 'debit', 'credit_purchase')),
    description     TEXT,
    reference_id    TEXT,
    reference_type  TEXT,
    metadata        TEXT,
    created_at      TEXT,
    updated_at      TEXT
);
CREATE INDEX IF NOT EXISTS idx_credit_tx_user_created ON credit_transactions(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_credit_tx_reference ON credit_transactions(reference_type, reference_id);
"""

_DDL_GIFTS = """
CREATE TABLE IF NOT EXISTS gifts (
    id                        INTEGER PRIMARY KEY AUTOINCREMENT,
    gift_code                 TEXT    NOT NULL UNIQUE,
    sender_user_id            INTEGER REFERENCES users(id),
    sender_name               TEXT,
    recipient_email           TEXT    NOT NULL,
    recipient_name            TEXT,
    gift_message              TEXT,
    credits_amount            INTEGER NOT NULL DEFAULT 0,
    plan_id                   INTEGER,
    purchase_amount           REAL    NOT NULL DEFAULT 0,
    stripe_payment_intent_id  TEXT,
    status                    TEXT    NOT NULL DEFAULT 'pending'
                                      CHECK (status IN ('pending', 'redeemed', 'expired')),
    expires_at                TEXT,
    redeemed_at               TEXT,
    redeemed_by_user_id       INTEGER REFERENCES users(id),
    created_at                TEXT,
    updated_at                TEXT
);
CREATE INDEX IF NOT EXISTS idx_gifts_sender ON gifts(sender_user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_gifts_status_expiry ON gifts(status, expires_at);
"""

_ALL_DDL = [
    _DDL_USERS,
    _DDL_CREDIT_PACKS,
    _DDL_CREDIT_TRANSACTIONS,
    _DDL_GIFTS,
]

# Table names for introspection / tests
ALL_TABLE_NAMES = [
    "users",
    "credit_packs",
    "credit_transactions",
    "gifts",
]


def apply_schema(db: "ConnectionManager") -> None:
    """Apply all DDL statements through ``db`` in one transaction.

    Idempotent — safe to call on an already-initialized database.
    Each statement uses ``IF NOT EXISTS`` guards.

    Args:
        db: The connection manager (FK enforcement is ON).
    """
    logger.debug("Applying schema to database...")

    with db.transaction():
        for ddl in _ALL_DDL:
            for statement in _split_ddl(ddl):
                db.execute(statement)

    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(db: "ConnectionManager") -> list[str]:
    """Return user table names present in the database, sorted alphabetically."""
    rows = db.all(
        "SELECT name FROM sqlite_master "
        "WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name;"
    )
    return [row["name"] for row in rows]


def get_existing_indexes(db: "ConnectionManager") -> list[str]:
    """Return index names present in the database, sorted alphabetically."""
    rows = db.all("SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;")
    return [row["name"] for row in rows]
