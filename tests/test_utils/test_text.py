"""Tests for naming and timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from recordkit.utils.text import (
    escape_like,
    foreign_key_for,
    format_timestamp,
    parse_timestamp,
    snake_case,
    utc_now,
)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("User", "user"),
        ("CreditTransaction", "credit_transaction"),
        ("creditPack", "credit_pack"),
    ],
)
def test_snake_case(name, expected):
    assert snake_case(name) == expected


def test_foreign_key_for():
    assert foreign_key_for("CreditPack") == "credit_pack_id"


def test_utc_now_is_aware_and_whole_seconds():
    now = utc_now()
    assert now.tzinfo is not None
    assert now.microsecond == 0


def test_format_converts_to_utc():
    value = datetime(2024, 9, 15, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert format_timestamp(value) == "2024-09-15 12:00:00"


def test_parse_storage_and_iso_formats():
    expected = datetime(2024, 9, 15, 12, 0, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2024-09-15 12:00:00") == expected
    assert parse_timestamp("2024-09-15T12:00:00+00:00") == expected


@pytest.mark.parametrize(
    "term,expected",
    [
        ("plain", "plain"),
        ("a_b", "a\\_b"),
        ("100%", "100\\%"),
        ("back\\slash", "back\\\\slash"),
    ],
)
def test_escape_like(term, expected):
    assert escape_like(term) == expected
