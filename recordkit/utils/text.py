"""
Naming and timestamp helpers shared by the model and repository layers.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """Convert a ``PascalCase`` or ``camelCase`` name to ``snake_case``.

    ``"CreditTransaction"`` → ``"credit_transaction"``.
    """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def foreign_key_for(class_name: str) -> str:
    """Return the conventional foreign-key column for a model class name."""
    return f"{snake_case(class_name)}_id"


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """Render a datetime in the storage format (``YYYY-MM-DD HH:MM:SS``, UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime.

    Accepts the storage format as well as ISO-8601 strings.
    """
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


LIKE_ESCAPE = "\\"


def escape_like(term: str, escape: str = LIKE_ESCAPE) -> str:
    """Escape ``%``, ``_`` and the escape character so ``term`` matches literally in LIKE."""
    return (
        term.replace(escape, escape + escape)
        .replace("%", escape + "%")
        .replace("_", escape + "_")
    )
