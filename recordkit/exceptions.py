"""
Exception hierarchy for the data-access layer.

Every error raised by ``recordkit`` derives from ``RecordKitError`` so
callers can catch the whole family in one place, or a specific subclass
when they care about the failure mode:

  - ``DatabaseConnectionError`` — the handle could not be opened.
  - ``QueryError``              — the driver rejected a statement.
  - ``InvalidQueryError``       — the builder rejected its own input.
  - ``TransactionError``        — begin/commit/rollback used out of order.
  - ``NotFoundError``           — ``find_or_fail`` found no row.
  - ``DetachedInstanceError``   — a deleted (or never saved) model was written.

Errors are logged where they are raised and then propagated; no layer
turns them into sentinel return values.
"""

from __future__ import annotations

from typing import Any, Optional


class RecordKitError(Exception):
    """Base class for all data-access errors."""


class DatabaseConnectionError(RecordKitError):
    """Raised when the database handle cannot be opened.

    The message never includes the underlying driver text, which may carry
    file paths or credentials; the original exception is chained as
    ``__cause__`` for debugging.
    """

    def __init__(self, message: str = "Could not connect to the database.") -> None:
        super().__init__(message)


class QueryError(RecordKitError):
    """Raised when the driver fails to execute a statement.

    Attributes:
        sql: The SQL text that failed.
        params: The bound parameters, in placeholder order.
    """

    def __init__(self, message: str, sql: str, params: tuple[Any, ...] = ()) -> None:
        self.sql = sql
        self.params = params
        super().__init__(message)


class InvalidQueryError(RecordKitError, ValueError):
    """Raised by the query builder for a malformed query specification."""


class TransactionError(RecordKitError):
    """Raised for nested ``begin`` or ``commit``/``rollback`` with no open transaction."""


class NotFoundError(RecordKitError, LookupError):
    """Raised by ``find_or_fail``-style lookups when no row matches.

    Attributes:
        model_name: Name of the model class that was looked up.
        key: The primary-key value that was not found.
    """

    def __init__(self, model_name: str, key: Any) -> None:
        self.model_name = model_name
        self.key = key
        super().__init__(f"No query results for model [{model_name}] with key {key!r}.")


class DetachedInstanceError(RecordKitError):
    """Raised when saving or deleting a model that has no backing row.

    Attributes:
        model_name: Name of the model class.
        key: Primary-key value of the instance, if any.
    """

    def __init__(self, model_name: str, key: Optional[Any], action: str) -> None:
        self.model_name = model_name
        self.key = key
        super().__init__(
            f"Cannot {action} {model_name} (key={key!r}): the instance is not backed by a row."
        )
