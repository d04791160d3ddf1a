"""
Fluent SQL query builder.

A ``QueryBuilder`` accumulates a query specification through chained calls
and compiles it to a SQL string with positional ``?`` placeholders plus the
ordered list of values to bind::

    query = (
        QueryBuilder(db, "credit_packs")
        .where("is_active", True)
        .where_between("price", (5, 50))
        .order_by("sort_order")
        .limit(10)
    )
    query.to_sql()
    # SELECT * FROM credit_packs WHERE is_active = ? AND price BETWEEN ? AND ?
    #   ORDER BY sort_order ASC LIMIT 10
    query.get_bindings()
    # [True, 5, 50]

Bindings are derived from the predicate nodes themselves (WHERE first, then
HAVING), so their order always matches the left-to-right placeholder order
of the compiled SQL.

Malformed input (empty IN lists, a BETWEEN without exactly two bounds,
unknown operators, negative limits) raises ``InvalidQueryError`` at call
time instead of producing SQL the driver would reject.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional, Union

from recordkit.db.predicates import (
    AND,
    OR,
    VALID_BOOLEANS,
    VALID_OPERATORS,
    BasicPredicate,
    BetweenPredicate,
    GroupPredicate,
    InPredicate,
    NullPredicate,
    Predicate,
    collect_bindings,
    compile_predicates,
)
from recordkit.exceptions import InvalidQueryError

if TYPE_CHECKING:
    from recordkit.db.connection import ConnectionManager
    from recordkit.db.model import Model

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_NULL_EQUALITY = frozenset({"=", "IS"})
_NULL_INEQUALITY = frozenset({"!=", "<>", "IS NOT"})

AGGREGATE_FUNCTIONS = frozenset({"COUNT", "SUM", "AVG", "MIN", "MAX"})


class QueryBuilder:
    """Builds and runs SELECT / UPDATE / DELETE statements for one table.

    Attributes:
        db: Connection manager used to execute the compiled SQL.
        table: Table name (caller trusted, not escaped).
        model: Optional ``Model`` subclass; when set, ``get()`` returns
            hydrated instances instead of row dicts.
    """

    def __init__(
        self,
        db: "ConnectionManager",
        table: str,
        model: Optional[type["Model"]] = None,
    ) -> None:
        self.db = db
        self.table = table
        self.model = model
        self.columns: list[str] = ["*"]
        self.wheres: list[Predicate] = []
        self.groups: list[str] = []
        self.havings: list[Predicate] = []
        self.orders: list[tuple[str, str]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    # ── Columns ────────────────────────────────────────────────────────────────

    def select(self, *columns: Union[str, Iterable[str]]) -> "QueryBuilder":
        """Replace the column list. Accepts varargs or a single list."""
        if len(columns) == 1 and not isinstance(columns[0], str):
            columns = tuple(columns[0])
        self.columns = [str(c) for c in columns] or ["*"]
        return self

    # ── WHERE ──────────────────────────────────────────────────────────────────

    def where(
        self,
        column: Union[str, Mapping[str, Any]],
        operator: Any = _UNSET,
        value: Any = _UNSET,
        boolean: str = AND,
    ) -> "QueryBuilder":
        """Add a basic comparison.

        Call shapes:
          - ``where("email", "a@b.c")``           → ``email = ?``
          - ``where("credits", ">=", 10)``        → ``credits >= ?``
          - ``where({"status": "pending", ...})`` → one ``=`` per key, joined
            with ``boolean``.

        Comparing to ``None`` with ``=`` / ``!=`` compiles to ``IS NULL`` /
        ``IS NOT NULL`` and binds nothing.
        """
        if isinstance(column, Mapping):
            conjunction = boolean if operator is _UNSET else operator
            for key, val in column.items():
                self.where(key, "=", val, conjunction)
            return self

        if value is _UNSET:
            if operator is _UNSET:
                raise InvalidQueryError(f"where('{column}') needs a value to compare against.")
            operator, value = "=", operator

        op = _normalize_operator(operator)
        boolean = _normalize_boolean(boolean)

        if value is None:
            if op in _NULL_EQUALITY:
                return self.where_null(column, boolean)
            if op in _NULL_INEQUALITY:
                return self.where_not_null(column, boolean)
            raise InvalidQueryError(f"Cannot compare '{column}' {op} NULL.")

        self.wheres.append(BasicPredicate(column, op, value, boolean))
        return self

    def or_where(
        self,
        column: Union[str, Mapping[str, Any]],
        operator: Any = _UNSET,
        value: Any = _UNSET,
    ) -> "QueryBuilder":
        return self.where(column, operator, value, OR)

    def where_like(
        self,
        column: str,
        pattern: str,
        boolean: str = AND,
        escape: Optional[str] = None,
    ) -> "QueryBuilder":
        """Add ``column LIKE ?``, optionally with ``ESCAPE '<char>'``."""
        if escape is None:
            return self.where(column, "LIKE", pattern, boolean)
        if len(escape) != 1 or escape == "'":
            raise InvalidQueryError(f"LIKE escape must be a single character, got {escape!r}.")
        self.wheres.append(
            BasicPredicate(column, "LIKE", pattern, _normalize_boolean(boolean), escape)
        )
        return self

    def or_where_like(self, column: str, pattern: str, escape: Optional[str] = None) -> "QueryBuilder":
        return self.where_like(column, pattern, OR, escape)

    def where_group(
        self,
        callback: Callable[["QueryBuilder"], Any],
        boolean: str = AND,
    ) -> "QueryBuilder":
        """Add a parenthesized group of predicates built by ``callback``.

        ``callback`` receives an empty builder for the same table; whatever
        WHERE predicates it adds are wrapped in ``( ... )``. An empty group
        adds nothing.
        """
        nested = QueryBuilder(self.db, self.table)
        callback(nested)
        if nested.wheres:
            self.wheres.append(GroupPredicate(tuple(nested.wheres), _normalize_boolean(boolean)))
        return self

    def or_where_group(self, callback: Callable[["QueryBuilder"], Any]) -> "QueryBuilder":
        return self.where_group(callback, OR)

    def group_wheres(self) -> "QueryBuilder":
        """Wrap the current WHERE predicates in one group.

        Predicates added afterwards with ``AND`` then constrain every branch
        of an ``OR`` chain instead of only its last term.
        """
        if len(self.wheres) > 1:
            self.wheres = [GroupPredicate(tuple(self.wheres))]
        return self

    def has_or_where(self) -> bool:
        """Whether any top-level WHERE predicate is joined with ``OR``."""
        return any(predicate.boolean == OR for predicate in self.wheres[1:])

    def where_in(
        self,
        column: str,
        values: Iterable[Any],
        boolean: str = AND,
        negated: bool = False,
    ) -> "QueryBuilder":
        """Add ``column [NOT] IN (?, ...)``; binds every value in order.

        Raises:
            InvalidQueryError: If ``values`` is empty.
        """
        values = tuple(values)
        if not values:
            raise InvalidQueryError(f"where_in('{column}') requires at least one value.")
        self.wheres.append(InPredicate(column, values, _normalize_boolean(boolean), negated))
        return self

    def where_not_in(self, column: str, values: Iterable[Any], boolean: str = AND) -> "QueryBuilder":
        return self.where_in(column, values, boolean, negated=True)

    def or_where_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where_in(column, values, OR)

    def or_where_not_in(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where_in(column, values, OR, negated=True)

    def where_null(self, column: str, boolean: str = AND, negated: bool = False) -> "QueryBuilder":
        self.wheres.append(NullPredicate(column, _normalize_boolean(boolean), negated))
        return self

    def where_not_null(self, column: str, boolean: str = AND) -> "QueryBuilder":
        return self.where_null(column, boolean, negated=True)

    def or_where_null(self, column: str) -> "QueryBuilder":
        return self.where_null(column, OR)

    def or_where_not_null(self, column: str) -> "QueryBuilder":
        return self.where_null(column, OR, negated=True)

    def where_between(
        self,
        column: str,
        values: Iterable[Any],
        boolean: str = AND,
        negated: bool = False,
    ) -> "QueryBuilder":
        """Add ``column [NOT] BETWEEN ? AND ?``; binds low then high.

        Raises:
            InvalidQueryError: If ``values`` does not hold exactly two bounds.
        """
        bounds = tuple(values)
        if len(bounds) != 2:
            raise InvalidQueryError(
                f"where_between('{column}') needs exactly two values, got {len(bounds)}."
            )
        low, high = bounds
        self.wheres.append(
            BetweenPredicate(column, low, high, _normalize_boolean(boolean), negated)
        )
        return self

    def where_not_between(self, column: str, values: Iterable[Any], boolean: str = AND) -> "QueryBuilder":
        return self.where_between(column, values, boolean, negated=True)

    def or_where_between(self, column: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where_between(column, values, OR)

    # ── GROUP BY / HAVING ──────────────────────────────────────────────────────

    def group_by(self, *columns: str) -> "QueryBuilder":
        self.groups.extend(columns)
        return self

    def having(
        self,
        column: str,
        operator: Any = _UNSET,
        value: Any = _UNSET,
        boolean: str = AND,
    ) -> "QueryBuilder":
        """Add a HAVING comparison; same call shapes as ``where``."""
        if value is _UNSET:
            operator, value = "=", operator
        if value is None or value is _UNSET:
            raise InvalidQueryError(f"having('{column}') needs a non-null value.")
        self.havings.append(
            BasicPredicate(column, _normalize_operator(operator), value, _normalize_boolean(boolean))
        )
        return self

    def or_having(self, column: str, operator: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        return self.having(column, operator, value, OR)

    # ── ORDER / LIMIT / OFFSET ─────────────────────────────────────────────────

    def order_by(self, column: str, direction: str = "asc") -> "QueryBuilder":
        """Append an ordering. Anything other than ``asc`` sorts descending."""
        self.orders.append((column, "ASC" if direction.lower() == "asc" else "DESC"))
        return self

    def order_by_desc(self, column: str) -> "QueryBuilder":
        return self.order_by(column, "desc")

    def limit(self, value: int) -> "QueryBuilder":
        self._limit = _non_negative(value, "limit")
        return self

    def offset(self, value: int) -> "QueryBuilder":
        self._offset = _non_negative(value, "offset")
        return self

    def for_page(self, page: int, per_page: int = 15) -> "QueryBuilder":
        """Set limit/offset for a 1-based page number."""
        if page < 1 or per_page < 1:
            raise InvalidQueryError(f"Invalid page {page} / per_page {per_page}.")
        return self.offset((page - 1) * per_page).limit(per_page)

    # ── Compilation ────────────────────────────────────────────────────────────

    def to_sql(self) -> str:
        """Compile the SELECT statement."""
        return self._compile_select(self.columns, with_tail=True)

    def get_bindings(self) -> list[Any]:
        """Values for every placeholder in ``to_sql()``, in textual order."""
        return collect_bindings(self.wheres) + collect_bindings(self.havings)

    def _compile_select(self, columns: list[str], with_tail: bool) -> str:
        sql = f"SELECT {', '.join(columns)} FROM {self.table}"
        sql += self._compile_where()

        if self.groups:
            sql += f" GROUP BY {', '.join(self.groups)}"
        if self.havings:
            sql += f" HAVING {compile_predicates(self.havings)}"

        if with_tail:
            if self.orders:
                sql += " ORDER BY " + ", ".join(f"{col} {direction}" for col, direction in self.orders)
            if self._limit is not None:
                sql += f" LIMIT {self._limit}"
            elif self._offset is not None:
                # SQLite only accepts OFFSET after a LIMIT; -1 means unbounded
                sql += " LIMIT -1"
            if self._offset is not None:
                sql += f" OFFSET {self._offset}"
        return sql

    def _compile_where(self) -> str:
        if not self.wheres:
            return ""
        return f" WHERE {compile_predicates(self.wheres)}"

    # ── Execution ──────────────────────────────────────────────────────────────

    def get(self) -> list[Any]:
        """Run the SELECT; returns model instances when a model is set, else dicts."""
        rows = self.db.all(self.to_sql(), self.get_bindings())
        if self.model is None:
            return rows
        return [self.model.hydrate(self.db, row) for row in rows]

    def first(self) -> Optional[Any]:
        """Run the query with ``LIMIT 1`` and return the row/model, or ``None``."""
        results = self.clone().limit(1).get()
        return results[0] if results else None

    def value(self, column: str) -> Any:
        """Return ``column`` from the first matching row, or ``None``."""
        row = self._raw().select(column).first()
        if row is None:
            return None
        return next(iter(row.values()))

    def pluck(self, column: str) -> list[Any]:
        """Return ``column`` from every matching row."""
        return [next(iter(row.values())) for row in self._raw().select(column).get()]

    def exists(self) -> bool:
        return self._raw().select("1").first() is not None

    def aggregate(self, function: str, column: str = "*") -> Any:
        """Run ``FUNCTION(column)`` over the filtered rows.

        Ordering, limit and offset are ignored. Grouped queries are wrapped
        in a subquery so the aggregate spans all groups.
        """
        function = function.upper()
        if function not in AGGREGATE_FUNCTIONS:
            raise InvalidQueryError(f"Unknown aggregate function '{function}'.")

        expression = f"{function}({column}) AS aggregate"
        if self.groups:
            inner = self._compile_select(self.columns, with_tail=False)
            sql = f"SELECT {expression} FROM ({inner}) AS grouped"
        else:
            sql = self._compile_select([expression], with_tail=False)

        row = self.db.first(sql, self.get_bindings())
        return row["aggregate"] if row else None

    def count(self, column: str = "*") -> int:
        return int(self.aggregate("count", column) or 0)

    def sum(self, column: str) -> Any:
        return self.aggregate("sum", column) or 0

    def avg(self, column: str) -> Any:
        return self.aggregate("avg", column)

    def min(self, column: str) -> Any:
        return self.aggregate("min", column)

    def max(self, column: str) -> Any:
        return self.aggregate("max", column)

    # ── Writes ─────────────────────────────────────────────────────────────────

    def insert(self, values: Mapping[str, Any]) -> int:
        """Insert one row into the table and return its generated id."""
        return self.db.insert(self.table, values)

    def update(self, values: Mapping[str, Any]) -> int:
        """Update every row matching the WHERE predicates.

        SET values are bound before WHERE values. Returns the affected row
        count.
        """
        if not values:
            raise InvalidQueryError(f"Nothing to update in '{self.table}': no columns given.")
        assignments = ", ".join(f"{column} = ?" for column in values)
        sql = f"UPDATE {self.table} SET {assignments}{self._compile_where()}"
        params = [*values.values(), *collect_bindings(self.wheres)]
        return self.db.execute(sql, params).row_count

    def delete(self) -> int:
        """Delete every row matching the WHERE predicates."""
        sql = f"DELETE FROM {self.table}{self._compile_where()}"
        return self.db.execute(sql, collect_bindings(self.wheres)).row_count

    # ── Helpers ────────────────────────────────────────────────────────────────

    def clone(self) -> "QueryBuilder":
        """Return an independent copy of this query specification."""
        other = copy.copy(self)
        other.columns = list(self.columns)
        other.wheres = list(self.wheres)
        other.groups = list(self.groups)
        other.havings = list(self.havings)
        other.orders = list(self.orders)
        return other

    def _raw(self) -> "QueryBuilder":
        other = self.clone()
        other.model = None
        return other

    def __repr__(self) -> str:
        return f"<QueryBuilder {self.to_sql()!r} bindings={self.get_bindings()!r}>"


def _normalize_operator(operator: Any) -> str:
    if not isinstance(operator, str) or operator.strip().lower() not in VALID_OPERATORS:
        raise InvalidQueryError(f"Unsupported operator {operator!r}.")
    return operator.strip().upper()


def _normalize_boolean(boolean: str) -> str:
    lowered = boolean.lower()
    if lowered not in VALID_BOOLEANS:
        raise InvalidQueryError(f"Boolean must be 'and' or 'or', got {boolean!r}.")
    return lowered


def _non_negative(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidQueryError(f"{name} must be a non-negative integer, got {value!r}.")
    return value
