"""
WHERE / HAVING predicate nodes and their SQL compilers.

Each node is a small frozen dataclass describing one condition. Nodes know
how to render themselves (``to_sql()``) and which values they bind
(``bindings()``), so the number of ``?`` placeholders a node emits always
equals the length of its bindings.

Negated IN lists render as ``col NOT IN (...)``. Groups render their
children inside parentheses and bind their children's values in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

AND = "and"
OR = "or"

VALID_BOOLEANS = frozenset({AND, OR})

VALID_OPERATORS = frozenset({
    "=", "<", ">", "<=", ">=", "<>", "!=",
    "like", "not like", "is", "is not",
})


@dataclass(frozen=True)
class BasicPredicate:
    """``column <operator> ?``"""

    column: str
    operator: str
    value: Any
    boolean: str = AND
    escape: Optional[str] = None

    def to_sql(self) -> str:
        if self.escape is not None:
            return f"{self.column} {self.operator} ? ESCAPE '{self.escape}'"
        return f"{self.column} {self.operator} ?"

    def bindings(self) -> tuple[Any, ...]:
        return (self.value,)


@dataclass(frozen=True)
class InPredicate:
    """``column [NOT] IN (?, ?, ...)``"""

    column: str
    values: tuple[Any, ...]
    boolean: str = AND
    negated: bool = False

    def to_sql(self) -> str:
        placeholders = ", ".join("?" for _ in self.values)
        keyword = "NOT IN" if self.negated else "IN"
        return f"{self.column} {keyword} ({placeholders})"

    def bindings(self) -> tuple[Any, ...]:
        return self.values


@dataclass(frozen=True)
class NullPredicate:
    """``column IS [NOT] NULL``"""

    column: str
    boolean: str = AND
    negated: bool = False

    def to_sql(self) -> str:
        return f"{self.column} IS NOT NULL" if self.negated else f"{self.column} IS NULL"

    def bindings(self) -> tuple[Any, ...]:
        return ()


@dataclass(frozen=True)
class BetweenPredicate:
    """``column [NOT] BETWEEN ? AND ?``"""

    column: str
    low: Any
    high: Any
    boolean: str = AND
    negated: bool = False

    def to_sql(self) -> str:
        keyword = "NOT BETWEEN" if self.negated else "BETWEEN"
        return f"{self.column} {keyword} ? AND ?"

    def bindings(self) -> tuple[Any, ...]:
        return (self.low, self.high)


@dataclass(frozen=True)
class GroupPredicate:
    """``( nested AND/OR predicates )``

    Lets a later ``AND`` constrain every branch of an ``OR`` chain.
    """

    predicates: tuple["Predicate", ...]
    boolean: str = AND

    def to_sql(self) -> str:
        return f"({compile_predicates(self.predicates)})"

    def bindings(self) -> tuple[Any, ...]:
        return tuple(collect_bindings(self.predicates))


Predicate = Union[BasicPredicate, InPredicate, NullPredicate, BetweenPredicate, GroupPredicate]


def compile_predicates(predicates: Sequence[Predicate]) -> str:
    """Join predicates with their boolean keywords.

    Every node is prefixed by its boolean; the prefix of the first node is
    then stripped so the clause never starts with ``and``/``or``.
    """
    parts = [f"{p.boolean.upper()} {p.to_sql()}" for p in predicates]
    if not parts:
        return ""
    parts[0] = _strip_leading_boolean(parts[0])
    return " ".join(parts)


def _strip_leading_boolean(sql: str) -> str:
    lowered = sql.lower()
    for keyword in (AND, OR):
        if lowered.startswith(keyword + " "):
            return sql[len(keyword) + 1:]
    return sql


def collect_bindings(predicates: Sequence[Predicate]) -> list[Any]:
    """Concatenate the bindings of ``predicates`` in declaration order."""
    values: list[Any] = []
    for predicate in predicates:
        values.extend(predicate.bindings())
    return values
