"""
Base repository providing shared query helpers for one entity.

All repositories inherit from ``BaseRepository`` and receive a
``ConnectionManager`` at construction time. The manager is opened and
owned by the caller; repositories never open transactions on their own.

Design:
  - Named, intention-revealing methods live on the entity repositories.
  - Queries are built with ``QueryBuilder``; aggregates that do not fit the
    builder use explicit SQL through ``fetchone()`` / ``fetchall()``.
  - Repositories speak ``Model`` instances and pydantic result models,
    not raw dicts.
  - Nothing is cached between calls.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Generic, Mapping, Optional, Sequence, TypeVar

from recordkit.config import PaginationConfig
from recordkit.db.connection import ConnectionManager, Row
from recordkit.db.model import Model
from recordkit.db.query import QueryBuilder
from recordkit.exceptions import InvalidQueryError, NotFoundError
from recordkit.models.pagination import Page
from recordkit.utils.text import format_timestamp, utc_now

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Model)

Filters = Mapping[str, Any]


class BaseRepository(Generic[M]):
    """Shared CRUD, lookup and pagination helpers.

    Subclasses set ``model`` (and optionally ``table`` when it differs from
    ``model.table``).

    Attributes:
        db: The active ``ConnectionManager``.
        pagination: Page-size defaults and limits.
    """

    model: ClassVar[type[Model]]
    table: ClassVar[Optional[str]] = None

    def __init__(
        self,
        db: ConnectionManager,
        pagination: Optional[PaginationConfig] = None,
    ) -> None:
        self.db = db
        self.pagination = pagination or PaginationConfig()

    def get_table(self) -> str:
        return self.table or self.model.table

    def new_query(self) -> QueryBuilder:
        """A fresh builder for this repository's table that returns models."""
        return QueryBuilder(self.db, self.get_table(), self.model)

    # ── Raw SQL helpers ────────────────────────────────────────────────────────

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.db.first(sql, params)

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Execute a query and return all rows."""
        return self.db.all(sql, params)

    def hydrate_all(self, rows: Sequence[Row]) -> list[M]:
        return [self.model.hydrate(self.db, row) for row in rows]

    # ── Lookups ────────────────────────────────────────────────────────────────

    def find(self, key: Any) -> Optional[M]:
        """Fetch by primary key, or ``None``."""
        return self.new_query().where(self.model.primary_key, key).first()

    def find_or_fail(self, key: Any) -> M:
        """Fetch by primary key.

        Raises:
            NotFoundError: If no row has this key.
        """
        instance = self.find(key)
        if instance is None:
            raise NotFoundError(self.model.__name__, key)
        return instance

    def find_by(self, field: str, value: Any) -> Optional[M]:
        """First row where ``field`` equals ``value``, or ``None``."""
        return self.new_query().where(field, value).first()

    def find_all_by(self, field: str, value: Any) -> list[M]:
        """Every row where ``field`` equals ``value``."""
        return self.new_query().where(field, value).get()

    def find_one_by(self, criteria: Filters) -> Optional[M]:
        """First row matching all ``criteria`` (see ``apply_filters``)."""
        return self.apply_filters(self.new_query(), criteria).first()

    def find_all_by_criteria(self, criteria: Filters) -> list[M]:
        return self.apply_filters(self.new_query(), criteria).get()

    def all(self) -> list[M]:
        return self.new_query().get()

    def count(self, filters: Optional[Filters] = None) -> int:
        return self.apply_filters(self.new_query(), filters).count()

    def exists(self, key: Any) -> bool:
        return self.new_query().where(self.model.primary_key, key).exists()

    # ── Writes ─────────────────────────────────────────────────────────────────

    def create(self, data: Mapping[str, Any]) -> M:
        """Mass-assign ``data`` onto a new model and insert it."""
        return self.model.create(self.db, data)

    def update(self, key: Any, data: Mapping[str, Any]) -> bool:
        """Update the row with primary key ``key`` from whitelisted ``data``.

        Returns:
            ``True`` if a row was updated.
        """
        instance = self.model(self.db)
        rejected = instance.fill(data)
        if rejected:
            logger.debug("%s.update ignored %s", type(self).__name__, sorted(rejected))

        payload = instance.attributes_for_storage()
        payload.pop(self.model.primary_key, None)
        if self.model.timestamps:
            payload["updated_at"] = format_timestamp(utc_now())
        if not payload:
            return False

        affected = self.new_query().where(self.model.primary_key, key).update(payload)
        return affected > 0

    def delete(self, key: Any) -> bool:
        """Delete the row with primary key ``key``; ``True`` if one was removed."""
        return self.new_query().where(self.model.primary_key, key).delete() > 0

    # ── Pagination ─────────────────────────────────────────────────────────────

    def paginate(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        filters: Optional[Filters] = None,
        query: Optional[QueryBuilder] = None,
    ) -> Page[M]:
        """Return one page of rows plus totals computed from the same filters.

        Args:
            page: 1-based page number.
            per_page: Page size; defaults to ``pagination.default_per_page``
                and is capped at ``pagination.max_per_page``.
            filters: Column filters applied to both the page and count queries.
            query: Optional pre-built query (ordering, extra predicates) to
                paginate instead of a bare table query.

        Raises:
            InvalidQueryError: If ``page`` or ``per_page`` is below 1.
        """
        per_page = self.pagination.default_per_page if per_page is None else per_page
        if page < 1 or per_page < 1:
            raise InvalidQueryError(f"Invalid page {page} / per_page {per_page}.")
        per_page = min(per_page, self.pagination.max_per_page)

        base = self.apply_filters(query.clone() if query else self.new_query(), filters)
        total = base.clone().count()
        items = base.for_page(page, per_page).get()

        logger.debug(
            "%s.paginate page=%d per_page=%d total=%d", type(self).__name__, page, per_page, total
        )
        return Page.build(items=items, total=total, page=page, per_page=per_page)

    @staticmethod
    def apply_filters(query: QueryBuilder, filters: Optional[Filters]) -> QueryBuilder:
        """Add one predicate per filter entry.

        Scalars become ``=``, ``None`` becomes ``IS NULL`` and list/tuple/set
        values become ``IN (...)``. When ``query`` already holds an ``OR``
        chain, its predicates are grouped first so the filters narrow every
        branch.
        """
        if filters and query.has_or_where():
            query.group_wheres()
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set, frozenset)):
                query.where_in(column, value)
            else:
                query.where(column, value)
        return query
