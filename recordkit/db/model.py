"""
Active-record base class.

A ``Model`` instance holds the attributes of one row and knows how to
persist itself through a ``ConnectionManager``. Subclasses declare their
table and column policy as class attributes::

    class CreditPack(Model):
        table = "credit_packs"
        fillable = frozenset({"name", "credits", "price", "is_active", "sort_order"})
        casts = {"credits": "int", "price": "float", "is_active": "bool"}
        timestamps = True

Lifecycle (``ModelState``)::

    NEW ──save()──▶ PERSISTED ──save()──▶ PERSISTED
                        │
                     delete()
                        ▼
                    DETACHED   (terminal: save/delete/fill raise)

Mass assignment: ``fill()`` only accepts keys listed in ``fillable`` plus the
primary key, and returns the set of keys it dropped. Rows loaded from the
database and the id assigned after INSERT bypass the whitelist.

Casts are applied on read (``get_attribute``). Supported cast names:
``int``, ``float``, ``str``, ``bool``, ``json``, ``datetime``, ``date``.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Mapping, Optional, TypeVar

from recordkit.db.query import QueryBuilder
from recordkit.exceptions import DetachedInstanceError, NotFoundError
from recordkit.utils.text import foreign_key_for, format_timestamp, parse_timestamp, utc_now

if TYPE_CHECKING:
    from recordkit.db.connection import ConnectionManager, Row

logger = logging.getLogger(__name__)

M = TypeVar("M", bound="Model")
R = TypeVar("R", bound="Model")

VALID_CASTS = frozenset({"int", "float", "str", "bool", "json", "datetime", "date"})

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"


class ModelState(str, Enum):
    """Persistence state of a model instance."""

    NEW = "new"
    PERSISTED = "persisted"
    DETACHED = "detached"


class Model:
    """Base class for one-row-per-instance entities.

    Attributes:
        attributes: Raw column → value mapping as stored (un-cast).
        state: Current ``ModelState``.
        rejected: Keys dropped by the constructor's mass assignment.
    """

    table: ClassVar[str] = ""
    primary_key: ClassVar[str] = "id"
    fillable: ClassVar[frozenset[str]] = frozenset()
    casts: ClassVar[dict[str, str]] = {}
    timestamps: ClassVar[bool] = False

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        unknown = set(cls.casts.values()) - VALID_CASTS
        if unknown:
            raise TypeError(f"{cls.__name__} declares unknown casts: {sorted(unknown)}")

    def __init__(
        self,
        db: "ConnectionManager",
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._db = db
        self.attributes: dict[str, Any] = {}
        self.state = ModelState.NEW
        self.rejected: frozenset[str] = frozenset()
        if attributes:
            self.rejected = self.fill(attributes)

    # ── Attribute access ───────────────────────────────────────────────────────

    @property
    def exists(self) -> bool:
        return self.state is ModelState.PERSISTED

    @classmethod
    def is_fillable(cls, key: str) -> bool:
        return key in cls.fillable or key == cls.primary_key

    def fill(self, attributes: Mapping[str, Any]) -> frozenset[str]:
        """Bulk-assign whitelisted attributes.

        Keys outside ``fillable`` (other than the primary key) are silently
        skipped and returned so callers can detect them.

        Returns:
            The keys that were not assigned.
        """
        self._ensure_attached("fill")
        rejected = set()
        for key, value in attributes.items():
            if self.is_fillable(key):
                self.attributes[key] = value
            else:
                rejected.add(key)
        if rejected:
            logger.debug(
                "%s: ignored non-fillable attributes %s", type(self).__name__, sorted(rejected)
            )
        return frozenset(rejected)

    def set_attribute(self, key: str, value: Any) -> None:
        """Assign one attribute directly, bypassing the fillable whitelist."""
        self._ensure_attached("modify")
        self.attributes[key] = value

    def get_attribute(self, key: str) -> Any:
        """Return the cast value of ``key``.

        Falls back to a computed accessor named ``get_<key>_attribute`` when
        the attribute is not set, then to ``None``.
        """
        if key in self.attributes:
            return self._cast(key, self.attributes[key])
        accessor = getattr(self, f"get_{key}_attribute", None)
        if callable(accessor):
            return accessor()
        return None

    def __getitem__(self, key: str) -> Any:
        return self.get_attribute(key)

    def __contains__(self, key: object) -> bool:
        return key in self.attributes

    def get_key(self) -> Any:
        return self.attributes.get(self.primary_key)

    def get_attributes(self) -> dict[str, Any]:
        """Copy of the raw (un-cast) attributes."""
        return dict(self.attributes)

    def to_dict(self) -> dict[str, Any]:
        """Cast attributes as a plain dict."""
        return {key: self.get_attribute(key) for key in self.attributes}

    def _cast(self, key: str, value: Any) -> Any:
        cast = self.casts.get(key)
        if value is None or cast is None:
            return value
        if cast == "int":
            return int(value)
        if cast == "float":
            return float(value)
        if cast == "str":
            return str(value)
        if cast == "bool":
            return bool(int(value)) if isinstance(value, str) else bool(value)
        if cast == "json":
            return json.loads(value) if isinstance(value, (str, bytes)) else value
        if cast == "datetime":
            if isinstance(value, datetime):
                # naive values are stored as UTC
                return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
            return parse_timestamp(str(value))
        if cast == "date":
            if isinstance(value, datetime):
                return value.date()
            return value if isinstance(value, date) else date.fromisoformat(str(value)[:10])
        return value

    def attributes_for_storage(self) -> dict[str, Any]:
        """Attributes converted for binding (JSON columns serialized)."""
        data = {}
        for key, value in self.attributes.items():
            if self.casts.get(key) == "json" and value is not None and not isinstance(value, str):
                value = json.dumps(value)
            data[key] = value
        return data

    # ── Persistence ────────────────────────────────────────────────────────────

    def save(self) -> bool:
        """INSERT a new instance or UPDATE a persisted one.

        Returns:
            ``True`` if a row was written; ``False`` if an UPDATE matched no row.

        Raises:
            DetachedInstanceError: If the instance was deleted.
            QueryError: If the driver rejects the write.
        """
        self._ensure_attached("save")
        if self.exists:
            return self._perform_update()
        return self._perform_insert()

    def _perform_insert(self) -> bool:
        if self.attributes.get(self.primary_key) is None:
            self.attributes.pop(self.primary_key, None)

        if self.timestamps:
            now = format_timestamp(utc_now())
            self.attributes[CREATED_AT] = now
            self.attributes[UPDATED_AT] = now

        new_id = self._db.insert(self.table, self.attributes_for_storage())
        self.attributes.setdefault(self.primary_key, new_id)
        self.state = ModelState.PERSISTED
        logger.debug("Inserted %s id=%s", type(self).__name__, self.get_key())
        return True

    def _perform_update(self) -> bool:
        if self.timestamps:
            self.attributes[UPDATED_AT] = format_timestamp(utc_now())

        data = self.attributes_for_storage()
        data.pop(self.primary_key, None)
        if not data:
            return True

        affected = self._db.update(self.table, data, f"{self.primary_key} = ?", (self.get_key(),))
        if affected == 0:
            logger.warning(
                "Update of %s id=%s matched no rows", type(self).__name__, self.get_key()
            )
        return affected > 0

    def delete(self) -> bool:
        """DELETE the backing row; the instance becomes DETACHED.

        Raises:
            DetachedInstanceError: If the instance was never saved or is
                already deleted.
        """
        if not self.exists:
            raise DetachedInstanceError(type(self).__name__, self.get_key(), "delete")
        affected = self._db.delete(self.table, f"{self.primary_key} = ?", (self.get_key(),))
        self.state = ModelState.DETACHED
        return affected > 0

    def refresh(self: M) -> M:
        """Reload attributes from the database.

        Raises:
            NotFoundError: If the row no longer exists.
        """
        if not self.exists:
            raise DetachedInstanceError(type(self).__name__, self.get_key(), "refresh")
        row = self._db.first(
            f"SELECT * FROM {self.table} WHERE {self.primary_key} = ?", (self.get_key(),)
        )
        if row is None:
            raise NotFoundError(type(self).__name__, self.get_key())
        self.attributes = dict(row)
        return self

    def _ensure_attached(self, action: str) -> None:
        if self.state is ModelState.DETACHED:
            raise DetachedInstanceError(type(self).__name__, self.get_key(), action)

    # ── Class-level finders ────────────────────────────────────────────────────

    @classmethod
    def query(cls, db: "ConnectionManager") -> QueryBuilder:
        """A fresh builder on this model's table that returns instances."""
        return QueryBuilder(db, cls.table, cls)

    @classmethod
    def hydrate(cls: type[M], db: "ConnectionManager", row: "Row") -> M:
        """Build a PERSISTED instance from a database row (no whitelist)."""
        instance = cls(db)
        instance.attributes = dict(row)
        instance.state = ModelState.PERSISTED
        return instance

    @classmethod
    def find(cls: type[M], db: "ConnectionManager", key: Any) -> Optional[M]:
        return cls.query(db).where(cls.primary_key, key).first()

    @classmethod
    def find_or_fail(cls: type[M], db: "ConnectionManager", key: Any) -> M:
        model = cls.find(db, key)
        if model is None:
            raise NotFoundError(cls.__name__, key)
        return model

    @classmethod
    def all(cls: type[M], db: "ConnectionManager") -> list[M]:
        return cls.query(db).get()

    @classmethod
    def create(cls: type[M], db: "ConnectionManager", attributes: Mapping[str, Any]) -> M:
        """Instantiate with mass assignment and save immediately."""
        model = cls(db, attributes)
        model.save()
        return model

    # ── Relations ──────────────────────────────────────────────────────────────

    def belongs_to(
        self,
        related: type[R],
        foreign_key: Optional[str] = None,
        owner_key: Optional[str] = None,
    ) -> Optional[R]:
        """Resolve the owning ``related`` instance through a foreign key.

        ``foreign_key`` defaults to ``<related_snake_name>_id`` on this model;
        ``owner_key`` defaults to the related model's primary key.
        """
        foreign_key = foreign_key or foreign_key_for(related.__name__)
        value = self.get_attribute(foreign_key)
        if value is None:
            return None
        if owner_key is None or owner_key == related.primary_key:
            return related.find(self._db, value)
        return related.query(self._db).where(owner_key, value).first()

    def has_many(self, related: type[R], foreign_key: Optional[str] = None) -> list[R]:
        """Return every ``related`` row pointing back at this instance."""
        foreign_key = foreign_key or foreign_key_for(type(self).__name__)
        return related.query(self._db).where(foreign_key, self.get_key()).get()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.primary_key}={self.get_key()!r} state={self.state.value}>"
