"""
Typed result shapes returned by repositories.

``Page`` wraps one page of model instances together with the totals
computed from the same filters. Aggregate result models are frozen and
hold plain numbers only.
"""

from __future__ import annotations

import math
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a filtered result set.

    Attributes:
        items: Instances on this page (``len(items) <= per_page``).
        total: Count of all rows matching the filters, ignoring paging.
        page: 1-based page number.
        per_page: Requested page size.
        total_pages: ``ceil(total / per_page)``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    items: list[T]
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    per_page: int = Field(ge=1)
    total_pages: int = Field(ge=0)

    @classmethod
    def build(cls, items: list[T], total: int, page: int, per_page: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total / per_page),
        )

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    def to_dict(self) -> dict[str, Any]:
        """Plain dict with items rendered through their ``to_dict()``."""
        return {
            "items": [getattr(item, "to_dict", lambda: item)() for item in self.items],
            "total": self.total,
            "page": self.page,
            "per_page": self.per_page,
            "total_pages": self.total_pages,
        }


class GiftStats(BaseModel):
    """Per-sender gift counters and totals."""

    model_config = ConfigDict(frozen=True)

    total_sent: int = 0
    redeemed: int = 0
    pending: int = 0
    expired: int = 0
    total_credits_gifted: int = 0
    total_amount_spent: float = 0.0

    @field_validator("*", mode="before")
    @classmethod
    def null_to_zero(cls, v: Any) -> Any:
        # SUM() over zero rows yields NULL
        return 0 if v is None else v


class UserStatistics(BaseModel):
    """Headline user counts for dashboards."""

    model_config = ConfigDict(frozen=True)

    total_users: int = 0
    verified_users: int = 0
    active_subscribers: int = 0
    new_last_7_days: int = 0
    total_credits_outstanding: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def null_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class GiftCodeCheck(BaseModel):
    """Outcome of validating a gift code before redemption.

    ``gift`` is set only when ``valid`` is true; ``reason`` only when false.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    valid: bool
    reason: Optional[str] = None
    gift: Optional[Any] = None
