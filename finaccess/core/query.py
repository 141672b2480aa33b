"""Immutable query options shared by page and stream operations."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, InstanceOf, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..config import MAX_PAGE_SIZE
from .user import User


def _wire_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_wire_value(item) for item in value]
        return ",".join(item for item in items if item is not None)
    return str(value)


class Query(BaseModel):
    """
    Filter options for listing a resource.

    - ``limit``: total number of entities for a stream (None = unbounded), or
      the page size for a single page (defaults to the configured page size,
      never above 100).
    - ``after`` / ``before``: inclusive creation date bounds (``date`` or
      ``YYYY-MM-DD``).
    - ``types``: only entities whose type is in this list.
    - ``ids``: only entities with these ids.
    - ``cursor``: opaque continuation token from a previous page; passed back
      verbatim. Ignored by streams, which always start from the first page.
    - ``user``: credential overriding the client's default identity for this
      call only.
    - ``filters``: resource-specific extra filters, snake_case keys
      (e.g. ``request_ids``), sent camelCased.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, extra="forbid")

    limit: Optional[int] = Field(default=None, ge=1)
    after: Optional[date] = None
    before: Optional[date] = None
    types: Optional[Tuple[str, ...]] = None
    ids: Optional[Tuple[str, ...]] = None
    cursor: Optional[str] = None
    user: Optional[InstanceOf[User]] = None
    filters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("types", "ids", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("types", "ids")
    @classmethod
    def _non_empty_strings(cls, value: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
        if value is None:
            return None
        if any(not item.strip() for item in value):
            raise ValueError("entries must be non-empty strings")
        return value

    @field_validator("filters")
    @classmethod
    def _known_shape(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        reserved = {"limit", "cursor", "after", "before", "types", "ids"}
        clashing = reserved.intersection(value)
        if clashing:
            raise ValueError(f"use the dedicated Query fields for {sorted(clashing)}")
        return {key: item for key, item in value.items() if item is not None}

    @model_validator(mode="after")
    def _date_range(self) -> "Query":
        if self.after and self.before and self.after > self.before:
            raise ValueError("after must not be later than before")
        return self

    def with_cursor(self, cursor: Optional[str]) -> "Query":
        return self.model_copy(update={"cursor": cursor})

    def with_limit(self, limit: Optional[int]) -> "Query":
        return Query(**{**self.as_options(), "limit": limit})

    def as_options(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in type(self).model_fields}

    def to_params(self, limit: Optional[int] = None) -> Dict[str, str]:
        """Serialize to wire query parameters. ``limit`` is the page size to request."""
        raw: Dict[str, Any] = {
            "limit": limit,
            "cursor": self.cursor,
            "after": self.after,
            "before": self.before,
            "types": self.types,
            "ids": self.ids,
        }
        raw.update({to_camel(key): value for key, value in self.filters.items()})
        params: Dict[str, str] = {}
        for key, value in raw.items():
            wired = _wire_value(value)
            if wired is not None and wired != "":
                params[key] = wired
        return params
