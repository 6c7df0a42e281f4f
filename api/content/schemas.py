"""
Content schemas: stored rows, derived aggregates, mutation input and list filters.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from core import settings
from core.errors import ValidationFailure
from tags.schemas import Tag


class Status(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SortOrder(str, Enum):
    LATEST = "latest"
    OLDEST = "oldest"
    POPULAR = "popular"


COLLECTION_TYPE = "collection"

# Filter sentinel: no status restriction at all.
STATUS_ALL = "all"


class ContentBase(BaseModel):
    id: str
    title: str
    type: str
    status: str = Status.DRAFT.value
    slug: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    published_at: datetime | None = None
    likes: int = 0
    saves: int = 0
    tags: list[Tag] = Field(default_factory=list)
    # Only set when a user is known; see content.interactions.
    liked: bool | None = None
    saved: bool | None = None


class ContentPreview(ContentBase):
    """
    List row without bodies; `child_ids` is the stored, unresolved children list.
    """

    child_ids: list[str] = Field(default_factory=list)


class ContentAggregate(ContentBase):
    """
    A content row with its tags and, for collections, one level of resolved children.
    """

    body: str | None = None
    rendered_body: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    children: list[ContentAggregate] = Field(default_factory=list)


class ContentInput(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    slug: str = Field(..., min_length=1, max_length=300)
    type: str = Field(..., min_length=1, max_length=50)
    status: Status = Status.DRAFT
    description: str | None = None
    body: str | None = None
    rendered_body: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    children: list[str] = Field(default_factory=list)
    # Tag ids; the association set is replaced with exactly these.
    tags: list[str] = Field(default_factory=list)

    @field_validator("children", "tags", mode="before")
    @classmethod
    def _ids_as_strings(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value if v is not None and str(v).strip()]
        return value

    @field_validator("tags")
    @classmethod
    def _distinct_tags(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))


class ContentFilters(BaseModel):
    search: str | None = None
    # Unset -> published only, "all" -> unrestricted, anything else -> exact match.
    status: str | None = None
    type: str | None = None
    tags: list[str] | None = None
    sort: str | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)

    @field_validator("search", "status", "type", "sort", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _one_or_many(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            slugs = [v.strip() if isinstance(v, str) else v for v in value]
            return list(dict.fromkeys(s for s in slugs if s != ""))
        return value

    @field_validator("limit")
    @classmethod
    def _limit_in_range(cls, value: int | None) -> int | None:
        max_limit = settings.content_max_limit()
        if value is not None and value > max_limit:
            raise ValueError(f"limit must be <= {max_limit}")
        return value

    @property
    def search_text(self) -> str:
        return (self.search or "").strip()

    @property
    def tag_slugs(self) -> list[str]:
        return list(self.tags or [])

    @property
    def sort_order(self) -> SortOrder:
        try:
            return SortOrder(self.sort)
        except ValueError:
            return SortOrder.LATEST


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "input"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_filters(filters: ContentFilters | dict[str, Any] | None) -> ContentFilters:
    if filters is None:
        return ContentFilters()
    if isinstance(filters, ContentFilters):
        return filters
    try:
        return ContentFilters.model_validate(filters)
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid content filters: {_validation_message(exc)}") from exc


def parse_content_input(data: ContentInput | dict[str, Any]) -> ContentInput:
    if isinstance(data, ContentInput):
        return data
    try:
        return ContentInput.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailure(f"Invalid content input: {_validation_message(exc)}") from exc
