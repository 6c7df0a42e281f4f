"""
Row <-> model conversion shared by the content repositories.

asyncpg hands jsonb columns back as text unless a codec is registered, so
metadata/children may arrive either as JSON text or already decoded.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from tags.schemas import Tag

from .schemas import ContentAggregate, ContentPreview

logger = logging.getLogger(__name__)

PREVIEW_COLUMNS = """
  c.id,
  c.title,
  c.type,
  c.status,
  c.slug,
  c.description,
  c.children,
  c.created_at,
  c.updated_at,
  c.published_at,
  c.likes,
  c.saves
"""

CONTENT_COLUMNS = PREVIEW_COLUMNS.rstrip() + """,
  c.body,
  c.rendered_body,
  c.metadata
"""


def json_arg(value: Any) -> str:
    """
    asyncpg does not automatically encode Python values for json/jsonb parameters.
    We pass JSON as a string and cast to jsonb in SQL.
    """
    return json.dumps(value, ensure_ascii=True)


def _load_json(raw: Any) -> Any:
    if isinstance(raw, (str, bytes, bytearray)):
        return json.loads(raw)
    return raw


def parse_metadata(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    try:
        value = _load_json(raw)
    except ValueError:
        logger.warning("content_metadata_invalid_json")
        return {}
    return value if isinstance(value, dict) else {}


def parse_child_ids(raw: Any) -> list[str]:
    """
    Stored children list -> ordered child ids. Malformed values yield [].
    """
    if raw is None or raw == "":
        return []
    try:
        value = _load_json(raw)
    except ValueError:
        logger.warning("content_children_invalid_json")
        return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int)) and not isinstance(v, bool) and str(v).strip()]


def _base_fields(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "title": row["title"],
        "type": row["type"],
        "status": row["status"],
        "slug": row["slug"],
        "description": row.get("description"),
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
        "published_at": row.get("published_at"),
        "likes": int(row.get("likes") or 0),
        "saves": int(row.get("saves") or 0),
    }


def to_aggregate(row: dict[str, Any], tags: list[Tag]) -> ContentAggregate:
    return ContentAggregate(
        **_base_fields(row),
        body=row.get("body"),
        rendered_body=row.get("rendered_body"),
        metadata=parse_metadata(row.get("metadata")),
        tags=tags,
        children=[],
    )


def to_preview(row: dict[str, Any], tags: list[Tag]) -> ContentPreview:
    return ContentPreview(
        **_base_fields(row),
        tags=tags,
        child_ids=parse_child_ids(row.get("children")),
    )
