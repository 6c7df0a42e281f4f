"""
Tag records.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Tag(BaseModel):
    id: str
    name: str
    slug: str
    color: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TagInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    slug: str = Field(..., min_length=1, max_length=120, pattern=r"^[a-z0-9_-]+$")
    color: str | None = Field(default=None, max_length=32)
