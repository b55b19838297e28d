"""
Campus API — News Schemas
==========================

What:  Pydantic models for the /api/news routes: request bodies, the list
       query, and response shapes.
Why:   The validation stage parses raw input against these; handlers only
       ever see the typed result.

Design Decision:
    Schemas are separate from SQLAlchemy models:
    1. The API contract changes independently of the table layout
    2. Only listed fields are exposed (author ids yes, sessions never)
    3. Validation rules differ from DB constraints
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NewsCreate(BaseModel):
    """Body of POST /api/news."""
    title: str = Field(min_length=3, max_length=200, description="Headline")
    content: str = Field(min_length=1, max_length=20_000, description="Article body")
    published: bool = Field(default=False, description="Visible to anonymous readers")


class NewsUpdate(BaseModel):
    """
    Body of PUT /api/news/{news_id}.

    Partial update: omitted or null fields keep their value, but at least
    one field must carry a value.
    """
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1, max_length=20_000)
    published: Optional[bool] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "NewsUpdate":
        if not self.changes():
            raise ValueError("At least one of title, content or published is required")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class NewsListQuery(BaseModel):
    """
    Query string of GET /api/news.

    Parameters:
        page / limit: offset pagination, limit capped at 100
        search: case-insensitive match on title or content
        published: filter; only honoured for ADMIN and INSTRUCTOR callers,
                   everyone else only ever sees published news
        sort: newest (default) or oldest
    """
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    search: Optional[str] = Field(default=None, min_length=1, max_length=100)
    published: Optional[bool] = None
    sort: Literal["newest", "oldest"] = "newest"


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NewsResponse(BaseModel):
    id: uuid.UUID
    title: str
    content: str
    author_id: Optional[uuid.UUID] = None
    published: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NewsPage(BaseModel):
    """One page of news plus the numbers a paginator needs."""
    items: List[NewsResponse]
    total: int = Field(description="Matching rows across all pages")
    page: int
    limit: int
    has_more: bool
