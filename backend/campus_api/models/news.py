"""
Campus API — News Model
========================

What:  ORM model for the `news` table (campus announcements).
Who:   NewsService performs all reads and writes.

Query Patterns:
    - List newest first: ORDER BY created_at DESC LIMIT :limit OFFSET :offset
      → idx_news_created_at
    - Published only: WHERE published = true → idx_news_published
    - Search: title/content ILIKE '%term%' (sequential scan, acceptable at
      campus scale)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from campus_api.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class News(Base):
    __tablename__ = "news"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # SET NULL: news outlives a deleted author account
    author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_news_created_at", created_at.desc()),
        Index("idx_news_published", "published"),
    )

    def __repr__(self) -> str:
        return f"<News(id={self.id}, title='{self.title}', published={self.published})>"
