"""
Campus API — User & Session Models
===================================

What:  ORM models for the `users` and `user_sessions` tables.
Who:   SqlSessionProvider joins them to resolve a session token into a
       Principal; NewsService references users as authors.

Table Design Rationale:
    - UUID primary keys: non-sequential, so ids cannot be enumerated
    - role: plain VARCHAR holding a Role value; the set is small and closed
    - token_hash: SHA-256 hex digest of the session token, never the token
    - expires_at: sessions past this instant are ignored, not deleted
"""

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_api.database import Base
from campus_api.schemas.principal import Role


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Unique: one account per address
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=Role.USER.value,
        comment="USER, INSTRUCTOR or ADMIN",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    sessions: Mapped[List["UserSession"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class UserSession(Base):
    __tablename__ = "user_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # 64 hex chars of SHA-256
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    user: Mapped[User] = relationship(back_populates="sessions")

    __table_args__ = (Index("idx_user_sessions_user_id", "user_id"),)

    def __repr__(self) -> str:
        return f"<UserSession(id={self.id}, user_id={self.user_id}, expires_at='{self.expires_at}')>"
