"""
Campus API — Session Provider
==============================

What:  Resolves request credentials (session cookie or bearer token) into the
       Principal they belong to.
Why:   The auth gate only needs "who is this?"; where sessions live is a
       deployment detail behind this interface.
How:   SqlSessionProvider looks the token up in the user_sessions table.
       Only SHA-256 hashes of tokens are stored, so a leaked table cannot
       be replayed as live cookies.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_api.models.user import User, UserSession
from campus_api.schemas.principal import Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCredentials:
    token: Optional[str] = None
    source: str = "none"  # "cookie" | "bearer" | "none"

    @property
    def present(self) -> bool:
        return bool(self.token)


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionProvider(ABC):
    """
    Contract:
        resolve_session() returns the Principal for valid credentials and None
        for missing, unknown or expired ones. It raises only for infrastructure
        failures, which the pipeline reports as INTERNAL_SERVER_ERROR.
    """

    @abstractmethod
    async def resolve_session(self, credentials: SessionCredentials) -> Optional[Principal]:
        ...


class SqlSessionProvider(SessionProvider):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def resolve_session(self, credentials: SessionCredentials) -> Optional[Principal]:
        if not credentials.present:
            return None

        now = datetime.now(timezone.utc)
        query = (
            select(User)
            .join(UserSession, UserSession.user_id == User.id)
            .where(
                UserSession.token_hash == hash_session_token(credentials.token),
                UserSession.expires_at > now,
            )
        )
        async with self._session_factory() as session:
            user = (await session.execute(query)).scalar_one_or_none()

        if user is None:
            logger.debug("No live session for %s credentials", credentials.source)
            return None
        return Principal.model_validate(user)
