"""
Campus API — News Service
==========================

What:  CRUD for campus news, independent of HTTP concerns.
Who:   Called by the /api/news handlers; reads and writes the `news` table.
How:   Each call opens its own unit of work via session_scope(), so the
       service holds no per-request state and one instance serves the app.

Errors:
    Unknown ids raise NotFoundError (→ 404 envelope). Database failures
    propagate and the pipeline reports them as INTERNAL_SERVER_ERROR.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import asc, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_api.database import session_scope
from campus_api.exceptions import NotFoundError
from campus_api.models.news import News
from campus_api.schemas.news import (
    NewsCreate,
    NewsListQuery,
    NewsPage,
    NewsResponse,
    NewsUpdate,
)

logger = logging.getLogger(__name__)


class NewsService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(self, data: NewsCreate, author_id: Optional[uuid.UUID]) -> NewsResponse:
        async with session_scope(self._session_factory) as session:
            news = News(
                title=data.title,
                content=data.content,
                published=data.published,
                author_id=author_id,
            )
            session.add(news)
            await session.flush()
            await session.refresh(news)
            logger.info("News %s created by %s", news.id, author_id)
            return NewsResponse.model_validate(news)

    async def get(self, news_id: uuid.UUID, include_unpublished: bool = True) -> NewsResponse:
        """
        Raises NotFoundError for unknown ids, and for drafts when
        include_unpublished is False (drafts do not exist for readers).
        """
        async with self._session_factory() as session:
            news = await session.get(News, news_id)

        if news is None or (not include_unpublished and not news.published):
            raise NotFoundError(resource="news", resource_id=str(news_id))
        return NewsResponse.model_validate(news)

    async def list(self, query: NewsListQuery, include_unpublished: bool = False) -> NewsPage:
        """
        Offset-paginated listing.

        Query plan (default sort, published only):
            SELECT ... FROM news WHERE published = true
            ORDER BY created_at DESC LIMIT :limit OFFSET :offset
        """
        conditions = []
        if not include_unpublished:
            conditions.append(News.published.is_(True))
        elif query.published is not None:
            conditions.append(News.published.is_(query.published))

        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(or_(News.title.ilike(pattern), News.content.ilike(pattern)))

        order = desc(News.created_at) if query.sort == "newest" else asc(News.created_at)
        offset = (query.page - 1) * query.limit

        async with self._session_factory() as session:
            rows = await session.execute(
                select(News).where(*conditions).order_by(order).offset(offset).limit(query.limit)
            )
            items = [NewsResponse.model_validate(row) for row in rows.scalars().all()]
            total = (
                await session.execute(select(func.count(News.id)).where(*conditions))
            ).scalar_one()

        return NewsPage(
            items=items,
            total=total,
            page=query.page,
            limit=query.limit,
            has_more=offset + len(items) < total,
        )

    async def update(self, news_id: uuid.UUID, data: NewsUpdate) -> NewsResponse:
        async with session_scope(self._session_factory) as session:
            news = await session.get(News, news_id)
            if news is None:
                raise NotFoundError(resource="news", resource_id=str(news_id))

            changes = data.changes()
            for field, value in changes.items():
                setattr(news, field, value)
            await session.flush()
            await session.refresh(news)
            logger.info("News %s updated (%s)", news_id, ", ".join(sorted(changes)))
            return NewsResponse.model_validate(news)

    async def delete(self, news_id: uuid.UUID) -> None:
        async with session_scope(self._session_factory) as session:
            news = await session.get(News, news_id)
            if news is None:
                raise NotFoundError(resource="news", resource_id=str(news_id))
            await session.delete(news)
        logger.info("News %s deleted", news_id)
