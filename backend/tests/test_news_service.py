"""
Campus API — News Service Tests
================================

What:  NewsService CRUD against in-memory SQLite.

What we test:
    ✅ create / get / update / delete round trip
    ✅ Unknown ids raise NotFoundError
    ✅ Drafts hidden from readers, visible to editors
    ✅ Pagination, search, published filter, sort order
    ✅ NewsUpdate requires at least one value
"""

import uuid

import pytest
from pydantic import ValidationError as SchemaError

from campus_api.exceptions import NotFoundError
from campus_api.schemas.news import NewsCreate, NewsListQuery, NewsUpdate
from campus_api.services.news_service import NewsService


@pytest.fixture
def service(session_factory) -> NewsService:
    return NewsService(session_factory)


async def seed(service: NewsService, titles_published):
    created = []
    for title, published in titles_published:
        created.append(await service.create(
            NewsCreate(title=title, content=f"Body of {title}", published=published),
            author_id=None,
        ))
    return created


class TestNewsCrud:
    @pytest.mark.asyncio
    async def test_create_then_get(self, service):
        author = uuid.uuid4()
        created = await service.create(
            NewsCreate(title="Library hours", content="Open until 22:00", published=True),
            author_id=author,
        )

        fetched = await service.get(created.id)

        assert fetched.title == "Library hours"
        assert fetched.author_id == author
        assert fetched.published is True

    @pytest.mark.asyncio
    async def test_get_unknown_id_raises_not_found(self, service):
        missing = uuid.uuid4()
        with pytest.raises(NotFoundError) as exc_info:
            await service.get(missing)
        assert exc_info.value.resource_id == str(missing)

    @pytest.mark.asyncio
    async def test_draft_is_not_found_for_readers(self, service):
        (draft,) = await seed(service, [("Draft notice", False)])

        with pytest.raises(NotFoundError):
            await service.get(draft.id, include_unpublished=False)
        assert (await service.get(draft.id, include_unpublished=True)).id == draft.id

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, service):
        (news,) = await seed(service, [("Exam schedule", False)])

        updated = await service.update(news.id, NewsUpdate(published=True))

        assert updated.published is True
        assert updated.title == "Exam schedule"
        assert updated.content == "Body of Exam schedule"

    @pytest.mark.asyncio
    async def test_update_unknown_id_raises_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.update(uuid.uuid4(), NewsUpdate(title="Nothing here"))

    @pytest.mark.asyncio
    async def test_delete(self, service):
        (news,) = await seed(service, [("Cafeteria closed", True)])

        await service.delete(news.id)

        with pytest.raises(NotFoundError):
            await service.get(news.id)
        with pytest.raises(NotFoundError):
            await service.delete(news.id)


class TestNewsListing:
    @pytest.mark.asyncio
    async def test_readers_only_see_published(self, service):
        await seed(service, [("Public one", True), ("Secret draft", False), ("Public two", True)])

        page = await service.list(NewsListQuery())

        assert page.total == 2
        assert {item.title for item in page.items} == {"Public one", "Public two"}

    @pytest.mark.asyncio
    async def test_editors_can_filter_drafts(self, service):
        await seed(service, [("Public one", True), ("Secret draft", False)])

        everything = await service.list(NewsListQuery(), include_unpublished=True)
        drafts = await service.list(NewsListQuery(published=False), include_unpublished=True)

        assert everything.total == 2
        assert [item.title for item in drafts.items] == ["Secret draft"]

    @pytest.mark.asyncio
    async def test_pagination_and_sort(self, service):
        await seed(service, [(f"Item {n}", True) for n in range(5)])

        first = await service.list(NewsListQuery(page=1, limit=2, sort="oldest"))
        last = await service.list(NewsListQuery(page=3, limit=2, sort="oldest"))

        assert [item.title for item in first.items] == ["Item 0", "Item 1"]
        assert first.has_more is True
        assert [item.title for item in last.items] == ["Item 4"]
        assert last.has_more is False
        assert last.total == 5

    @pytest.mark.asyncio
    async def test_search_matches_title_or_content(self, service):
        await seed(service, [("Robotics club", True), ("Chess night", True)])

        page = await service.list(NewsListQuery(search="robot"))

        assert [item.title for item in page.items] == ["Robotics club"]


class TestNewsSchemas:
    def test_update_needs_at_least_one_value(self):
        with pytest.raises(SchemaError):
            NewsUpdate()
        with pytest.raises(SchemaError):
            NewsUpdate(title=None)

    def test_list_query_bounds(self):
        with pytest.raises(SchemaError):
            NewsListQuery(limit=101)
        with pytest.raises(SchemaError):
            NewsListQuery(sort="random")
