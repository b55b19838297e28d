"""
Campus API — News Routes
=========================

What:  Campus announcements: anyone reads published news, instructors and
       admins write it, only admins delete it. An instructor edits only news
       they wrote; admins edit anything.
How:   Two pipeline endpoints, one per path. Each declares its verbs; any
       other verb is answered with 405 and an Allow header.

Visibility:
    Anonymous and USER callers only ever see published news. ADMIN and
    INSTRUCTOR callers also see drafts, and may filter with ?published=.
    A draft requested by id by someone who cannot see it is a 404, not a 403.
"""

from fastapi import APIRouter
from starlette.responses import Response

from campus_api.exceptions import ForbiddenError
from campus_api.middleware.context import RequestContext, Route, RouteConfig
from campus_api.middleware.pipeline import PipelineComposer, attach
from campus_api.schemas.envelope import success_response
from campus_api.schemas.news import NewsCreate, NewsListQuery, NewsUpdate
from campus_api.schemas.principal import Role
from campus_api.services.news_service import NewsService

EDITORS = (Role.ADMIN, Role.INSTRUCTOR)


def _service(ctx: RequestContext) -> NewsService:
    return ctx.request.app.state.news_service


def _can_see_drafts(ctx: RequestContext) -> bool:
    return ctx.is_authenticated and ctx.principal.role in EDITORS


# ── Handlers ──────────────────────────────────────────────────────────────

async def list_news(ctx: RequestContext, query: NewsListQuery) -> Response:
    page = await _service(ctx).list(query, include_unpublished=_can_see_drafts(ctx))
    return success_response(page)


async def create_news(ctx: RequestContext, data: NewsCreate) -> Response:
    news = await _service(ctx).create(data, author_id=ctx.principal.id)
    return success_response(news, status_code=201, message="News created")


async def get_news(ctx: RequestContext, data: None) -> Response:
    news_id = ctx.request.path_params["news_id"]
    news = await _service(ctx).get(news_id, include_unpublished=_can_see_drafts(ctx))
    return success_response(news)


async def update_news(ctx: RequestContext, data: NewsUpdate) -> Response:
    news_id = ctx.request.path_params["news_id"]
    service = _service(ctx)
    if ctx.principal.role is not Role.ADMIN:
        current = await service.get(news_id)
        if current.author_id != ctx.principal.id:
            raise ForbiddenError("You can only edit news you wrote")
    news = await service.update(news_id, data)
    return success_response(news, message="News updated")


async def delete_news(ctx: RequestContext, data: None) -> Response:
    await _service(ctx).delete(ctx.request.path_params["news_id"])
    return success_response(message="News deleted")


# ── Router ────────────────────────────────────────────────────────────────

def build_router(pipeline: PipelineComposer) -> APIRouter:
    router = APIRouter(tags=["News"])

    collection = pipeline.api({
        "GET": Route(list_news, RouteConfig(
            require_auth=False, schema=NewsListQuery, schema_source="query",
        )),
        "POST": Route(create_news, RouteConfig(allowed_roles=EDITORS, schema=NewsCreate)),
    })
    item = pipeline.api({
        "GET": Route(get_news, RouteConfig(require_auth=False)),
        "PUT": Route(update_news, RouteConfig(allowed_roles=EDITORS, schema=NewsUpdate)),
        "DELETE": Route(delete_news, RouteConfig(allowed_roles=(Role.ADMIN,))),
    })

    attach(router, "/api/news", collection, name="news_collection")
    attach(router, "/api/news/{news_id:uuid}", item, name="news_item")
    return router
