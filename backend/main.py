import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, field_validator

from db import REGULAR_ARCHETYPE, ContentRepository
from llms_txt import CacheStore, ConfigSnapshot, DocumentBuilder, FreshnessOracle, Generator, load_config
from llms_txt.errors import FeatureDisabled, IndexingForbidden, LlmsTxtError, NotFound
from llms_txt.models import Category, GeneratedDocument, Topic
from tracker import AccessTracker, register_sitemap_urls

logger = logging.getLogger(__name__)

MUTATION_EVENTS = frozenset({"post_created", "post_edited"})

router = APIRouter()


def check_enabled(request: Request):
    if not request.app.state.config.enabled:
        raise FeatureDisabled()


def check_indexing_allowed(request: Request):
    if not request.app.state.config.allow_indexing:
        raise IndexingForbidden()


def track_access(action: str):
    """Dependency that counts a hit on `action` once the response has been sent.

    The action is also left on request.state so a lookup that ends in NotFound
    is still counted by the error handler.
    """

    def dependency(request: Request, background_tasks: BackgroundTasks):
        request.state.llms_action = action
        background_tasks.add_task(request.app.state.tracker.track, action)

    return dependency


def _gated(action: str) -> list:
    return [Depends(check_enabled), Depends(check_indexing_allowed), Depends(track_access(action))]


def _check_cron_secret(x_cron_secret: str | None):
    expected = os.getenv("CRON_SECRET", "").strip()
    if not expected or not x_cron_secret or x_cron_secret != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing cron secret")


def _category_visible(category: Category | None) -> bool:
    return category is not None and not category.read_restricted


def _topic_visible(topic: Topic | None) -> bool:
    if topic is None or not topic.visible or topic.archetype != REGULAR_ARCHETYPE:
        return False
    return topic.category is None or not topic.category.read_restricted


def _entity_response(doc: GeneratedDocument) -> PlainTextResponse:
    return PlainTextResponse(doc.body, headers={"Link": f'<{doc.canonical_url}>; rel="canonical"'})


@router.get("/llms.txt", response_class=PlainTextResponse, dependencies=_gated("index"))
def llms_index(request: Request):
    """Navigation index: category tree, latest topics and links to the other documents."""
    return PlainTextResponse(request.app.state.generator.generate_navigation())


@router.get("/llms-full.txt", response_class=PlainTextResponse, dependencies=_gated("full"))
def llms_full(request: Request):
    return PlainTextResponse(request.app.state.generator.generate_full_content())


@router.get("/sitemaps.txt", response_class=PlainTextResponse, dependencies=_gated("sitemaps"))
def llms_sitemaps(request: Request):
    return PlainTextResponse(request.app.state.generator.generate_sitemaps())


@router.get(
    "/c/{category_path:path}/llms.txt",
    response_class=PlainTextResponse,
    dependencies=_gated("category"),
)
def llms_category(request: Request, category_path: str):
    """Category document. The path may be "slug/id", "parent/child/id" or a bare slug path."""
    category = request.app.state.repository.find_category_by_path(category_path)
    if not _category_visible(category):
        raise NotFound()
    return _entity_response(request.app.state.generator.generate_category_llms(category))


@router.get(
    "/t/{topic_slug}/{topic_id}/llms.txt",
    response_class=PlainTextResponse,
    dependencies=_gated("topic"),
)
def llms_topic(request: Request, topic_slug: str, topic_id: str):
    topic = None
    if topic_id.isdigit():
        topic = request.app.state.repository.topic_by_id(int(topic_id))
    if not _topic_visible(topic):
        raise NotFound()
    return _entity_response(request.app.state.generator.generate_topic_llms(topic))


@router.get("/tag/{tag_name}/llms.txt", response_class=PlainTextResponse, dependencies=_gated("tag"))
def llms_tag(request: Request, tag_name: str):
    if not request.app.state.config.tagging_enabled:
        raise NotFound()
    tag = request.app.state.repository.tag_by_name(tag_name)
    if tag is None:
        raise NotFound()
    return _entity_response(request.app.state.generator.generate_tag_llms(tag))


@router.get("/api/health")
def health(request: Request):
    """Health check. Returns service status, environment, current UTC timestamp and when
    the cached llms.txt documents were last rebuilt by the scheduled check."""
    last_updated = request.app.state.freshness.last_update_time()
    return {
        "ok": True,
        "service": "forum-llms-txt",
        "env": os.getenv("ENV", "development"),
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "llms_txt_last_updated": last_updated.isoformat().replace("+00:00", "Z"),
    }


@router.post("/api/cron/refresh-cache")
def cron_refresh_cache(
    request: Request,
    background_tasks: BackgroundTasks,
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
):
    """Hourly scheduler hook. Requires X-Cron-Secret matching CRON_SECRET. Queues the
    freshness check, which rebuilds the cached documents only when content changed
    since the last check (or the last check is over an hour old)."""
    _check_cron_secret(x_cron_secret)
    background_tasks.add_task(request.app.state.freshness.run_scheduled_check)
    return {"queued": True}


@router.post("/api/cron/sitemap-refresh")
def cron_sitemap_refresh(
    request: Request,
    background_tasks: BackgroundTasks,
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
):
    """Register the llms.txt documents in the host sitemap. Best effort."""
    _check_cron_secret(x_cron_secret)
    background_tasks.add_task(register_sitemap_urls, request.app.state.repository, request.app.state.config)
    return {"queued": True}


class MutationEvent(BaseModel):
    event: str

    @field_validator("event")
    @classmethod
    def event_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in MUTATION_EVENTS:
            raise ValueError(f"Unsupported event: {v!r}")
        return v


@router.post("/api/events")
def content_event(
    request: Request,
    body: MutationEvent,
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
):
    """Content mutation hook (post created or edited). Clears the cached documents so the
    next request rebuilds them without waiting for the hourly check."""
    _check_cron_secret(x_cron_secret)
    if not request.app.state.config.enabled:
        return {"cleared": False}
    logger.info("Clearing llms.txt cache after %s", body.event)
    request.app.state.generator.clear_cache()
    return {"cleared": True}


@router.get("/api/llms-txt/stats")
def llms_txt_stats(
    request: Request,
    x_cron_secret: str | None = Header(None, alias="X-Cron-Secret"),
):
    """Access counters and last-access unix times per route, plus the last rebuild time."""
    _check_cron_secret(x_cron_secret)
    last_updated = request.app.state.freshness.last_update_time()
    return {
        "access": request.app.state.tracker.stats(),
        "last_updated": last_updated.isoformat().replace("+00:00", "Z"),
    }


def create_app(
    config: ConfigSnapshot | None = None,
    repository: ContentRepository | None = None,
    store: CacheStore | None = None,
) -> FastAPI:
    config = config or load_config()
    repository = repository or ContentRepository()
    store = store or CacheStore()

    app = FastAPI(
        title="Forum llms.txt",
        description="llms.txt documents generated from forum content",
        version="1.2.0",
    )

    generator = Generator(DocumentBuilder(repository, config), store, config)
    app.state.config = config
    app.state.repository = repository
    app.state.store = store
    app.state.generator = generator
    app.state.freshness = FreshnessOracle(repository, store, generator)
    app.state.tracker = AccessTracker(repository)

    @app.exception_handler(LlmsTxtError)
    async def llms_txt_error(request: Request, exc: LlmsTxtError):
        action = getattr(request.state, "llms_action", None)
        tasks = None
        if action is not None and isinstance(exc, NotFound):
            tasks = BackgroundTasks()
            tasks.add_task(request.app.state.tracker.track, action)
        return PlainTextResponse(exc.message, status_code=exc.status_code, background=tasks)

    @app.on_event("startup")
    def startup():
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
        repository.init_db()

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV", "development") == "development",
    )
