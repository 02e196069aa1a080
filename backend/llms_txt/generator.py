"""Cache-aware entry points for every llms.txt document."""
import logging
from datetime import timedelta

from .cache import CacheStore
from .config import ConfigSnapshot
from .documents import DocumentBuilder
from .models import Category, DocumentKind, GeneratedDocument, Tag, Topic

logger = logging.getLogger(__name__)

CACHE_KEY_NAV = "llms_txt_navigation"
CACHE_KEY_FULL = "llms_txt_full_content"
CACHE_KEY_SITEMAPS = "llms_txt_sitemaps"
CACHE_KEY_LAST_CHECK = "llms_txt_last_content_check"
CACHE_KEY_LAST_UPDATE = "llms_txt_last_update_timestamp"

DOCUMENT_CACHE_KEYS = {
    DocumentKind.NAVIGATION: CACHE_KEY_NAV,
    DocumentKind.FULL: CACHE_KEY_FULL,
    DocumentKind.SITEMAP: CACHE_KEY_SITEMAPS,
}


class Generator:
    """Serves navigation, full-content and sitemap bodies from the cache.

    Category, topic and tag documents are built on every call and never cached.
    """

    def __init__(self, builder: DocumentBuilder, store: CacheStore, config: ConfigSnapshot):
        self.builder = builder
        self.store = store
        self.config = config

    @property
    def cache_duration(self) -> timedelta:
        return timedelta(seconds=self.config.cache_ttl_seconds)

    def _cached(self, kind: DocumentKind) -> str:
        return self.store.fetch(
            DOCUMENT_CACHE_KEYS[kind],
            self.cache_duration,
            lambda: self.builder.build(kind).body,
        )

    def generate_navigation(self) -> str:
        return self._cached(DocumentKind.NAVIGATION)

    def generate_full_content(self) -> str:
        return self._cached(DocumentKind.FULL)

    def generate_sitemaps(self) -> str:
        return self._cached(DocumentKind.SITEMAP)

    def generate_category_llms(self, category: Category) -> GeneratedDocument:
        return self.builder.build(DocumentKind.CATEGORY, category)

    def generate_topic_llms(self, topic: Topic) -> GeneratedDocument:
        return self.builder.build(DocumentKind.TOPIC, topic)

    def generate_tag_llms(self, tag: Tag) -> GeneratedDocument:
        return self.builder.build(DocumentKind.TAG, tag)

    def invalidate_documents(self) -> None:
        self.store.invalidate_all(DOCUMENT_CACHE_KEYS.values())

    def clear_cache(self) -> None:
        """Drop cached documents and the last-check mark so the next scheduled check rebuilds."""
        self.store.invalidate_all([*DOCUMENT_CACHE_KEYS.values(), CACHE_KEY_LAST_CHECK])
        logger.info("llms.txt cache cleared")
