"""Hourly catch-up check that rebuilds cached documents when content moved on.

Mutation events clear the cache directly; this check covers whatever they
missed (category edits, imports, events that never arrived).
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from .cache import CacheStore, utc_now
from .generator import CACHE_KEY_LAST_CHECK, CACHE_KEY_LAST_UPDATE, Generator

logger = logging.getLogger(__name__)

CHECK_INTERVAL = timedelta(hours=1)
LAST_CHECK_TTL = timedelta(hours=2)
LAST_UPDATE_TTL = timedelta(days=30)


@dataclass
class RefreshResult:
    refreshed: bool
    skipped: bool = False
    error: str | None = None


class FreshnessOracle:
    def __init__(
        self,
        repository,
        store: CacheStore,
        generator: Generator,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.store = store
        self.generator = generator
        self._clock = clock

    @property
    def last_checked_at(self) -> datetime | None:
        return self.store.read(CACHE_KEY_LAST_CHECK)

    def should_refresh(self) -> bool:
        last_check = self.last_checked_at
        if last_check is None or last_check < self._clock() - CHECK_INTERVAL:
            return True

        last_topic = self.repository.max_topic_created_at()
        if last_topic is not None and last_topic > last_check:
            return True
        last_category = self.repository.max_category_updated_at()
        if last_category is not None and last_category > last_check:
            return True
        return False

    def refresh(self) -> None:
        """Invalidate cached documents, warm navigation, then stamp both marks."""
        self.generator.invalidate_documents()
        self.generator.generate_navigation()
        self.mark_updated()

    def mark_updated(self) -> None:
        now = self._clock()
        self.store.write(CACHE_KEY_LAST_CHECK, now, LAST_CHECK_TTL)
        self.store.write(CACHE_KEY_LAST_UPDATE, now, LAST_UPDATE_TTL)

    def last_update_time(self) -> datetime:
        return self.store.read(CACHE_KEY_LAST_UPDATE) or self._clock()

    def run_scheduled_check(self) -> RefreshResult:
        """Job body for the hourly scheduler. Never raises; the next run retries."""
        if not self.generator.config.enabled:
            return RefreshResult(refreshed=False, skipped=True)
        try:
            if not self.should_refresh():
                logger.debug("No new content, skipping llms.txt cache update")
                return RefreshResult(refreshed=False)
            logger.info("Updating llms.txt cache due to new content")
            self.refresh()
            logger.info("llms.txt cache updated successfully")
            return RefreshResult(refreshed=True)
        except Exception as e:
            logger.exception("Failed to update llms.txt cache")
            return RefreshResult(refreshed=False, error=str(e))
