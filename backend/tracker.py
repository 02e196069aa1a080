"""Best-effort side calls made while serving llms.txt: access counters and sitemap registration.

Both write to host-owned tables and must never affect the response, so every
failure is logged and reported back as False.
"""
import logging
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SITEMAP_ENTRIES = (
    ("/llms.txt", 1.0),
    ("/llms-full.txt", 0.9),
    ("/sitemaps.txt", 0.8),
)


class AccessTracker:
    def __init__(self, repository):
        self.repository = repository

    def track(self, action: str) -> bool:
        try:
            key = f"access_count_{action}"
            current = int(self.repository.store_get(key) or 0)
            self.repository.store_set(key, str(current + 1))
            self.repository.store_set(f"last_access_{action}", str(int(time.time())))
            return True
        except Exception as e:
            logger.warning("Failed to track llms.txt access for %s: %s", action, e)
            return False

    def stats(self) -> dict[str, int]:
        counts = self.repository.store_items("access_count_")
        last = self.repository.store_items("last_access_")
        out: dict[str, int] = {}
        for key, value in {**counts, **last}.items():
            try:
                out[key] = int(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed plugin store value %s=%r", key, value)
        return out


def register_sitemap_urls(repository, config) -> bool:
    """Add the llms.txt documents to the host sitemap when they are public."""
    if not (config.enabled and config.allow_indexing):
        return False
    now = datetime.now(timezone.utc)
    ok = True
    for path, priority in SITEMAP_ENTRIES:
        try:
            repository.upsert_sitemap_url(path, priority, now)
        except Exception as e:
            logger.warning("Failed to register %s in sitemap: %s", path, e)
            ok = False
    return ok
