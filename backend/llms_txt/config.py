"""Settings for the llms.txt generator, read from the environment.

`.env` files next to the backend and in the repo root are loaded first, so a
local checkout can be configured without exporting anything.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_backend_dir = Path(__file__).resolve().parent.parent

MAX_LATEST_TOPICS = 50

POSTS_LIMITS = {
    "small": 500,
    "medium": 2500,
    "large": 5000,
    "all": None,
}
DEFAULT_POSTS_LIMIT = "medium"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True)
class ConfigSnapshot:
    enabled: bool = True
    allow_indexing: bool = True
    base_url: str = "http://localhost:8000"
    site_title: str = "Forum"
    site_description: str = ""
    intro_text: str = ""
    full_description: str = ""
    latest_topics_count: int = 50
    posts_limit: str = DEFAULT_POSTS_LIMIT
    min_views: int = 0
    include_excerpts: bool = False
    excerpt_length: int = 500
    cache_minutes: int = 60
    tagging_enabled: bool = True
    about_url: str = ""
    faq_url: str = ""
    tos_url: str = ""
    privacy_url: str = ""

    @property
    def latest_topics_limit(self) -> int:
        return max(min(self.latest_topics_count, MAX_LATEST_TOPICS), 0)

    @property
    def topics_limit(self) -> int | None:
        """Cap on topics in the full-content and sitemap documents; None means unlimited."""
        key = (self.posts_limit or "").lower()
        if key not in POSTS_LIMITS:
            key = DEFAULT_POSTS_LIMIT
        return POSTS_LIMITS[key]

    @property
    def cache_ttl_seconds(self) -> int:
        return max(self.cache_minutes, 0) * 60


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def load_config() -> ConfigSnapshot:
    load_dotenv(_backend_dir / ".env")
    load_dotenv(_backend_dir.parent / ".env")
    return ConfigSnapshot(
        enabled=_env_bool("LLMS_TXT_ENABLED", True),
        allow_indexing=_env_bool("LLMS_TXT_ALLOW_INDEXING", True),
        base_url=_env_str("LLMS_TXT_BASE_URL", "http://localhost:8000").rstrip("/"),
        site_title=_env_str("LLMS_TXT_SITE_TITLE", "Forum"),
        site_description=_env_str("LLMS_TXT_SITE_DESCRIPTION"),
        intro_text=_env_str("LLMS_TXT_INTRO_TEXT"),
        full_description=_env_str("LLMS_TXT_FULL_DESCRIPTION"),
        latest_topics_count=_env_int("LLMS_TXT_LATEST_TOPICS_COUNT", 50),
        posts_limit=_env_str("LLMS_TXT_POSTS_LIMIT", DEFAULT_POSTS_LIMIT).lower(),
        min_views=_env_int("LLMS_TXT_MIN_VIEWS", 0),
        include_excerpts=_env_bool("LLMS_TXT_INCLUDE_EXCERPTS", False),
        excerpt_length=_env_int("LLMS_TXT_POST_EXCERPT_LENGTH", 500),
        cache_minutes=_env_int("LLMS_TXT_CACHE_MINUTES", 60),
        tagging_enabled=_env_bool("TAGGING_ENABLED", True),
        about_url=_env_str("ABOUT_PAGE_URL"),
        faq_url=_env_str("FAQ_URL"),
        tos_url=_env_str("TOS_URL"),
        privacy_url=_env_str("PRIVACY_POLICY_URL"),
    )
