"""
llms.txt generator for forums: navigation, full-content, sitemap and per-entity documents.
"""
from .cache import CacheStore
from .config import ConfigSnapshot, load_config
from .documents import DocumentBuilder
from .freshness import FreshnessOracle, RefreshResult
from .generator import Generator
from .models import Category, DocumentKind, GeneratedDocument, Post, Tag, Topic

__all__ = [
    "CacheStore",
    "Category",
    "ConfigSnapshot",
    "DocumentBuilder",
    "DocumentKind",
    "FreshnessOracle",
    "GeneratedDocument",
    "Generator",
    "Post",
    "RefreshResult",
    "Tag",
    "Topic",
    "load_config",
]
