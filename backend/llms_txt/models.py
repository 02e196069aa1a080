"""Forum entities as read from the content store, and generated documents."""
import enum
from dataclasses import dataclass
from datetime import datetime


class DocumentKind(str, enum.Enum):
    NAVIGATION = "navigation"
    FULL = "full"
    SITEMAP = "sitemap"
    CATEGORY = "category"
    TOPIC = "topic"
    TAG = "tag"


@dataclass
class Category:
    id: int
    name: str
    slug: str
    description: str | None = None
    parent_category_id: int | None = None
    read_restricted: bool = False
    position: int = 0
    updated_at: datetime | None = None


@dataclass
class Post:
    id: int
    topic_id: int
    post_number: int
    raw: str
    username: str | None = None
    hidden: bool = False
    deleted_at: datetime | None = None


@dataclass
class Topic:
    id: int
    title: str
    slug: str
    created_at: datetime
    category_id: int | None = None
    archetype: str = "regular"
    views: int = 0
    posts_count: int = 0
    visible: bool = True
    category: Category | None = None

    @property
    def reply_count(self) -> int:
        return max(self.posts_count - 1, 0)


@dataclass
class Tag:
    id: int
    name: str


@dataclass
class GeneratedDocument:
    kind: DocumentKind
    body: str
    generated_at: datetime
    canonical_url: str | None = None
