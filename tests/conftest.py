"""Shared fixtures: a throwaway SQLite forum, a fabricator for its content, a fake clock."""
import dataclasses
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from db import ContentRepository
from llms_txt import CacheStore, ConfigSnapshot, DocumentBuilder, Generator
from main import create_app

BASE_URL = "https://forum.example.com"
CRON_SECRET = "s3cret"


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Fabricator:
    """Inserts forum rows directly, the way the host platform would."""

    def __init__(self, repository: ContentRepository):
        self.repository = repository
        self._tick = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _next_time(self) -> datetime:
        self._tick += timedelta(hours=1)
        return self._tick

    def _insert(self, sql: str, params: tuple) -> int:
        with self.repository.get_conn() as conn:
            cur = self.repository._run(conn, sql, params)
            return cur.lastrowid

    def category(
        self,
        name: str,
        slug: str | None = None,
        description: str | None = None,
        parent=None,
        read_restricted: bool = False,
        position: int = 0,
        updated_at: datetime | None = None,
    ):
        category_id = self._insert(
            """INSERT INTO categories
               (name, slug, description, parent_category_id, read_restricted, position, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)""",
            (
                name,
                slug or name.lower().replace(" ", "-"),
                description,
                parent.id if parent is not None else None,
                read_restricted,
                position,
                (updated_at or self._tick).isoformat(),
            ),
        )
        return self.repository.category_by_id(category_id)

    def topic(
        self,
        title: str,
        category=None,
        views: int = 0,
        posts_count: int = 1,
        created_at: datetime | None = None,
        archetype: str = "regular",
        visible: bool = True,
        slug: str | None = None,
    ):
        topic_id = self._insert(
            """INSERT INTO topics
               (title, slug, category_id, archetype, views, posts_count, visible, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s)""",
            (
                title,
                slug or title.lower().replace(" ", "-"),
                category.id if category is not None else None,
                archetype,
                views,
                posts_count,
                visible,
                (created_at or self._next_time()).isoformat(),
            ),
        )
        return self.repository.topic_by_id(topic_id)

    def post(
        self,
        topic,
        raw: str,
        post_number: int,
        username: str | None = "alice",
        hidden: bool = False,
        deleted: bool = False,
    ) -> int:
        return self._insert(
            """INSERT INTO posts (topic_id, post_number, raw, username, hidden, deleted_at)
               VALUES (%s, %s, %s, %s, %s, %s)""",
            (
                topic.id,
                post_number,
                raw,
                username,
                hidden,
                self._tick.isoformat() if deleted else None,
            ),
        )

    def tag(self, name: str, topics=()):
        tag_id = self._insert("INSERT INTO tags (name) VALUES (%s)", (name,))
        for topic in topics:
            self._insert(
                "INSERT INTO topic_tags (topic_id, tag_id) VALUES (%s, %s)", (topic.id, tag_id)
            )
        return self.repository.tag_by_name(name)


@pytest.fixture()
def repository(tmp_path) -> ContentRepository:
    repo = ContentRepository(f"sqlite:///{tmp_path / 'forum.db'}")
    repo.init_db()
    return repo


@pytest.fixture()
def fab(repository) -> Fabricator:
    return Fabricator(repository)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def config() -> ConfigSnapshot:
    return ConfigSnapshot(
        base_url=BASE_URL,
        site_title="Example Forum",
        site_description="A place to talk about examples",
        intro_text="Welcome, crawlers.",
    )


@pytest.fixture()
def make_builder(repository, config, clock):
    def factory(**overrides) -> DocumentBuilder:
        return DocumentBuilder(repository, dataclasses.replace(config, **overrides), clock)

    return factory


@pytest.fixture()
def make_generator(repository, config, clock):
    def factory(store: CacheStore | None = None, **overrides) -> Generator:
        cfg = dataclasses.replace(config, **overrides)
        return Generator(DocumentBuilder(repository, cfg, clock), store or CacheStore(clock), cfg)

    return factory


@pytest.fixture()
def make_client(repository, config, monkeypatch):
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)

    def factory(**overrides) -> TestClient:
        app = create_app(dataclasses.replace(config, **overrides), repository, CacheStore())
        return TestClient(app)

    return factory
