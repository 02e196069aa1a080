"""Read access to forum content (categories, topics, posts, tags). Postgres or SQLite.

The forum platform owns these tables; the generator only reads them. The one
exception is the small key/value plugin store used for access counters and the
host sitemap table that llms.txt URLs get registered into.
"""
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from llms_txt.models import Category, Post, Tag, Topic

_backend_dir = Path(__file__).resolve().parent
_default_db = _backend_dir / "forum.db"

REGULAR_ARCHETYPE = "regular"

_CATEGORY_COLUMNS = (
    "id, name, slug, description, parent_category_id, read_restricted, position, updated_at"
)

_TOPIC_COLUMNS = """t.id, t.title, t.slug, t.category_id, t.archetype, t.views, t.posts_count,
       t.visible, t.created_at,
       c.id AS c_id, c.name AS c_name, c.slug AS c_slug, c.description AS c_description,
       c.parent_category_id AS c_parent_category_id, c.read_restricted AS c_read_restricted,
       c.position AS c_position, c.updated_at AS c_updated_at"""

_PUBLIC_TOPICS = f"""SELECT {_TOPIC_COLUMNS}
    FROM topics t JOIN categories c ON c.id = t.category_id
    WHERE t.visible = %s AND t.archetype = %s AND c.read_restricted = %s"""


def _is_postgres(url: str) -> bool:
    return url.startswith("postgresql://") or url.startswith("postgres://")


def _get_db_path(url: str) -> Path:
    if url and url.startswith("sqlite"):
        if url == "sqlite:///:memory:":
            return Path(":memory:")
        path = url.replace("sqlite:///", "").strip()
        return Path(path)
    return _default_db


def _to_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _category_from_row(row: dict, prefix: str = "") -> Category:
    return Category(
        id=row[f"{prefix}id"],
        name=row[f"{prefix}name"],
        slug=row[f"{prefix}slug"],
        description=row[f"{prefix}description"],
        parent_category_id=row[f"{prefix}parent_category_id"],
        read_restricted=bool(row[f"{prefix}read_restricted"]),
        position=row[f"{prefix}position"] or 0,
        updated_at=_to_datetime(row[f"{prefix}updated_at"]),
    )


def _topic_from_row(row: dict) -> Topic:
    category = _category_from_row(row, prefix="c_") if row.get("c_id") is not None else None
    return Topic(
        id=row["id"],
        title=row["title"],
        slug=row["slug"],
        created_at=_to_datetime(row["created_at"]),
        category_id=row["category_id"],
        archetype=row["archetype"],
        views=row["views"] or 0,
        posts_count=row["posts_count"] or 0,
        visible=bool(row["visible"]),
        category=category,
    )


def _post_from_row(row: dict) -> Post:
    return Post(
        id=row["id"],
        topic_id=row["topic_id"],
        post_number=row["post_number"],
        raw=row["raw"] or "",
        username=row["username"],
        hidden=bool(row["hidden"]),
        deleted_at=_to_datetime(row["deleted_at"]),
    )


class ContentRepository:
    """Queries the generator needs, with visibility filtering done in SQL."""

    def __init__(self, database_url: str | None = None):
        if database_url is None:
            database_url = os.getenv("DATABASE_URL", "")
        self.database_url = database_url.strip()

    @property
    def is_postgres(self) -> bool:
        return _is_postgres(self.database_url)

    @contextmanager
    def get_conn(self):
        if self.is_postgres:
            import psycopg2
            conn = psycopg2.connect(self.database_url)
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()
        else:
            path = _get_db_path(self.database_url)
            conn = sqlite3.connect(str(path) if path != Path(":memory:") else ":memory:")
            conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _run(self, conn, sql: str, params: tuple = ()):
        if self.is_postgres:
            cur = conn.cursor()
            cur.execute(sql, params)
            return cur
        return conn.execute(sql.replace("%s", "?"), params)

    def _fetchone(self, conn, sql: str, params: tuple = ()) -> dict | None:
        if self.is_postgres:
            from psycopg2.extras import RealDictCursor
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(sql, params)
            row = cur.fetchone()
            return dict(row) if row else None
        cur = conn.execute(sql.replace("%s", "?"), params)
        row = cur.fetchone()
        return dict(row) if row else None

    def _fetchall(self, conn, sql: str, params: tuple = ()) -> list[dict]:
        if self.is_postgres:
            from psycopg2.extras import RealDictCursor
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()]
        cur = conn.execute(sql.replace("%s", "?"), params)
        return [dict(r) for r in cur.fetchall()]

    def _instant(self, column: str) -> str:
        # SQLite stores timestamps as ISO text with mixed offsets; compare them as instants.
        return column if self.is_postgres else f"julianday({column})"

    def _newest_first(self) -> str:
        return f"ORDER BY {self._instant('t.created_at')} DESC, t.id DESC"

    def _latest(self, table: str, column: str) -> datetime | None:
        row = self._query_one(
            f"SELECT {column} AS latest FROM {table} ORDER BY {self._instant(column)} DESC LIMIT 1"
        )
        return _to_datetime(row["latest"]) if row else None

    def _query(self, sql: str, params: tuple = ()) -> list[dict]:
        with self.get_conn() as conn:
            return self._fetchall(conn, sql, params)

    def _query_one(self, sql: str, params: tuple = ()) -> dict | None:
        with self.get_conn() as conn:
            return self._fetchone(conn, sql, params)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def init_db(self):
        if self.is_postgres:
            self._init_db_postgres()
        else:
            self._init_db_sqlite()

    def _init_db_sqlite(self):
        with self.get_conn() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    description TEXT,
                    parent_category_id INTEGER REFERENCES categories(id),
                    read_restricted INTEGER NOT NULL DEFAULT 0,
                    position INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS topics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    category_id INTEGER REFERENCES categories(id),
                    archetype TEXT NOT NULL DEFAULT 'regular',
                    views INTEGER NOT NULL DEFAULT 0,
                    posts_count INTEGER NOT NULL DEFAULT 0,
                    visible INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS posts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    topic_id INTEGER NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
                    post_number INTEGER NOT NULL,
                    raw TEXT NOT NULL DEFAULT '',
                    username TEXT,
                    hidden INTEGER NOT NULL DEFAULT 0,
                    deleted_at TEXT
                );
                CREATE TABLE IF NOT EXISTS tags (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE
                );
                CREATE TABLE IF NOT EXISTS topic_tags (
                    topic_id INTEGER NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
                    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                    PRIMARY KEY (topic_id, tag_id)
                );
                CREATE TABLE IF NOT EXISTS plugin_store_rows (
                    key TEXT PRIMARY KEY,
                    value TEXT
                );
                CREATE TABLE IF NOT EXISTS sitemap_urls (
                    url TEXT PRIMARY KEY,
                    priority REAL NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_topics_created_at ON topics(created_at);
                CREATE INDEX IF NOT EXISTS idx_topics_category_id ON topics(category_id);
                CREATE INDEX IF NOT EXISTS idx_posts_topic_id ON posts(topic_id);
            """)

    def _init_db_postgres(self):
        statements = [
            """CREATE TABLE IF NOT EXISTS categories (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL,
                slug TEXT NOT NULL,
                description TEXT,
                parent_category_id BIGINT REFERENCES categories(id),
                read_restricted BOOLEAN NOT NULL DEFAULT FALSE,
                position INTEGER NOT NULL DEFAULT 0,
                updated_at TIMESTAMPTZ NOT NULL
            )""",
            """CREATE TABLE IF NOT EXISTS topics (
                id BIGSERIAL PRIMARY KEY,
                title TEXT NOT NULL,
                slug TEXT NOT NULL,
                category_id BIGINT REFERENCES categories(id),
                archetype TEXT NOT NULL DEFAULT 'regular',
                views INTEGER NOT NULL DEFAULT 0,
                posts_count INTEGER NOT NULL DEFAULT 0,
                visible BOOLEAN NOT NULL DEFAULT TRUE,
                created_at TIMESTAMPTZ NOT NULL
            )""",
            """CREATE TABLE IF NOT EXISTS posts (
                id BIGSERIAL PRIMARY KEY,
                topic_id BIGINT NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
                post_number INTEGER NOT NULL,
                raw TEXT NOT NULL DEFAULT '',
                username TEXT,
                hidden BOOLEAN NOT NULL DEFAULT FALSE,
                deleted_at TIMESTAMPTZ
            )""",
            """CREATE TABLE IF NOT EXISTS tags (
                id BIGSERIAL PRIMARY KEY,
                name TEXT NOT NULL UNIQUE
            )""",
            """CREATE TABLE IF NOT EXISTS topic_tags (
                topic_id BIGINT NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
                tag_id BIGINT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
                PRIMARY KEY (topic_id, tag_id)
            )""",
            """CREATE TABLE IF NOT EXISTS plugin_store_rows (
                key TEXT PRIMARY KEY,
                value TEXT
            )""",
            """CREATE TABLE IF NOT EXISTS sitemap_urls (
                url TEXT PRIMARY KEY,
                priority DOUBLE PRECISION NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )""",
            "CREATE INDEX IF NOT EXISTS idx_topics_created_at ON topics(created_at)",
            "CREATE INDEX IF NOT EXISTS idx_topics_category_id ON topics(category_id)",
            "CREATE INDEX IF NOT EXISTS idx_posts_topic_id ON posts(topic_id)",
        ]
        with self.get_conn() as conn:
            for stmt in statements:
                self._run(conn, stmt)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def top_level_categories(self) -> list[Category]:
        rows = self._query(
            f"""SELECT {_CATEGORY_COLUMNS} FROM categories
                WHERE read_restricted = %s AND parent_category_id IS NULL
                ORDER BY position ASC, id ASC""",
            (False,),
        )
        return [_category_from_row(r) for r in rows]

    def subcategories(self, parent_id: int) -> list[Category]:
        """Direct, non-restricted children of a category."""
        rows = self._query(
            f"""SELECT {_CATEGORY_COLUMNS} FROM categories
                WHERE read_restricted = %s AND parent_category_id = %s
                ORDER BY position ASC, id ASC""",
            (False, parent_id),
        )
        return [_category_from_row(r) for r in rows]

    def public_categories(self) -> list[Category]:
        rows = self._query(
            f"SELECT {_CATEGORY_COLUMNS} FROM categories WHERE read_restricted = %s ORDER BY id ASC",
            (False,),
        )
        return [_category_from_row(r) for r in rows]

    def categories_by_id(self) -> dict[int, Category]:
        """Every category, restricted ones included, for resolving parent slugs."""
        rows = self._query(f"SELECT {_CATEGORY_COLUMNS} FROM categories")
        return {r["id"]: _category_from_row(r) for r in rows}

    def category_by_id(self, category_id: int) -> Category | None:
        row = self._query_one(
            f"SELECT {_CATEGORY_COLUMNS} FROM categories WHERE id = %s", (category_id,)
        )
        return _category_from_row(row) if row else None

    def find_category_by_path(self, path: str) -> Category | None:
        """Resolve "parent/child/42" or "parent/child" to a category.

        A trailing numeric segment is taken as the id; otherwise each slug is
        matched under the previous one, starting from the top level.
        """
        segments = [s for s in (path or "").strip("/").split("/") if s]
        if not segments:
            return None
        if segments[-1].isdigit():
            return self.category_by_id(int(segments[-1]))
        category = None
        with self.get_conn() as conn:
            for slug in segments:
                if category is None:
                    row = self._fetchone(
                        conn,
                        f"""SELECT {_CATEGORY_COLUMNS} FROM categories
                            WHERE slug = %s AND parent_category_id IS NULL""",
                        (slug,),
                    )
                else:
                    row = self._fetchone(
                        conn,
                        f"""SELECT {_CATEGORY_COLUMNS} FROM categories
                            WHERE slug = %s AND parent_category_id = %s""",
                        (slug, category.id),
                    )
                if row is None:
                    return None
                category = _category_from_row(row)
        return category

    # ------------------------------------------------------------------
    # Topics and posts
    # ------------------------------------------------------------------

    def latest_topics(self, limit: int) -> list[Topic]:
        """Newest regular topics in public categories, regardless of views."""
        rows = self._query(
            f"{_PUBLIC_TOPICS} {self._newest_first()} LIMIT %s",
            (True, REGULAR_ARCHETYPE, False, limit),
        )
        return [_topic_from_row(r) for r in rows]

    def public_topics(self, min_views: int, limit: int | None) -> list[Topic]:
        """Regular topics in public categories with at least min_views views, newest first."""
        sql = _PUBLIC_TOPICS + " AND t.views >= %s " + self._newest_first()
        params: tuple = (True, REGULAR_ARCHETYPE, False, min_views)
        if limit is not None:
            sql += " LIMIT %s"
            params += (limit,)
        return [_topic_from_row(r) for r in self._query(sql, params)]

    def category_topics(self, category_id: int, limit: int) -> list[Topic]:
        rows = self._query(
            f"""SELECT {_TOPIC_COLUMNS}
                FROM topics t LEFT JOIN categories c ON c.id = t.category_id
                WHERE t.category_id = %s AND t.visible = %s AND t.archetype = %s
                {self._newest_first()} LIMIT %s""",
            (category_id, True, REGULAR_ARCHETYPE, limit),
        )
        return [_topic_from_row(r) for r in rows]

    def tag_topics(self, tag_name: str, min_views: int, limit: int) -> list[Topic]:
        rows = self._query(
            f"""SELECT {_TOPIC_COLUMNS}
                FROM topics t
                JOIN categories c ON c.id = t.category_id
                JOIN topic_tags tt ON tt.topic_id = t.id
                JOIN tags g ON g.id = tt.tag_id
                WHERE g.name = %s AND t.visible = %s AND t.archetype = %s
                  AND c.read_restricted = %s AND t.views >= %s
                {self._newest_first()} LIMIT %s""",
            (tag_name, True, REGULAR_ARCHETYPE, False, min_views, limit),
        )
        return [_topic_from_row(r) for r in rows]

    def topic_by_id(self, topic_id: int) -> Topic | None:
        row = self._query_one(
            f"""SELECT {_TOPIC_COLUMNS}
                FROM topics t LEFT JOIN categories c ON c.id = t.category_id
                WHERE t.id = %s""",
            (topic_id,),
        )
        return _topic_from_row(row) if row else None

    def topic_posts(self, topic_id: int) -> list[Post]:
        """Posts that are neither hidden nor deleted, in post-number order."""
        rows = self._query(
            """SELECT id, topic_id, post_number, raw, username, hidden, deleted_at FROM posts
               WHERE topic_id = %s AND hidden = %s AND deleted_at IS NULL
               ORDER BY post_number ASC""",
            (topic_id, False),
        )
        return [_post_from_row(r) for r in rows]

    def first_posts(self, topic_ids: list[int]) -> dict[int, Post]:
        if not topic_ids:
            return {}
        placeholders = ", ".join(["%s"] * len(topic_ids))
        rows = self._query(
            f"""SELECT id, topic_id, post_number, raw, username, hidden, deleted_at FROM posts
                WHERE post_number = 1 AND topic_id IN ({placeholders})""",
            tuple(topic_ids),
        )
        return {r["topic_id"]: _post_from_row(r) for r in rows}

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def tag_by_name(self, name: str) -> Tag | None:
        row = self._query_one("SELECT id, name FROM tags WHERE name = %s", (name,))
        return Tag(id=row["id"], name=row["name"]) if row else None

    def all_tags(self) -> list[Tag]:
        rows = self._query("SELECT id, name FROM tags ORDER BY id ASC")
        return [Tag(id=r["id"], name=r["name"]) for r in rows]

    # ------------------------------------------------------------------
    # Freshness signals
    # ------------------------------------------------------------------

    def max_topic_created_at(self) -> datetime | None:
        return self._latest("topics", "created_at")

    def max_category_updated_at(self) -> datetime | None:
        return self._latest("categories", "updated_at")

    # ------------------------------------------------------------------
    # Plugin store and host sitemap
    # ------------------------------------------------------------------

    def store_get(self, key: str) -> str | None:
        row = self._query_one("SELECT value FROM plugin_store_rows WHERE key = %s", (key,))
        return row["value"] if row else None

    def store_set(self, key: str, value: str) -> None:
        with self.get_conn() as conn:
            self._run(
                conn,
                """INSERT INTO plugin_store_rows (key, value) VALUES (%s, %s)
                   ON CONFLICT (key) DO UPDATE SET value = excluded.value""",
                (key, value),
            )

    def store_items(self, prefix: str) -> dict[str, str]:
        rows = self._query("SELECT key, value FROM plugin_store_rows ORDER BY key ASC")
        return {r["key"]: r["value"] for r in rows if r["key"].startswith(prefix)}

    def upsert_sitemap_url(self, url: str, priority: float, updated_at: datetime) -> None:
        with self.get_conn() as conn:
            self._run(
                conn,
                """INSERT INTO sitemap_urls (url, priority, updated_at) VALUES (%s, %s, %s)
                   ON CONFLICT (url) DO UPDATE SET priority = excluded.priority,
                                                   updated_at = excluded.updated_at""",
                (url, priority, updated_at.isoformat()),
            )
