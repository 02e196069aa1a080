"""Build llms.txt documents from forum content.

Every builder is a pure function of what the repository returns and the
config snapshot it was handed; caching lives one level up in `Generator`.
"""
import logging
from typing import Callable

from .cache import utc_now
from .config import ConfigSnapshot
from .formatting import (
    category_link,
    category_name,
    category_path,
    category_url,
    describe,
    excerpt,
    format_date,
    format_timestamp,
    tag_url,
    topic_link,
    topic_url,
)
from .models import Category, DocumentKind, GeneratedDocument, Tag, Topic

logger = logging.getLogger(__name__)

ENTITY_TOPICS_LIMIT = 100
SITEMAP_TOPICS_FALLBACK = 5000

NO_CATEGORIES = "No public categories available"
NO_LATEST_TOPICS = "No topics yet"
NO_TOPICS = "No topics available"
NO_TAG_TOPICS = "No topics found with this tag."


def _finish(lines: list[str]) -> str:
    return "\n".join(lines).strip() + "\n"


def _footer(url: str) -> list[str]:
    return ["", f"**Canonical:** {url}", f"**Original content:** {url}"]


class DocumentBuilder:
    def __init__(self, repository, config: ConfigSnapshot, clock: Callable = utc_now):
        self.repository = repository
        self.config = config
        self._clock = clock
        self._builders = {
            DocumentKind.NAVIGATION: self.build_navigation,
            DocumentKind.FULL: self.build_full_content,
            DocumentKind.SITEMAP: self.build_sitemap,
            DocumentKind.CATEGORY: self.build_category,
            DocumentKind.TOPIC: self.build_topic,
            DocumentKind.TAG: self.build_tag,
        }

    @property
    def base_url(self) -> str:
        return self.config.base_url

    def build(self, kind: DocumentKind, subject: Category | Topic | Tag | None = None) -> GeneratedDocument:
        """Build one document; category, topic and tag kinds need their entity as subject."""
        kind = DocumentKind(kind)
        builder = self._builders[kind]
        if kind in (DocumentKind.CATEGORY, DocumentKind.TOPIC, DocumentKind.TAG):
            if subject is None:
                raise ValueError(f"{kind.value} document needs a subject")
            body = builder(subject)
        else:
            body = builder()
        logger.info("Built %s document: %d chars", kind.value, len(body))
        return GeneratedDocument(
            kind=kind,
            body=body,
            generated_at=self._clock(),
            canonical_url=self.canonical_url(kind, subject),
        )

    def canonical_url(self, kind: DocumentKind, subject=None) -> str | None:
        if kind == DocumentKind.CATEGORY:
            return category_url(self.base_url, subject)
        if kind == DocumentKind.TOPIC:
            return topic_url(self.base_url, subject)
        if kind == DocumentKind.TAG:
            return tag_url(self.base_url, subject)
        return None

    # ------------------------------------------------------------------
    # Forum-wide documents
    # ------------------------------------------------------------------

    def build_navigation(self) -> str:
        cfg = self.config
        lines = [f"# {cfg.site_title}", f"> {cfg.site_description}", ""]
        if cfg.intro_text:
            lines += [cfg.intro_text, ""]
        lines += ["## Categories and Subcategories", ""]
        lines += self._category_tree()
        lines += ["", "## Latest Topics", ""]
        lines += self._latest_topics()
        lines += ["", "## Additional Resources", ""]
        lines += self._resource_links()
        return _finish(lines)

    def build_full_content(self) -> str:
        cfg = self.config
        lines = [f"# {cfg.site_title} - Full Content", "", f"> {cfg.site_description}", ""]
        if cfg.full_description:
            lines += ["## About This Forum", "", cfg.full_description, ""]
        lines += [
            f"[← Back to Navigation (llms.txt)]({self.base_url}/llms.txt)",
            "",
            "---",
            "",
            "## Categories and Subcategories",
            "",
        ]
        lines += self._category_tree_detailed()
        lines += ["", "---", "", "## Topics", ""]
        lines += self._topics_list()
        return _finish(lines)

    def build_sitemap(self) -> str:
        cfg = self.config
        base = self.base_url
        urls = [f"{base}/llms.txt", f"{base}/llms-full.txt"]

        categories_by_id = self.repository.categories_by_id()
        for category in self.repository.public_categories():
            urls.append(f"{base}/c/{category_path(category, categories_by_id)}/llms.txt")

        limit = cfg.topics_limit or SITEMAP_TOPICS_FALLBACK
        for topic in self.repository.public_topics(cfg.min_views, limit):
            urls.append(f"{topic_url(base, topic)}/llms.txt")

        if cfg.tagging_enabled:
            for tag in self.repository.all_tags():
                urls.append(f"{tag_url(base, tag)}/llms.txt")

        return "\n".join(urls) + "\n"

    def _category_tree(self) -> list[str]:
        parents = self.repository.top_level_categories()
        if not parents:
            return [NO_CATEGORIES]
        lines = []
        for category in parents:
            lines.append(f"### {category_link(self.base_url, category)}")
            lines.append(describe(category))
            children = self.repository.subcategories(category.id)
            if children:
                lines.append("")
                for child in children:
                    lines.append(f"- {category_link(self.base_url, child)}: {describe(child)}")
            lines.append("")
        return lines

    def _category_tree_detailed(self) -> list[str]:
        parents = self.repository.top_level_categories()
        if not parents:
            return [NO_CATEGORIES]
        lines = []
        for category in parents:
            lines.append(f"### {category_link(self.base_url, category)}")
            lines.append("")
            if (category.description or "").strip():
                lines += [category.description.strip(), ""]
            children = self.repository.subcategories(category.id)
            if children:
                lines += ["**Subcategories:**", ""]
                for child in children:
                    lines.append(f"- **{category_link(self.base_url, child)}**: {describe(child)}")
                lines.append("")
        return lines

    def _latest_topics(self) -> list[str]:
        topics = self.repository.latest_topics(self.config.latest_topics_limit)
        if not topics:
            return [NO_LATEST_TOPICS]
        return [
            f"- {topic_link(self.base_url, t)} - {category_name(t)} ({format_date(t.created_at)})"
            for t in topics
        ]

    def _topics_list(self) -> list[str]:
        cfg = self.config
        topics = self.repository.public_topics(cfg.min_views, cfg.topics_limit)
        if not topics:
            return [NO_TOPICS]
        first_posts = {}
        if cfg.include_excerpts:
            first_posts = self.repository.first_posts([t.id for t in topics])

        lines = []
        for topic in topics:
            lines.append(f"{self._topic_category_label(topic)} - {topic_link(self.base_url, topic)}")
            post = first_posts.get(topic.id)
            if post is not None and post.raw.strip():
                lines.append(f"  > {excerpt(post.raw, cfg.excerpt_length)}")
                lines.append("")
        return lines

    def _topic_category_label(self, topic: Topic) -> str:
        if topic.category is None:
            return f"**{category_name(topic)}**"
        return f"**{category_link(self.base_url, topic.category)}**"

    def _resource_links(self) -> list[str]:
        cfg = self.config
        links = [f"- [Full Documentation (llms-full.txt)]({self.base_url}/llms-full.txt): Complete forum content"]
        optional = [
            ("About", cfg.about_url, "About this community"),
            ("FAQ", cfg.faq_url, "Frequently asked questions"),
            ("Terms of Service", cfg.tos_url, "Community guidelines"),
            ("Privacy Policy", cfg.privacy_url, "Privacy information"),
        ]
        for label, url, blurb in optional:
            if url:
                links.append(f"- [{label}]({url}): {blurb}")
        return links

    # ------------------------------------------------------------------
    # Per-entity documents
    # ------------------------------------------------------------------

    def build_category(self, category: Category) -> str:
        url = category_url(self.base_url, category)
        lines = [f"# {category.name}", f"> Category: {self.config.site_title}", ""]
        if (category.description or "").strip():
            lines += [category.description.strip(), ""]
        lines += [f"**Category URL:** {url}", ""]

        children = self.repository.subcategories(category.id)
        if children:
            lines += ["## Subcategories", ""]
            for child in children:
                lines.append(f"- {category_link(self.base_url, child)}: {describe(child)}")
            lines.append("")

        topics = self.repository.category_topics(category.id, ENTITY_TOPICS_LIMIT)
        if topics:
            lines += ["## Topics", ""]
            for t in topics:
                lines.append(
                    f"- {topic_link(self.base_url, t)} ({t.views} views, {t.reply_count} replies)"
                )

        lines += _footer(url)
        return _finish(lines)

    def build_topic(self, topic: Topic) -> str:
        url = topic_url(self.base_url, topic)
        if topic.category is not None:
            category_line = f"**Category:** {category_link(self.base_url, topic.category)}"
        else:
            category_line = f"**Category:** {category_name(topic)}"
        lines = [
            f"# {topic.title}",
            "",
            category_line,
            f"**Created:** {format_timestamp(topic.created_at)}",
            f"**Views:** {topic.views}",
            f"**Replies:** {topic.reply_count}",
            f"**URL:** {url}",
            "",
            "---",
            "",
        ]
        for post in self.repository.topic_posts(topic.id):
            if post.hidden or post.deleted_at is not None:
                continue
            author = post.username or "deleted"
            lines += [f"## Post #{post.post_number} by @{author}", "", post.raw, "", "---", ""]

        lines += _footer(url)
        return _finish(lines)

    def build_tag(self, tag: Tag) -> str:
        url = tag_url(self.base_url, tag)
        lines = [
            f"# Tag: {tag.name}",
            f"> {self.config.site_title}",
            "",
            f"**Tag URL:** {url}",
            "",
            "## Topics with this tag",
            "",
        ]
        topics = self.repository.tag_topics(tag.name, self.config.min_views, ENTITY_TOPICS_LIMIT)
        if topics:
            for t in topics:
                lines.append(
                    f"- {topic_link(self.base_url, t)} - {category_name(t)} ({t.views} views)"
                )
        else:
            lines.append(NO_TAG_TOPICS)

        lines += _footer(url)
        return _finish(lines)
