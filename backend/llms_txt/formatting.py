"""Text fragments shared by every llms.txt document: links, excerpts, dates."""
from datetime import datetime, timezone
from urllib.parse import quote_plus

from .models import Category, Tag, Topic

NO_DESCRIPTION = "No description"
UNCATEGORIZED = "Uncategorized"
OMISSION = "..."


def category_url(base_url: str, category: Category) -> str:
    return f"{base_url}/c/{quote_plus(category.slug)}/{category.id}"


def topic_url(base_url: str, topic: Topic) -> str:
    return f"{base_url}/t/{quote_plus(topic.slug)}/{topic.id}"


def tag_url(base_url: str, tag: Tag) -> str:
    return f"{base_url}/tag/{quote_plus(tag.name)}"


def escape_link_text(text: str) -> str:
    if not text:
        return text
    return text.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")


def category_link(base_url: str, category: Category) -> str:
    return f"[{escape_link_text(category.name)}]({category_url(base_url, category)})"


def topic_link(base_url: str, topic: Topic) -> str:
    return f"[{escape_link_text(topic.title)}]({topic_url(base_url, topic)})"


def tag_link(base_url: str, tag: Tag) -> str:
    return f"[{escape_link_text(tag.name)}]({tag_url(base_url, tag)})"


def describe(category: Category) -> str:
    desc = (category.description or "").strip()
    return desc or NO_DESCRIPTION


def category_name(topic: Topic) -> str:
    return topic.category.name if topic.category else UNCATEGORIZED


def excerpt(text: str, max_length: int) -> str:
    """Truncate text to at most max_length characters, omission included.

    The cut backs up to the last space at or before the limit so words are
    not split; with no space available the text is cut hard.
    """
    if len(text) <= max_length:
        return text
    stop = max(max_length - len(OMISSION), 0)
    space = text.rfind(" ", 0, stop + 1)
    if space != -1:
        stop = space
    return text[:stop] + OMISSION


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_date(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%d")


def format_timestamp(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%d %H:%M UTC")


def category_path(category: Category, categories_by_id: dict[int, Category]) -> str:
    """Slug path of a category through all of its ancestors, ending with its id.

    e.g. "support/billing/42". Ancestors missing from the mapping end the walk.
    """
    slugs = [quote_plus(category.slug)]
    seen = {category.id}
    parent_id = category.parent_category_id
    while parent_id is not None and parent_id not in seen:
        parent = categories_by_id.get(parent_id)
        if parent is None:
            break
        slugs.append(quote_plus(parent.slug))
        seen.add(parent_id)
        parent_id = parent.parent_category_id
    return "/".join(reversed(slugs)) + f"/{category.id}"
