from __future__ import annotations

from dataclasses import dataclass

# Route prefixes whose last path segment is the canonical slug.
SLUG_PREFIXES: dict[str, frozenset[str]] = {
    "article": frozenset({"article", "articles"}),
    "category": frozenset({"category", "categories"}),
    "page": frozenset({"page", "pages"}),
}

# Plural spellings folded into one page type.
PAGE_TYPE_ALIASES: dict[str, str] = {"articles": "article"}

OTHER_PAGE_TYPE = "other"


@dataclass(frozen=True, slots=True)
class PageReference:
    """
    The logical page an event happened on, as the caller expressed it.
    `fallback` is used when neither a slug nor a path can be derived
    (e.g. an article id supplied alongside an empty url).
    """

    page_type: str | None = None
    page_url: str | None = None
    fallback: str = ""
