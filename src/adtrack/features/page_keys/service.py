from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

from adtrack.features.page_keys.types import (
    OTHER_PAGE_TYPE,
    PAGE_TYPE_ALIASES,
    SLUG_PREFIXES,
    PageReference,
)


def normalize_page_type(page_type: Any) -> str:
    """
    Lower-cased page type. "articles" folds into "article"; anything
    empty becomes "other". Unknown types pass through unchanged.
    """
    if not page_type:
        return OTHER_PAGE_TYPE
    normalized = str(page_type).lower()
    if not normalized:
        return OTHER_PAGE_TYPE
    return PAGE_TYPE_ALIASES.get(normalized, normalized)


def normalize_page_path(value: Any) -> str:
    """
    Canonical path for an absolute url or a relative path:
      - scheme/host are dropped for http(s) urls
      - query and fragment are cut
      - exactly one leading "/", no trailing "/" (except for "/" itself)

    Returns "" for non-string, blank or unparseable input.
    """
    if not isinstance(value, str):
        return ""
    trimmed = value.strip()
    if not trimmed:
        return ""

    if trimmed.startswith("http://") or trimmed.startswith("https://"):
        # extra slashes before the host are skipped, as browsers do
        scheme, _, rest = trimmed.partition("://")
        try:
            parts = urlsplit(f"{scheme}://{rest.lstrip('/')}")
            parts.port  # out-of-range or non-numeric port raises
        except ValueError:
            return ""
        if not parts.netloc or any(c.isspace() for c in parts.netloc):
            return ""
        trimmed = parts.path or "/"

    trimmed = trimmed.split("?", 1)[0].split("#", 1)[0]
    if not trimmed.startswith("/"):
        trimmed = f"/{trimmed}"
    if len(trimmed) > 1 and trimmed.endswith("/"):
        trimmed = trimmed[:-1]
    return trimmed


def extract_slug(page_type: Any, path: str) -> str:
    segments = [s for s in (path or "").split("/") if s]
    if not segments:
        return ""

    prefixes = SLUG_PREFIXES.get(normalize_page_type(page_type))
    if prefixes and segments[0] in prefixes and len(segments) > 1:
        # nested routes: only the final segment identifies the resource
        return segments[-1]
    return ""


def build_page_key(page_type: Any = None, page_url: Any = None, fallback: str = "") -> str:
    normalized_type = normalize_page_type(page_type)
    path = normalize_page_path(page_url)
    slug = extract_slug(normalized_type, path)
    key_part = slug or path or (str(fallback) if fallback else "") or normalized_type
    return f"{normalized_type}:{key_part}"


def build_page_key_for(ref: PageReference) -> str:
    return build_page_key(page_type=ref.page_type, page_url=ref.page_url, fallback=ref.fallback)
