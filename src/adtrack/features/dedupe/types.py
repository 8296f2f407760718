from __future__ import annotations

from dataclasses import dataclass

ANON_IDENTITY = "anon"
NO_PAGE = "no-page"


@dataclass(frozen=True, slots=True)
class DedupRequest:
    type: str | None
    ad_id: str | None
    page_key: str | None = None
    identity_key: str | None = None
    event_id: str | None = None
