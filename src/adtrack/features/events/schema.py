from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from adtrack.core.clock import to_naive_utc

EVENT_TYPES: set[str] = {
    "impression",
    "click",
    "view",
    "conversion",
}

# Page types the store knows about; anything else is bucketed as "other".
PAGE_TYPES: tuple[str, ...] = (
    "homepage",
    "article",
    "category",
    "search",
    "page",
    "other",
)

DEVICE_TYPES: tuple[str, ...] = ("desktop", "mobile", "tablet")

FREQUENCY_TYPES: tuple[str, ...] = (
    "unlimited",
    "once_per_page",
    "once_per_session",
    "once_per_day",
    "once_per_user",
)


@dataclass(frozen=True, slots=True)
class AdEvent:
    event_id: str
    ad_id: str
    event_type: str
    ts_utc: datetime

    session_id: str | None = None
    user_id: str | None = None

    page_type: str = "other"
    page_url: str = ""
    page_key: str | None = None

    device: str = "desktop"
    placement: str = ""
    article_id: str | None = None
    category_id: str | None = None

    country: str = ""
    referrer: str = ""
    ip_hash: str = ""

    # None means "recorded without dedupe"
    dedupe_key: str | None = None
    payload_json: str | None = None

    def as_row(self) -> tuple:
        """
        Row tuple in ad_events column order (see persistence.schema.AD_EVENT_COLUMNS).
        """
        return (
            self.event_id,
            self.ad_id,
            self.event_type,
            to_naive_utc(self.ts_utc),
            self.session_id,
            self.user_id,
            self.page_type,
            self.page_url,
            self.page_key,
            self.device,
            self.placement,
            self.article_id,
            self.category_id,
            self.country,
            self.referrer,
            self.ip_hash,
            self.dedupe_key,
            self.payload_json,
        )


def json_dumps(payload: dict[str, Any] | None) -> str | None:
    if payload is None:
        return None
    # Stable JSON for deterministic outputs/diffs
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
