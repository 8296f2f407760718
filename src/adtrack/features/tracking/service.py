from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from adtrack.core.clock import Clock, utc_now
from adtrack.core.logging import get_logger
from adtrack.features.dedupe.service import build_dedupe_key
from adtrack.features.events.schema import (
    DEVICE_TYPES,
    EVENT_TYPES,
    PAGE_TYPES,
    AdEvent,
    json_dumps,
)
from adtrack.features.fraud.service import FraudService
from adtrack.features.identity.service import build_identity_key
from adtrack.features.page_keys.service import (
    build_page_key,
    normalize_page_path,
    normalize_page_type,
)
from adtrack.features.privacy.service import hash_ip


class IdsLike(Protocol):
    def next_id(self, prefix: str) -> str: ...


class EventStore(Protocol):
    def insert_event(self, row: tuple) -> bool: ...


@dataclass(frozen=True)
class TrackingContext:
    """
    Everything a tracking beacon may carry besides the ad id and event type.
    `event_id` is the client-generated nonce; `page_key` skips page-key
    derivation when the caller already has one.
    """

    session_id: str | None = None
    user_id: str | None = None
    page_type: str | None = None
    page_url: str | None = None
    page_key: str | None = None
    device: str | None = None
    placement: str = ""
    article_id: str | None = None
    category_id: str | None = None
    country: str = ""
    referrer: str = ""
    client_ip: str | None = None
    event_id: str | None = None
    payload: dict[str, Any] | None = None


@dataclass(frozen=True)
class TrackResult:
    recorded: bool
    event: AdEvent
    dedupe_key: str | None
    reason: str | None = None  # "duplicate" | "fraud:<reason>" when not recorded


class TrackingService:
    def __init__(
        self,
        *,
        store: EventStore,
        ids: IdsLike,
        ip_hash_salt: str,
        fraud: FraudService | None = None,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._ids = ids
        self._salt = ip_hash_salt
        self._fraud = fraud
        self._clock = clock
        self._logger = logger or get_logger(__name__)

    def track(self, event_type: str, ad_id: str, ctx: TrackingContext | None = None) -> TrackResult:
        """
        Records one ad event at most once.

        Contracts enforced:
        - event_type must be in EVENT_TYPES
        - ad_id must be non-empty
        When no dedupe key can be built the event is recorded unconditionally.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unsupported event_type={event_type!r}. Allowed={sorted(EVENT_TYPES)}")
        if not ad_id:
            raise ValueError("ad_id is required")

        ctx = ctx or TrackingContext()
        page_type = normalize_page_type(ctx.page_type)
        page_url = normalize_page_path(ctx.page_url or ctx.referrer)
        page_key = ctx.page_key or build_page_key(
            page_type=page_type,
            page_url=page_url,
            fallback=ctx.article_id or ctx.category_id or page_type,
        )
        identity_key = build_identity_key(user_id=ctx.user_id, session_id=ctx.session_id)
        dedupe_key = build_dedupe_key(
            type=event_type,
            ad_id=ad_id,
            page_key=page_key,
            identity_key=identity_key,
            event_id=ctx.event_id,
        )

        event = AdEvent(
            event_id=self._ids.next_id("evt"),
            ad_id=str(ad_id),
            event_type=event_type,
            ts_utc=self._clock(),
            session_id=ctx.session_id,
            user_id=ctx.user_id,
            page_type=page_type if page_type in PAGE_TYPES else "other",
            page_url=page_url,
            page_key=page_key,
            device=ctx.device if ctx.device in DEVICE_TYPES else "desktop",
            placement=ctx.placement or "",
            article_id=ctx.article_id,
            category_id=ctx.category_id,
            country=ctx.country or "",
            referrer=ctx.referrer or "",
            ip_hash=hash_ip(ctx.client_ip, self._salt),
            dedupe_key=dedupe_key,
            payload_json=json_dumps(ctx.payload),
        )

        fraud_reason = self._fraud_reason(event)
        if fraud_reason is not None:
            return self._result(event, recorded=False, reason=f"fraud:{fraud_reason}")

        recorded = self._store.insert_event(event.as_row())
        return self._result(event, recorded=recorded, reason=None if recorded else "duplicate")

    def track_impression(self, ad_id: str, ctx: TrackingContext | None = None) -> TrackResult:
        return self.track("impression", ad_id, ctx)

    def track_click(self, ad_id: str, ctx: TrackingContext | None = None) -> TrackResult:
        return self.track("click", ad_id, ctx)

    def _fraud_reason(self, event: AdEvent) -> str | None:
        if self._fraud is None:
            return None
        if event.event_type == "click":
            verdict = self._fraud.check_click(
                ad_id=event.ad_id, session_id=event.session_id, ip_hash=event.ip_hash
            )
        elif event.event_type == "impression":
            verdict = self._fraud.check_impression(
                ad_id=event.ad_id, session_id=event.session_id, ip_hash=event.ip_hash
            )
        else:
            return None
        return verdict.reason if verdict.is_fraud else None

    def _result(self, event: AdEvent, *, recorded: bool, reason: str | None) -> TrackResult:
        self._logger.info(
            "ad_event_tracked" if recorded else "ad_event_skipped",
            extra={
                "ad_id": event.ad_id,
                "event_type": event.event_type,
                "event_id": event.event_id,
                "page_key": event.page_key,
                "dedupe_key": event.dedupe_key,
                "recorded": recorded,
                "reason": reason,
            },
        )
        return TrackResult(recorded=recorded, event=event, dedupe_key=event.dedupe_key, reason=reason)
