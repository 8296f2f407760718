from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Protocol

import duckdb

from adtrack.core.clock import Clock, utc_now
from adtrack.core.logging import get_logger


class RecentEventStore(Protocol):
    def count_recent(
        self,
        *,
        ad_id: str,
        event_type: str,
        since,
        session_id: str | None = None,
        ip_hash: str | None = None,
    ) -> int: ...

    def suspicious_sources(self, *, ad_id: str, since, min_events: int) -> list[tuple]: ...


# a single source sending more than this within the reporting window is suspicious
SUSPICIOUS_SOURCE_EVENTS = 50


@dataclass(frozen=True)
class SourceStats:
    suspicious_sources: int
    total_events: int


@dataclass(frozen=True)
class FraudThresholds:
    clicks_per_minute: int = 5
    impressions_per_minute: int = 10
    window_seconds: float = 60.0


@dataclass(frozen=True)
class FraudVerdict:
    is_fraud: bool
    reason: str | None = None
    counts: dict[str, int] = field(default_factory=dict)


NOT_FRAUD = FraudVerdict(is_fraud=False)


class FraudService:
    """
    Rate heuristics over recently recorded events. The check runs before
    the event itself is stored, so counts exclude the incoming event.
    Store failures never block tracking: they are logged and treated as
    "not fraud".
    """

    def __init__(
        self,
        *,
        store: RecentEventStore,
        thresholds: FraudThresholds | None = None,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self.thresholds = thresholds or FraudThresholds()
        self._clock = clock
        self._logger = logger or get_logger(__name__)

    def _since(self):
        return self._clock() - timedelta(seconds=float(self.thresholds.window_seconds))

    def check_click(
        self, *, ad_id: str, session_id: str | None, ip_hash: str | None
    ) -> FraudVerdict:
        since = self._since()
        try:
            clicks = self._store.count_recent(
                ad_id=ad_id, event_type="click", since=since, session_id=session_id, ip_hash=ip_hash
            )
            if clicks > self.thresholds.clicks_per_minute:
                return FraudVerdict(True, "too_many_clicks", {"clicks": clicks})

            # sessionless clients are matched by the ip their clicks came from
            impressions = self._store.count_recent(
                ad_id=ad_id,
                event_type="impression",
                since=since,
                session_id=session_id,
                ip_hash=None if session_id else ip_hash,
            )
        except duckdb.Error:
            self._logger.exception("fraud_check_failed", extra={"ad_id": ad_id, "event_type": "click"})
            return NOT_FRAUD

        # bots click without ever rendering the ad
        if clicks > impressions:
            return FraudVerdict(
                True,
                "clicks_exceed_impressions",
                {"clicks": clicks, "impressions": impressions},
            )
        return NOT_FRAUD

    def check_impression(
        self, *, ad_id: str, session_id: str | None, ip_hash: str | None
    ) -> FraudVerdict:
        try:
            impressions = self._store.count_recent(
                ad_id=ad_id,
                event_type="impression",
                since=self._since(),
                session_id=session_id,
                ip_hash=ip_hash,
            )
        except duckdb.Error:
            self._logger.exception(
                "fraud_check_failed", extra={"ad_id": ad_id, "event_type": "impression"}
            )
            return NOT_FRAUD

        if impressions > self.thresholds.impressions_per_minute:
            return FraudVerdict(True, "too_many_impressions", {"impressions": impressions})
        return NOT_FRAUD

    def fraud_stats(self, ad_id: str, days: int = 7) -> dict[str, SourceStats]:
        """
        Per event type: how many sources (ip hash + session) sent more than
        `SUSPICIOUS_SOURCE_EVENTS` events for the ad in the last `days` days,
        and how many events those sources account for.
        Store errors propagate; this is a reporting call, not a tracking gate.
        """
        rows = self._store.suspicious_sources(
            ad_id=ad_id,
            since=self._clock() - timedelta(days=days),
            min_events=SUSPICIOUS_SOURCE_EVENTS,
        )
        return {
            str(event_type): SourceStats(suspicious_sources=int(n), total_events=int(total))
            for event_type, n, total in rows
        }
