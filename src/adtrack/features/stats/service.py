from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta
from typing import Any

from adtrack.core.clock import Clock, utc_now
from adtrack.core.logging import get_logger
from adtrack.features.events.schema import DEVICE_TYPES
from adtrack.features.persistence.duckdb_adapter import DuckDBAdapter

# Page types reported in the daily breakdown.
REPORTED_PAGE_TYPES: tuple[str, ...] = ("homepage", "article", "category", "search", "other")

TOP_PAGES_LIMIT = 5


@dataclass(frozen=True)
class AdStats:
    impressions: int
    clicks: int
    ctr: float  # percent, 2 decimals

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def click_through_rate(impressions: int, clicks: int) -> float:
    if impressions <= 0:
        return 0.0
    return round(clicks / impressions * 100.0, 2)


class StatsService:
    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        clock: Clock = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._adapter = adapter
        self._clock = clock
        self._logger = logger or get_logger(__name__)

    def ad_stats(
        self,
        ad_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AdStats:
        totals = self._adapter.totals_by_type(ad_id=ad_id, start=start, end=end)
        impressions = totals.get("impression", 0)
        clicks = totals.get("click", 0)
        return AdStats(
            impressions=impressions,
            clicks=clicks,
            ctr=click_through_rate(impressions, clicks),
        )

    def aggregate_day(self, day: date | None = None) -> int:
        """
        Rolls one UTC day of raw events into ad_stats_daily (one row per ad).
        Defaults to yesterday. Re-running a day overwrites its rows.
        Returns the number of ads processed.
        """
        if day is None:
            day = (self._clock() - timedelta(days=1)).date()

        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)

        ad_ids = self._adapter.ads_with_events(start=start, end=end)
        for ad_id in ad_ids:
            self._adapter.upsert_daily(self._daily_row(ad_id=ad_id, day=day, start=start, end=end))

        self._logger.info(
            "aggregate_day",
            extra={"day": day.isoformat(), "num_rows": len(ad_ids)},
        )
        return len(ad_ids)

    def _daily_row(self, *, ad_id: str, day: date, start: datetime, end: datetime) -> dict[str, Any]:
        impressions = clicks = unique_impressions = unique_clicks = 0
        for event_type, count, unique_sessions in self._adapter.day_totals(
            ad_id=ad_id, start=start, end=end
        ):
            if event_type == "impression":
                impressions, unique_impressions = int(count), int(unique_sessions)
            elif event_type == "click":
                clicks, unique_clicks = int(count), int(unique_sessions)

        by_device = _breakdown(
            self._adapter.day_breakdown(ad_id=ad_id, column="device", start=start, end=end),
            buckets=DEVICE_TYPES,
            default="desktop",
        )
        by_page_type = _breakdown(
            self._adapter.day_breakdown(ad_id=ad_id, column="page_type", start=start, end=end),
            buckets=REPORTED_PAGE_TYPES,
            default="other",
        )
        top_pages = [
            {"url": url, "impressions": int(imp), "clicks": int(clk)}
            for url, imp, clk in self._adapter.day_top_pages(
                ad_id=ad_id, start=start, end=end, limit=TOP_PAGES_LIMIT
            )
        ]

        return {
            "ad_id": ad_id,
            "day": day,
            "impressions": impressions,
            "clicks": clicks,
            "unique_impressions": unique_impressions,
            "unique_clicks": unique_clicks,
            "ctr": click_through_rate(impressions, clicks),
            "by_device_json": _dumps(by_device),
            "by_page_type_json": _dumps(by_page_type),
            "top_pages_json": _dumps(top_pages),
        }


def _breakdown(
    rows: list[tuple], *, buckets: tuple[str, ...], default: str
) -> dict[str, dict[str, int]]:
    out = {b: {"impressions": 0, "clicks": 0} for b in buckets}
    for value, event_type, count in rows:
        bucket = out.get(value or default)
        if bucket is None:
            continue
        if event_type == "impression":
            bucket["impressions"] += int(count)
        elif event_type == "click":
            bucket["clicks"] += int(count)
    return out


def _dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))
