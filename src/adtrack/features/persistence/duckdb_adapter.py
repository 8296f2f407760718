from __future__ import annotations

import os
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import duckdb

from adtrack.core.clock import to_naive_utc

from .schema import (
    AD_EVENT_COLUMNS,
    AD_EVENTS_TABLE_NAME,
    AD_STATS_DAILY_TABLE_NAME,
    create_schema,
)


@dataclass(frozen=True)
class DuckDBWriteResult:
    num_rows: int
    duration_ms: float


class DuckDBAdapter:
    """
    DuckDB persistence adapter. Owns the connection and schema.
    All timestamps passed in are converted to naive UTC.
    """

    def __init__(self, path: str, *, clean_slate: bool) -> None:
        self.path = path
        self.clean_slate = clean_slate
        self._conn: duckdb.DuckDBPyConnection | None = None

    def open(self) -> None:
        if self._conn is not None:
            return

        if self.clean_slate and os.path.exists(self.path):
            os.remove(self.path)

        # Ensure parent dir exists
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        self._conn = duckdb.connect(self.path)
        create_schema(self._conn)

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError("DuckDBAdapter not opened. Call open() first.")
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ----------------------------
    # Writes
    # ----------------------------
    def insert_event(self, row: tuple) -> bool:
        """
        Inserts one ad_events row. Returns False when its dedupe_key is
        already stored (the event is a duplicate), True otherwise.
        """
        if len(row) != len(AD_EVENT_COLUMNS):
            raise ValueError(
                f"ad_events row must have {len(AD_EVENT_COLUMNS)} values, got {len(row)}"
            )
        cols = ", ".join(AD_EVENT_COLUMNS)
        placeholders = ", ".join("?" for _ in AD_EVENT_COLUMNS)
        try:
            self.conn.execute(
                f"INSERT INTO {AD_EVENTS_TABLE_NAME} ({cols}) VALUES ({placeholders})",
                list(row),
            )
        except duckdb.ConstraintException:
            return False
        return True

    def upsert_daily(self, row: dict[str, Any]) -> None:
        self.conn.execute(
            f"""
            INSERT INTO {AD_STATS_DAILY_TABLE_NAME} (
                ad_id, day,
                impressions, clicks,
                unique_impressions, unique_clicks,
                ctr,
                by_device_json, by_page_type_json, top_pages_json
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (ad_id, day) DO UPDATE SET
                impressions = EXCLUDED.impressions,
                clicks = EXCLUDED.clicks,
                unique_impressions = EXCLUDED.unique_impressions,
                unique_clicks = EXCLUDED.unique_clicks,
                ctr = EXCLUDED.ctr,
                by_device_json = EXCLUDED.by_device_json,
                by_page_type_json = EXCLUDED.by_page_type_json,
                top_pages_json = EXCLUDED.top_pages_json
            """,
            [
                row["ad_id"],
                row["day"],
                row["impressions"],
                row["clicks"],
                row["unique_impressions"],
                row["unique_clicks"],
                row["ctr"],
                row["by_device_json"],
                row["by_page_type_json"],
                row["top_pages_json"],
            ],
        )

    def purge_older_than(self, cutoff: datetime) -> DuckDBWriteResult:
        """
        Deletes events strictly older than cutoff (retention window).
        """
        t0 = time.perf_counter()
        cutoff_n = to_naive_utc(cutoff)
        n = self._scalar(
            f"SELECT COUNT(*) FROM {AD_EVENTS_TABLE_NAME} WHERE ts_utc < ?",
            [cutoff_n],
        )
        if n:
            self.conn.execute(f"DELETE FROM {AD_EVENTS_TABLE_NAME} WHERE ts_utc < ?", [cutoff_n])
        dt_ms = (time.perf_counter() - t0) * 1000.0
        return DuckDBWriteResult(num_rows=n, duration_ms=dt_ms)

    # ----------------------------
    # Reads
    # ----------------------------
    def count_events(self, ad_id: str | None = None) -> int:
        """
        Convenience method for sanity checks/tests.
        """
        if ad_id is None:
            return self._scalar(f"SELECT COUNT(*) FROM {AD_EVENTS_TABLE_NAME}", [])
        return self._scalar(
            f"SELECT COUNT(*) FROM {AD_EVENTS_TABLE_NAME} WHERE ad_id = ?",
            [ad_id],
        )

    def count_recent(
        self,
        *,
        ad_id: str,
        event_type: str,
        since: datetime,
        session_id: str | None = None,
        ip_hash: str | None = None,
    ) -> int:
        """
        Events of one type for an ad since `since`, coming from the given
        session OR the given ip hash. No source at all counts nothing.
        """
        sources: list[str] = []
        params: list[Any] = [ad_id, event_type, to_naive_utc(since)]
        if session_id:
            sources.append("session_id = ?")
            params.append(session_id)
        if ip_hash:
            sources.append("ip_hash = ?")
            params.append(ip_hash)
        if not sources:
            return 0

        return self._scalar(
            f"""
            SELECT COUNT(*) FROM {AD_EVENTS_TABLE_NAME}
            WHERE ad_id = ? AND event_type = ? AND ts_utc >= ?
              AND ({' OR '.join(sources)})
            """,
            params,
        )

    def suspicious_sources(
        self, *, ad_id: str, since: datetime, min_events: int = 50
    ) -> list[tuple]:
        """
        (event_type, sources, events) rows. A source is one (ip_hash, session_id)
        pair; only sources with more than `min_events` events since `since` count.
        """
        return self.conn.execute(
            f"""
            SELECT event_type, COUNT(*) AS sources, SUM(n) AS events
            FROM (
                SELECT event_type, ip_hash, session_id, COUNT(*) AS n
                FROM {AD_EVENTS_TABLE_NAME}
                WHERE ad_id = ? AND ts_utc >= ?
                GROUP BY event_type, ip_hash, session_id
                HAVING COUNT(*) > ?
            )
            GROUP BY event_type
            ORDER BY event_type
            """,
            [ad_id, to_naive_utc(since), int(min_events)],
        ).fetchall()

    def count_impressions(
        self,
        *,
        ad_id: str,
        user_id: str | None = None,
        session_id: str | None = None,
        since: datetime | None = None,
        page_key: str | None = None,
    ) -> int:
        where = ["ad_id = ?", "event_type = 'impression'"]
        params: list[Any] = [ad_id]
        if user_id is not None:
            where.append("user_id = ?")
            params.append(user_id)
        if session_id is not None:
            where.append("session_id = ?")
            params.append(session_id)
        if since is not None:
            where.append("ts_utc >= ?")
            params.append(to_naive_utc(since))
        if page_key is not None:
            where.append("page_key = ?")
            params.append(page_key)

        return self._scalar(
            f"SELECT COUNT(*) FROM {AD_EVENTS_TABLE_NAME} WHERE {' AND '.join(where)}",
            params,
        )

    def totals_by_type(
        self,
        *,
        ad_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        where = ["ad_id = ?"]
        params: list[Any] = [ad_id]
        if start is not None:
            where.append("ts_utc >= ?")
            params.append(to_naive_utc(start))
        if end is not None:
            where.append("ts_utc <= ?")
            params.append(to_naive_utc(end))

        rows = self.conn.execute(
            f"""
            SELECT event_type, COUNT(*) FROM {AD_EVENTS_TABLE_NAME}
            WHERE {' AND '.join(where)}
            GROUP BY event_type
            """,
            params,
        ).fetchall()
        return {str(t): int(n) for t, n in rows}

    def ads_with_events(self, *, start: datetime, end: datetime) -> list[str]:
        rows = self.conn.execute(
            f"""
            SELECT DISTINCT ad_id FROM {AD_EVENTS_TABLE_NAME}
            WHERE ts_utc >= ? AND ts_utc < ?
            ORDER BY ad_id
            """,
            [to_naive_utc(start), to_naive_utc(end)],
        ).fetchall()
        return [str(r[0]) for r in rows]

    def day_totals(self, *, ad_id: str, start: datetime, end: datetime) -> list[tuple]:
        """
        (event_type, count, unique_sessions) rows for the window.
        """
        return self.conn.execute(
            f"""
            SELECT event_type, COUNT(*), COUNT(DISTINCT session_id)
            FROM {AD_EVENTS_TABLE_NAME}
            WHERE ad_id = ? AND ts_utc >= ? AND ts_utc < ?
            GROUP BY event_type
            """,
            [ad_id, to_naive_utc(start), to_naive_utc(end)],
        ).fetchall()

    def day_breakdown(self, *, ad_id: str, column: str, start: datetime, end: datetime) -> list[tuple]:
        """
        (value, event_type, count) rows grouped by `column`.
        """
        if column not in ("device", "page_type"):
            raise ValueError(f"Unsupported breakdown column={column!r}")
        return self.conn.execute(
            f"""
            SELECT {column}, event_type, COUNT(*)
            FROM {AD_EVENTS_TABLE_NAME}
            WHERE ad_id = ? AND ts_utc >= ? AND ts_utc < ?
            GROUP BY {column}, event_type
            """,
            [ad_id, to_naive_utc(start), to_naive_utc(end)],
        ).fetchall()

    def day_top_pages(
        self, *, ad_id: str, start: datetime, end: datetime, limit: int = 5
    ) -> list[tuple]:
        """
        (page_url, impressions, clicks) rows, most impressions first.
        """
        return self.conn.execute(
            f"""
            SELECT
                page_url,
                SUM(CASE WHEN event_type = 'impression' THEN 1 ELSE 0 END) AS impressions,
                SUM(CASE WHEN event_type = 'click' THEN 1 ELSE 0 END) AS clicks
            FROM {AD_EVENTS_TABLE_NAME}
            WHERE ad_id = ? AND ts_utc >= ? AND ts_utc < ? AND page_url <> ''
            GROUP BY page_url
            ORDER BY impressions DESC, page_url
            LIMIT {int(limit)}
            """,
            [ad_id, to_naive_utc(start), to_naive_utc(end)],
        ).fetchall()

    def get_daily(self, *, ad_id: str, day: date) -> dict[str, Any] | None:
        cur = self.conn.execute(
            f"SELECT * FROM {AD_STATS_DAILY_TABLE_NAME} WHERE ad_id = ? AND day = ?",
            [ad_id, day],
        )
        row = cur.fetchone()
        if row is None:
            return None
        names = [d[0] for d in cur.description]
        return dict(zip(names, row, strict=True))

    def _scalar(self, sql: str, params: list[Any]) -> int:
        res = self.conn.execute(sql, params).fetchone()
        return int(res[0]) if res else 0
