from __future__ import annotations

AD_EVENTS_TABLE_NAME = "ad_events"
AD_STATS_DAILY_TABLE_NAME = "ad_stats_daily"

AD_EVENT_COLUMNS: tuple[str, ...] = (
    "event_id",
    "ad_id",
    "event_type",
    "ts_utc",
    "session_id",
    "user_id",
    "page_type",
    "page_url",
    "page_key",
    "device",
    "placement",
    "article_id",
    "category_id",
    "country",
    "referrer",
    "ip_hash",
    "dedupe_key",
    "payload_json",
)

# dedupe_key is UNIQUE; NULL keys never collide, so events without a key
# are always recorded.
AD_EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS {AD_EVENTS_TABLE_NAME} (
    event_id TEXT NOT NULL,
    ad_id TEXT NOT NULL,
    event_type TEXT NOT NULL,

    ts_utc TIMESTAMP NOT NULL,

    session_id TEXT,
    user_id TEXT,

    page_type TEXT NOT NULL,
    page_url TEXT NOT NULL,
    page_key TEXT,

    device TEXT NOT NULL,
    placement TEXT NOT NULL,
    article_id TEXT,
    category_id TEXT,

    country TEXT NOT NULL,
    referrer TEXT NOT NULL,
    ip_hash TEXT NOT NULL,

    dedupe_key TEXT UNIQUE,
    payload_json TEXT
);
"""

AD_STATS_DAILY_DDL = f"""
CREATE TABLE IF NOT EXISTS {AD_STATS_DAILY_TABLE_NAME} (
    ad_id TEXT NOT NULL,
    day DATE NOT NULL,

    impressions BIGINT NOT NULL,
    clicks BIGINT NOT NULL,
    unique_impressions BIGINT NOT NULL,
    unique_clicks BIGINT NOT NULL,
    ctr DOUBLE NOT NULL,

    by_device_json TEXT NOT NULL,
    by_page_type_json TEXT NOT NULL,
    top_pages_json TEXT NOT NULL,

    PRIMARY KEY (ad_id, day)
);
"""

AD_EVENTS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_ad_events_ad_type_ts ON {AD_EVENTS_TABLE_NAME}(ad_id, event_type, ts_utc);",
    f"CREATE INDEX IF NOT EXISTS idx_ad_events_session_ad ON {AD_EVENTS_TABLE_NAME}(session_id, ad_id);",
    f"CREATE INDEX IF NOT EXISTS idx_ad_events_ts_utc ON {AD_EVENTS_TABLE_NAME}(ts_utc);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call on every open.
    """
    conn.execute(AD_EVENTS_DDL)
    conn.execute(AD_STATS_DAILY_DDL)
    for ddl in AD_EVENTS_INDEXES:
        conn.execute(ddl)
