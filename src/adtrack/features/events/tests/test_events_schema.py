from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

from adtrack.features.events.schema import AdEvent, json_dumps
from adtrack.features.persistence.schema import AD_EVENT_COLUMNS


def test_as_row_matches_column_order():
    evt = AdEvent(
        event_id="evt_x_00000001",
        ad_id="a1",
        event_type="impression",
        ts_utc=datetime(2026, 1, 1, 12, tzinfo=UTC),
        session_id="s1",
        page_key="article:x",
        dedupe_key="impression:session:s1:a1:article:x",
    )
    row = evt.as_row()

    assert len(row) == len(AD_EVENT_COLUMNS)
    by_name = dict(zip(AD_EVENT_COLUMNS, row, strict=True))
    assert by_name["event_id"] == "evt_x_00000001"
    assert by_name["ad_id"] == "a1"
    assert by_name["page_type"] == "other"
    assert by_name["device"] == "desktop"
    assert by_name["dedupe_key"] == "impression:session:s1:a1:article:x"


def test_as_row_stores_naive_utc():
    plus7 = timezone(timedelta(hours=7))
    evt = AdEvent(
        event_id="e",
        ad_id="a1",
        event_type="click",
        ts_utc=datetime(2026, 1, 1, 7, 30, tzinfo=plus7),
    )
    ts = evt.as_row()[AD_EVENT_COLUMNS.index("ts_utc")]
    assert ts.tzinfo is None
    assert ts == datetime(2026, 1, 1, 0, 30)


def test_json_dumps_is_stable():
    assert json_dumps({"b": 2, "a": 1}) == '{"a":1,"b":2}'
    assert json_dumps(None) is None
