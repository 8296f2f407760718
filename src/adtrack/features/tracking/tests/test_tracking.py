from __future__ import annotations

from datetime import UTC, datetime

import pytest

from adtrack.core.ids import IdsService
from adtrack.features.privacy.service import hash_ip
from adtrack.features.tracking.service import TrackingContext, TrackingService

NOW = datetime(2026, 1, 1, 9, tzinfo=UTC)


class DummyStore:
    """
    Mimics the unique dedupe_key constraint of the DuckDB store.
    """

    def __init__(self) -> None:
        self.rows: list[tuple] = []
        self.keys: set[str] = set()

    def insert_event(self, row: tuple) -> bool:
        key = row[16]
        if key is not None and key in self.keys:
            return False
        if key is not None:
            self.keys.add(key)
        self.rows.append(row)
        return True


class DummyFraud:
    def __init__(self, reason=None):
        self.reason = reason

    def _verdict(self, **kw):
        from adtrack.features.fraud.service import FraudVerdict

        return FraudVerdict(self.reason is not None, self.reason)

    check_click = _verdict
    check_impression = _verdict


def _svc(store=None, fraud=None):
    return TrackingService(
        store=store or DummyStore(),
        ids=IdsService(namespace="t"),
        ip_hash_salt="salt",
        fraud=fraud,
        clock=lambda: NOW,
    )


def test_invalid_event_type_raises():
    with pytest.raises(ValueError):
        _svc().track("hover", "a1")


def test_missing_ad_id_raises():
    with pytest.raises(ValueError):
        _svc().track("click", "")


def test_impression_is_normalized_and_recorded():
    store = DummyStore()
    svc = _svc(store)

    res = svc.track_impression(
        "a1",
        TrackingContext(
            session_id="s1",
            page_type="Articles",
            page_url="https://site.com/articles/my-slug?ref=fb",
            device="mobile",
            client_ip="1.2.3.4",
        ),
    )

    assert res.recorded is True
    assert res.reason is None
    assert res.dedupe_key == "impression:session:s1:a1:article:my-slug"
    evt = res.event
    assert evt.event_id == "evt_t_00000001"
    assert evt.page_type == "article"
    assert evt.page_url == "/articles/my-slug"
    assert evt.page_key == "article:my-slug"
    assert evt.device == "mobile"
    assert evt.ip_hash == hash_ip("1.2.3.4", "salt")
    assert evt.ts_utc == NOW
    assert len(store.rows) == 1


def test_structural_duplicate_is_skipped():
    store = DummyStore()
    svc = _svc(store)
    ctx = TrackingContext(user_id="u1", session_id="s1", page_type="article", page_url="/article/x")

    first = svc.track_impression("a1", ctx)
    second = svc.track_impression("a1", ctx)

    assert first.recorded is True
    assert second.recorded is False
    assert second.reason == "duplicate"
    assert first.dedupe_key == second.dedupe_key == "impression:user:u1:a1:article:x"
    assert len(store.rows) == 1


def test_event_id_makes_repeat_clicks_distinct():
    store = DummyStore()
    svc = _svc(store)

    r1 = svc.track_click("a1", TrackingContext(session_id="s1", event_id="e1"))
    r2 = svc.track_click("a1", TrackingContext(session_id="s1", event_id="e2"))
    r3 = svc.track_click("a1", TrackingContext(session_id="s1", event_id="e1"))

    assert (r1.recorded, r2.recorded, r3.recorded) == (True, True, False)
    assert r1.dedupe_key == "click:session:s1:a1:other:other:e1"


def test_anonymous_event_is_recorded_without_dedupe():
    store = DummyStore()
    svc = _svc(store)

    r1 = svc.track_impression("a1", TrackingContext(page_type="homepage", page_url="/"))
    r2 = svc.track_impression("a1", TrackingContext(page_type="homepage", page_url="/"))

    assert r1.dedupe_key is None
    assert r1.recorded and r2.recorded
    assert len(store.rows) == 2


def test_fallback_and_unknown_buckets():
    res = _svc().track_impression(
        "a1",
        TrackingContext(session_id="s1", page_type="Landing", article_id="art-7", device="watch"),
    )
    # page key keeps the caller's type; stored page_type is bucketed
    assert res.event.page_key == "landing:art-7"
    assert res.event.page_type == "other"
    assert res.event.device == "desktop"


def test_referrer_used_when_page_url_missing():
    res = _svc().track_impression(
        "a1",
        TrackingContext(
            session_id="s1", page_type="category", referrer="https://site.com/category/tech/"
        ),
    )
    assert res.event.page_url == "/category/tech"
    assert res.event.page_key == "category:tech"


def test_explicit_page_key_is_used_as_is():
    res = _svc().track_impression("a1", TrackingContext(session_id="s1", page_key="custom:key"))
    assert res.dedupe_key == "impression:session:s1:a1:custom:key"


def test_fraud_blocks_recording():
    store = DummyStore()
    res = _svc(store, fraud=DummyFraud("too_many_clicks")).track_click(
        "a1", TrackingContext(session_id="s1", event_id="e1")
    )
    assert res.recorded is False
    assert res.reason == "fraud:too_many_clicks"
    assert store.rows == []


def test_fraud_not_consulted_for_views():
    store = DummyStore()
    res = _svc(store, fraud=DummyFraud("too_many_clicks")).track(
        "view", "a1", TrackingContext(session_id="s1")
    )
    assert res.recorded is True
