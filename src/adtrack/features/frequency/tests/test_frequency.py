from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from adtrack.features.frequency.service import FrequencyPolicy, FrequencyService

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


class DummyStore:
    """
    In-memory stand-in for the DuckDB adapter's impression queries.
    events: list of dicts with ad_id, event_type, ts, user_id, session_id, page_key
    """

    def __init__(self, events):
        self.events = list(events)

    def count_impressions(self, *, ad_id, user_id=None, session_id=None, since=None, page_key=None):
        n = 0
        for e in self.events:
            if e["ad_id"] != ad_id or e["event_type"] != "impression":
                continue
            if user_id is not None and e.get("user_id") != user_id:
                continue
            if session_id is not None and e.get("session_id") != session_id:
                continue
            if since is not None and e["ts"] < since:
                continue
            if page_key is not None and e.get("page_key") != page_key:
                continue
            n += 1
        return n

    def totals_by_type(self, *, ad_id, start=None, end=None):
        out: dict[str, int] = {}
        for e in self.events:
            if e["ad_id"] == ad_id:
                out[e["event_type"]] = out.get(e["event_type"], 0) + 1
        return out


def _imp(**kw):
    base = {"ad_id": "a1", "event_type": "impression", "ts": NOW, "page_key": "article:x"}
    base.update(kw)
    return base


def _svc(events):
    return FrequencyService(store=DummyStore(events), clock=lambda: NOW)


def test_unknown_policy_type_raises():
    with pytest.raises(ValueError):
        FrequencyPolicy(type="once_per_week")
    with pytest.raises(ValueError):
        FrequencyPolicy(type="unlimited", max_impressions=-1)


def test_unlimited_never_capped_by_identity():
    svc = _svc([_imp(session_id="s1")])
    assert svc.is_capped(ad_id="a1", policy=FrequencyPolicy(), session_id="s1") is False


def test_global_impression_and_click_caps():
    events = [
        _imp(session_id="s1"),
        _imp(session_id="s2"),
        {"ad_id": "a1", "event_type": "click", "ts": NOW},
    ]
    svc = _svc(events)
    assert svc.is_capped(ad_id="a1", policy=FrequencyPolicy(max_impressions=2)) is True
    assert svc.is_capped(ad_id="a1", policy=FrequencyPolicy(max_impressions=3)) is False
    assert svc.is_capped(ad_id="a1", policy=FrequencyPolicy(max_clicks=1)) is True


def test_once_per_session_prefers_session():
    svc = _svc([_imp(session_id="s1", user_id="u1")])
    policy = FrequencyPolicy(type="once_per_session")
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1", user_id="u9") is True
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s2", user_id="u1") is False
    assert svc.is_capped(ad_id="a1", policy=policy, user_id="u1") is True


def test_once_per_user_prefers_user():
    svc = _svc([_imp(session_id="s1", user_id="u1")])
    policy = FrequencyPolicy(type="once_per_user")
    assert svc.is_capped(ad_id="a1", policy=policy, user_id="u1", session_id="s-new") is True
    assert svc.is_capped(ad_id="a1", policy=policy, user_id="u2", session_id="s1") is False
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1") is True


def test_once_per_day_resets_at_utc_midnight():
    svc = _svc([_imp(session_id="s1", ts=NOW - timedelta(days=1))])
    policy = FrequencyPolicy(type="once_per_day")
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1") is False

    svc = _svc([_imp(session_id="s1", ts=NOW.replace(hour=0, minute=5))])
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1") is True


def test_once_per_page():
    svc = _svc([_imp(session_id="s1", page_key="article:x")])
    policy = FrequencyPolicy(type="once_per_page")
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1", page_key="article:x") is True
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1", page_key="article:y") is False
    assert svc.is_capped(ad_id="a1", policy=policy, session_id="s1", page_key=None) is False


def test_anonymous_request_is_never_identity_capped():
    svc = _svc([_imp(session_id="s1")])
    for t in ("once_per_session", "once_per_user", "once_per_day", "once_per_page"):
        assert svc.is_capped(ad_id="a1", policy=FrequencyPolicy(type=t), page_key="article:x") is False


def test_against_duckdb_store(tmp_path):
    from adtrack.features.events.schema import AdEvent
    from adtrack.features.persistence.duckdb_adapter import DuckDBAdapter

    adapter = DuckDBAdapter(path=str(tmp_path / "f.duckdb"), clean_slate=True)
    adapter.open()
    try:
        adapter.insert_event(
            AdEvent(
                event_id="e1",
                ad_id="a1",
                event_type="impression",
                ts_utc=NOW - timedelta(hours=1),
                session_id="s1",
                page_key="article:x",
            ).as_row()
        )
        svc = FrequencyService(store=adapter, clock=lambda: NOW)
        assert svc.is_capped(
            ad_id="a1", policy=FrequencyPolicy(type="once_per_day"), session_id="s1"
        )
        assert not svc.is_capped(
            ad_id="a1", policy=FrequencyPolicy(type="once_per_day"), session_id="s2"
        )
    finally:
        adapter.close()
