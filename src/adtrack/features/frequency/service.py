from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from adtrack.core.clock import Clock, start_of_day, utc_now
from adtrack.features.events.schema import FREQUENCY_TYPES


class ImpressionStore(Protocol):
    def count_impressions(self, *, ad_id: str, **filters) -> int: ...

    def totals_by_type(self, *, ad_id: str, start=None, end=None) -> dict[str, int]: ...


@dataclass(frozen=True)
class FrequencyPolicy:
    """
    type:
      - unlimited        -> no identity-based cap
      - once_per_page    -> one impression per identity per page key
      - once_per_session -> one impression per session
      - once_per_day     -> one impression per identity per UTC day
      - once_per_user    -> one impression per identity, ever
    max_impressions / max_clicks: global caps, 0 disables.
    """

    type: str = "unlimited"
    max_impressions: int = 0
    max_clicks: int = 0

    def __post_init__(self) -> None:
        if self.type not in FREQUENCY_TYPES:
            raise ValueError(
                f"Unsupported frequency type={self.type!r}. Allowed={list(FREQUENCY_TYPES)}"
            )
        if self.max_impressions < 0 or self.max_clicks < 0:
            raise ValueError("frequency caps must be >= 0")


class FrequencyService:
    def __init__(self, *, store: ImpressionStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def is_capped(
        self,
        *,
        ad_id: str,
        policy: FrequencyPolicy,
        user_id: str | None = None,
        session_id: str | None = None,
        page_key: str | None = None,
    ) -> bool:
        """
        True when the ad must not be shown again to this identity.
        """
        if policy.max_impressions > 0 or policy.max_clicks > 0:
            totals = self._store.totals_by_type(ad_id=ad_id)
            if policy.max_impressions > 0 and totals.get("impression", 0) >= policy.max_impressions:
                return True
            if policy.max_clicks > 0 and totals.get("click", 0) >= policy.max_clicks:
                return True

        if policy.type == "unlimited":
            return False
        if not user_id and not session_id:
            return False

        # user wins, except for once_per_session where the session does
        if policy.type == "once_per_session":
            scope = {"session_id": session_id} if session_id else {"user_id": user_id}
        else:
            scope = {"user_id": user_id} if user_id else {"session_id": session_id}

        if policy.type == "once_per_page":
            if not page_key:
                return False
            return self._store.count_impressions(ad_id=ad_id, page_key=page_key, **scope) > 0

        if policy.type == "once_per_day":
            since = start_of_day(self._clock())
            return self._store.count_impressions(ad_id=ad_id, since=since, **scope) > 0

        return self._store.count_impressions(ad_id=ad_id, **scope) > 0
