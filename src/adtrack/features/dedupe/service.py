from __future__ import annotations

from typing import Any

from adtrack.features.dedupe.types import ANON_IDENTITY, NO_PAGE, DedupRequest


def build_dedupe_key(
    type: Any = None,  # noqa: A002
    ad_id: Any = None,
    page_key: Any = None,
    identity_key: Any = None,
    event_id: Any = None,
) -> str | None:
    """
    Idempotency token for an ad tracking event, or None when the inputs
    cannot identify the event safely.

    With a client-supplied event_id:
        "{type}:{identity_key|anon}:{ad_id}:{page_key|no-page}:{event_id}"
    Without one, identity and page are both required:
        "{type}:{identity_key}:{ad_id}:{page_key}"
    """
    if not type or not ad_id:
        return None

    if event_id:
        identity_part = identity_key or ANON_IDENTITY
        page_part = page_key or NO_PAGE
        return f"{type}:{identity_part}:{ad_id}:{page_part}:{event_id}"

    if not identity_key or not page_key:
        return None
    return f"{type}:{identity_key}:{ad_id}:{page_key}"


def build_dedupe_key_for(req: DedupRequest) -> str | None:
    return build_dedupe_key(
        type=req.type,
        ad_id=req.ad_id,
        page_key=req.page_key,
        identity_key=req.identity_key,
        event_id=req.event_id,
    )
