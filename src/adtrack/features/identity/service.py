from __future__ import annotations

from typing import Any


def build_identity_key(user_id: Any = None, session_id: Any = None) -> str | None:
    """
    "user:<id>" for logged-in users, "session:<id>" for anonymous
    visitors, None when neither is known.
    """
    if user_id:
        return f"user:{user_id}"
    if session_id:
        return f"session:{session_id}"
    return None
