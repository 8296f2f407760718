from __future__ import annotations

from dataclasses import dataclass

from adtrack.features.identity.service import build_identity_key


@dataclass(frozen=True, slots=True)
class IdentityReference:
    """
    The actor behind an event. When both ids are present the user id is
    authoritative; the session id only identifies anonymous visitors.
    """

    user_id: str | None = None
    session_id: str | None = None

    @property
    def key(self) -> str | None:
        return build_identity_key(user_id=self.user_id, session_id=self.session_id)
