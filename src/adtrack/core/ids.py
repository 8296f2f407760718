from __future__ import annotations

import uuid
from dataclasses import dataclass, field


def new_namespace(length: int = 12) -> str:
    """
    Random namespace for one tracker process, so counters from two
    processes writing the same store never produce the same event id.
    """
    return uuid.uuid4().hex[:length]


@dataclass(slots=True)
class IdsService:
    namespace: str
    _counters: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def next_id(self, prefix: str) -> str:
        n = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = n
        return f"{prefix}_{self.namespace}_{n:08d}"
