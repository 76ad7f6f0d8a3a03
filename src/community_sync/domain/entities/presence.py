from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class PresenceSnapshot:
    """Members currently attached to a topic, keyed by identity handle.

    Replaced wholesale on every sync; never diffed.
    """

    members: Mapping[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_state(cls, state: Mapping[str, dict[str, Any]]) -> PresenceSnapshot:
        return cls(members=MappingProxyType({k: dict(v) for k, v in state.items()}))

    @property
    def count(self) -> int:
        return len(self.members)

    def __contains__(self, handle: object) -> bool:
        return handle in self.members
