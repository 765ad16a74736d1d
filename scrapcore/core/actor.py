from __future__ import annotations

from dataclasses import dataclass

from scrapcore.core.constants import OwnerType, Role


@dataclass(frozen=True)
class Actor:
    """Caller identity resolved from the bearer token."""

    id: str
    role: str
    tier: str | None = None

    @property
    def owner_type(self) -> str:
        if self.role == Role.COLLECTOR:
            return OwnerType.COLLECTOR
        return OwnerType.REQUESTER
