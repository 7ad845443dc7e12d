"""Acting-user value object passed into every case operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from aftersales_engine.domain.auth.roles import CASE_MANAGER_ROLES, Role

SYSTEM_ACTOR_ID: Final[str] = "SYSTEM"


@dataclass(frozen=True)
class CaseActor:
    """Authenticated caller identity as seen by the engine."""

    user_id: str
    role: Role
    store_id: str | None = None

    @property
    def is_case_manager(self) -> bool:
        return self.role in CASE_MANAGER_ROLES
