"""Port for user directory lookups used by assignment and notifications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from aftersales_engine.domain.auth.roles import Role


@dataclass(frozen=True)
class DirectoryUser:
    """User directory entry."""

    user_id: str
    username: str
    role: Role
    is_active: bool
    created_at: datetime
    store_id: str | None = None


class UserDirectoryPort(Protocol):
    """User directory contract."""

    async def find_by_id(self, *, user_id: str) -> DirectoryUser | None:
        """Return user by id, including inactive users."""

    async def find_active_users_by_role(self, *, role: Role) -> list[DirectoryUser]:
        """Return active users with the role, earliest-created first."""
