"""SQLAlchemy adapter for user directory lookups."""

from __future__ import annotations

from datetime import datetime
from typing import cast

import sqlalchemy as sa
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aftersales_engine.application.ports.user_directory_port import (
    DirectoryUser,
    UserDirectoryPort,
)
from aftersales_engine.domain.auth.roles import Role
from aftersales_engine.infrastructure.db.metadata import users


def _to_directory_user(row: RowMapping) -> DirectoryUser:
    return DirectoryUser(
        user_id=cast(str, row["user_id"]),
        username=cast(str, row["username"]),
        role=Role(cast(str, row["role"])),
        is_active=bool(row["is_active"]),
        created_at=cast(datetime, row["created_at"]),
        store_id=cast(str | None, row["store_id"]),
    )


class SqlAlchemyUserDirectory(UserDirectoryPort):
    """User directory backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, *, user_id: str) -> DirectoryUser | None:
        """Return user by id, including inactive users."""

        statement = sa.select(users).where(users.c.user_id == user_id)
        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_directory_user(row)

    async def find_active_users_by_role(self, *, role: Role) -> list[DirectoryUser]:
        """Return active users with the role, earliest-created first."""

        statement = (
            sa.select(users)
            .where(users.c.role == role.value, users.c.is_active.is_(True))
            .order_by(users.c.created_at.asc(), users.c.user_id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return [_to_directory_user(row) for row in result.mappings().all()]
