"""SQLAlchemy adapter for structured audit records."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aftersales_engine.application.ports.audit_logger_port import (
    AuditLoggerPort,
    AuditRecordInput,
)
from aftersales_engine.infrastructure.db.metadata import audit_logs


class SqlAlchemyAuditLogger(AuditLoggerPort):
    """Audit logger backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(self, payload: AuditRecordInput) -> None:
        """Insert one audit row."""

        statement = sa.insert(audit_logs).values(
            action=payload.action,
            resource_type=payload.resource_type,
            resource_id=payload.resource_id,
            actor_id=payload.actor_id,
            details=payload.details,
        )

        async with self._session_factory() as session:
            await session.execute(statement)
            await session.commit()
