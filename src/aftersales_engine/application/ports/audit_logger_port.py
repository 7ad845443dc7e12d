"""Port for structured audit records of case actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class AuditRecordInput:
    """Input payload for inserting an audit record."""

    action: str
    resource_type: str
    resource_id: str
    actor_id: str | None
    details: dict[str, Any] = field(default_factory=dict)


class AuditLoggerPort(Protocol):
    """Async audit logger contract."""

    async def record(self, payload: AuditRecordInput) -> None:
        """Append an audit record."""
