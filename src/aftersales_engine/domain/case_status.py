"""Case status enum for the after-sales lifecycle state machine."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class CaseStatus(StrEnum):
    """All after-sales case statuses."""

    OPENED = "OPENED"
    EXECUTING = "EXECUTING"
    INSPECTING = "INSPECTING"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES: Final[frozenset[CaseStatus]] = frozenset(
    {CaseStatus.RESOLVED, CaseStatus.CLOSED, CaseStatus.CANCELLED}
)

# Statuses excluded from overdue SLA counting.
SLA_SETTLED_STATUSES: Final[frozenset[CaseStatus]] = TERMINAL_STATUSES
