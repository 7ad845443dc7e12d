"""SLA deadline policy applied once when a case is opened."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from aftersales_engine.domain.case_types import CasePriority

DEFAULT_SLA_WINDOW_HOURS: Final[int] = 168

PRIORITY_SLA_HOURS: Final[dict[CasePriority, int]] = {
    CasePriority.URGENT: 24,
    CasePriority.HIGH: 72,
    CasePriority.MEDIUM: 120,
    CasePriority.LOW: 168,
}


@dataclass(frozen=True)
class SlaPolicy:
    """Compute case SLA deadlines.

    The uniform window applies unless priority windows are explicitly enabled.
    """

    window_hours: int = DEFAULT_SLA_WINDOW_HOURS
    priority_windows_enabled: bool = False

    def window_for(self, priority: CasePriority) -> timedelta:
        if self.priority_windows_enabled:
            return timedelta(hours=PRIORITY_SLA_HOURS[priority])
        return timedelta(hours=self.window_hours)

    def deadline_for(self, *, priority: CasePriority, opened_at: datetime) -> datetime:
        return opened_at + self.window_for(priority)
