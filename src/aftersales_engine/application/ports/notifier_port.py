"""Port for outbound case notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class NotificationMessage:
    """One notification addressed to a single user."""

    recipient_id: str
    event_type: str
    title: str
    body: str
    link_path: str
    recipient_name: str | None = None


@dataclass(frozen=True)
class NotificationResult:
    """Delivery outcome reported by a notifier."""

    delivered: bool
    error: str | None = None


class NotifierPort(Protocol):
    """Notification delivery contract."""

    async def notify(self, message: NotificationMessage) -> NotificationResult:
        """Deliver a message and report the outcome."""
