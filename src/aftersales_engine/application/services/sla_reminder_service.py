"""Periodic reminders for after-sales cases past their SLA deadline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from aftersales_engine.application.ports.case_repository_port import (
    CaseRecord,
    CaseRepositoryPort,
)
from aftersales_engine.application.ports.notifier_port import NotificationMessage, NotifierPort
from aftersales_engine.application.ports.user_directory_port import UserDirectoryPort
from aftersales_engine.application.services.best_effort_dispatcher import BestEffortDispatcher
from aftersales_engine.domain.case_status import SLA_SETTLED_STATUSES
from aftersales_engine.domain.case_types import ISSUE_TYPE_LABELS, PRIORITY_LABELS

logger = logging.getLogger(__name__)

SLA_OVERDUE_EVENT = "sla_overdue"
DEFAULT_BATCH_LIMIT = 500


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SlaReminderService:
    """Notify handlers of overdue cases, at most once per case per UTC day.

    The per-day slot is claimed in the repository before the notification is
    dispatched, so concurrent runs never remind the same case twice.
    """

    def __init__(
        self,
        *,
        cases: CaseRepositoryPort,
        directory: UserDirectoryPort,
        notifier: NotifierPort,
        dispatcher: BestEffortDispatcher,
        clock: Callable[[], datetime] = _utcnow,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self._cases = cases
        self._directory = directory
        self._notifier = notifier
        self._dispatcher = dispatcher
        self._clock = clock
        self._batch_limit = batch_limit

    async def remind_overdue_cases(self, *, now: datetime | None = None) -> int:
        """Dispatch one reminder per overdue case not yet reminded today."""

        now = now or self._clock()
        batch_date = now.astimezone(UTC).date()
        overdue = await self._cases.list_overdue_cases(now=now, limit=self._batch_limit)

        reminded = 0
        for case in overdue:
            if case.status in SLA_SETTLED_STATUSES:
                continue
            if case.handler_id is None:
                logger.info("sla_reminder_skipped case_id=%s reason=no_handler", case.case_id)
                continue
            claimed = await self._cases.record_sla_reminder(
                case_id=case.case_id,
                batch_date=batch_date,
                recipient_id=case.handler_id,
            )
            if not claimed:
                continue
            self._remind(case, recipient_id=case.handler_id)
            reminded += 1

        logger.info(
            "sla_reminder_run batch_date=%s overdue=%s reminded=%s",
            batch_date.isoformat(),
            len(overdue),
            reminded,
        )
        return reminded

    async def run_until_stopped(
        self,
        stop_event: asyncio.Event,
        *,
        interval_seconds: float,
    ) -> None:
        """Run a reminder pass every interval until stop_event is set."""

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except TimeoutError:
                pass
            if stop_event.is_set():
                return
            try:
                await self.remind_overdue_cases()
            except Exception:  # noqa: BLE001
                logger.exception("sla_reminder_run_failed")

    def _remind(self, case: CaseRecord, *, recipient_id: str) -> None:
        async def send() -> None:
            recipient = await self._directory.find_by_id(user_id=recipient_id)
            if recipient is None or not recipient.is_active:
                logger.warning(
                    "sla_reminder_recipient_unavailable case_id=%s recipient_id=%s",
                    case.case_id,
                    recipient_id,
                )
                return
            result = await self._notifier.notify(
                NotificationMessage(
                    recipient_id=recipient_id,
                    recipient_name=recipient.username,
                    event_type=SLA_OVERDUE_EVENT,
                    title=f"Case {case.case_number} is past its SLA deadline",
                    body=(
                        f"Case: {case.case_number}\n"
                        f"Issue: {ISSUE_TYPE_LABELS[case.issue_type]}\n"
                        f"Priority: {PRIORITY_LABELS[case.priority]}\n"
                        f"Deadline: {case.sla_deadline.isoformat()}"
                    ),
                    link_path=f"/after-sales/{case.case_id}",
                )
            )
            if not result.delivered:
                logger.warning(
                    "sla_reminder_not_delivered case_id=%s recipient_id=%s error=%s",
                    case.case_id,
                    recipient_id,
                    result.error,
                )

        self._dispatcher.dispatch(
            "notify",
            send,
            context={
                "case_id": case.case_id,
                "event_type": SLA_OVERDUE_EVENT,
                "recipient_id": recipient_id,
            },
        )
