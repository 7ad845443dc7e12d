"""Fire-and-forget execution of notification and audit side effects."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

SideEffectFactory = Callable[[], Awaitable[object]]


class BestEffortDispatcher:
    """Run side effects as independent tasks whose failures never reach the caller.

    Each effect gets its own task and its own timeout, so a failing notifier
    cannot prevent an audit record from being written and vice versa.
    """

    def __init__(self, *, timeout_seconds: float = 35.0) -> None:
        self._timeout_seconds = timeout_seconds
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def dispatch(
        self,
        effect_name: str,
        factory: SideEffectFactory,
        *,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Schedule one side effect on the running loop and return immediately."""

        task = asyncio.get_running_loop().create_task(
            self._run(effect_name, factory, dict(context or {})),
            name=f"side_effect:{effect_name}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait until every scheduled side effect has finished."""

        while self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    async def _run(
        self,
        effect_name: str,
        factory: SideEffectFactory,
        context: dict[str, object],
    ) -> None:
        try:
            await asyncio.wait_for(factory(), timeout=self._timeout_seconds)
        except TimeoutError:
            logger.warning(
                "side_effect_timeout effect=%s timeout_seconds=%s %s",
                effect_name,
                self._timeout_seconds,
                _format_context(context),
            )
        except Exception as exc:
            logger.warning(
                "side_effect_failed effect=%s %s error=%s",
                effect_name,
                _format_context(context),
                exc,
            )


def _format_context(context: Mapping[str, object]) -> str:
    return " ".join(f"{key}={value}" for key, value in context.items())
