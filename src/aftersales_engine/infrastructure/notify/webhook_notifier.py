"""Chat-bot webhook notifier delivering markdown case notifications."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from aftersales_engine.application.ports.notifier_port import (
    NotificationMessage,
    NotificationResult,
    NotifierPort,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookHttpResponse:
    """Normalized HTTP response data returned by transport implementations."""

    status_code: int
    body_bytes: bytes


class WebhookTransportPort(Protocol):
    """Transport protocol used by the webhook notifier."""

    async def post_json(
        self,
        *,
        url: str,
        body: bytes,
        timeout_seconds: float,
    ) -> WebhookHttpResponse:
        """POST one JSON body and return normalized response data."""


class WebhookTransportError(RuntimeError):
    """Raised for timeouts and connection failures; these are retried."""


class UrllibWebhookTransport:
    """urllib-based async transport executing requests in a worker thread."""

    async def post_json(
        self,
        *,
        url: str,
        body: bytes,
        timeout_seconds: float,
    ) -> WebhookHttpResponse:
        return await asyncio.to_thread(
            self._post_sync,
            url=url,
            body=body,
            timeout_seconds=timeout_seconds,
        )

    def _post_sync(self, *, url: str, body: bytes, timeout_seconds: float) -> WebhookHttpResponse:
        request = Request(
            url=url,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=timeout_seconds) as response:
                return WebhookHttpResponse(
                    status_code=int(response.getcode()),
                    body_bytes=response.read(),
                )
        except HTTPError as error:
            return WebhookHttpResponse(status_code=int(error.code), body_bytes=error.read())
        except (URLError, TimeoutError) as error:
            raise WebhookTransportError(f"webhook transport failure: {error}") from error


class WebhookChatNotifier(NotifierPort):
    """Post markdown messages to a chat-bot webhook with bounded retries.

    Timeouts and connection failures are retried with a linear back-off
    (1s, 2s, ...). Non-2xx responses and a non-zero `errcode` are reported
    as undelivered without retrying.
    """

    def __init__(
        self,
        *,
        webhook_url: str,
        web_base_url: str,
        transport: WebhookTransportPort | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 2,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._webhook_url = webhook_url
        self._web_base_url = web_base_url.rstrip("/")
        self._transport = transport or UrllibWebhookTransport()
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._sleep = sleep

    async def notify(self, message: NotificationMessage) -> NotificationResult:
        """Deliver one message; never raises for delivery failures."""

        body = json.dumps(self._build_payload(message), ensure_ascii=False).encode("utf-8")
        last_error = "not attempted"
        for attempt in range(self._max_retries + 1):
            if attempt > 0:
                await self._sleep(float(attempt))
            try:
                response = await self._transport.post_json(
                    url=self._webhook_url,
                    body=body,
                    timeout_seconds=self._timeout_seconds,
                )
            except WebhookTransportError as error:
                last_error = str(error)
                logger.warning(
                    "notification_attempt_failed event_type=%s recipient_id=%s attempt=%s error=%s",
                    message.event_type,
                    message.recipient_id,
                    attempt + 1,
                    error,
                )
                continue
            return _to_result(response)

        return NotificationResult(delivered=False, error=last_error)

    def _build_payload(self, message: NotificationMessage) -> dict[str, Any]:
        lines = [f"### {message.title}", ""]
        if message.recipient_name:
            lines.extend([f"@{message.recipient_name}", ""])
        lines.extend(
            [
                message.body,
                "",
                f"[View case]({self._web_base_url}{message.link_path})",
            ]
        )
        return {
            "msgtype": "markdown",
            "markdown": {"title": message.title, "text": "\n".join(lines)},
        }


class DisabledNotifier(NotifierPort):
    """Notifier used when no webhook is configured; logs the skip and reports success."""

    async def notify(self, message: NotificationMessage) -> NotificationResult:
        logger.info(
            "notification_skipped_no_webhook event_type=%s recipient_id=%s",
            message.event_type,
            message.recipient_id,
        )
        return NotificationResult(delivered=True)


def _to_result(response: WebhookHttpResponse) -> NotificationResult:
    if not 200 <= response.status_code < 300:
        return NotificationResult(delivered=False, error=f"http status {response.status_code}")

    try:
        decoded = json.loads(response.body_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return NotificationResult(delivered=False, error="invalid webhook response body")

    if not isinstance(decoded, dict):
        return NotificationResult(delivered=False, error="invalid webhook response body")
    errcode = decoded.get("errcode")
    if errcode != 0:
        return NotificationResult(
            delivered=False,
            error=f"errcode={errcode} errmsg={decoded.get('errmsg')}",
        )
    return NotificationResult(delivered=True)
