"""after-sales API entrypoint and HTTP route wiring."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI

from aftersales_engine.application.ports.notifier_port import NotifierPort
from aftersales_engine.application.services.actor_assignment_service import (
    ActorAssignmentResolver,
)
from aftersales_engine.application.services.best_effort_dispatcher import BestEffortDispatcher
from aftersales_engine.application.services.case_attachment_service import CaseAttachmentService
from aftersales_engine.application.services.case_lifecycle_service import CaseLifecycleService
from aftersales_engine.application.services.case_query_service import CaseQueryService
from aftersales_engine.application.services.provenance_resolver import ProvenanceResolver
from aftersales_engine.application.services.sla_reminder_service import SlaReminderService
from aftersales_engine.config.settings import Settings, load_settings
from aftersales_engine.domain.sla import SlaPolicy
from aftersales_engine.infrastructure.db.audit_logger import SqlAlchemyAuditLogger
from aftersales_engine.infrastructure.db.case_repository import SqlAlchemyCaseRepository
from aftersales_engine.infrastructure.db.provenance_queries import SqlAlchemyProvenanceQueries
from aftersales_engine.infrastructure.db.session import create_session_factory
from aftersales_engine.infrastructure.db.user_directory import SqlAlchemyUserDirectory
from aftersales_engine.infrastructure.http.blob_router import build_blob_router
from aftersales_engine.infrastructure.http.case_router import build_case_router
from aftersales_engine.infrastructure.logging import configure_logging
from aftersales_engine.infrastructure.notify.webhook_notifier import (
    DisabledNotifier,
    WebhookChatNotifier,
)
from aftersales_engine.infrastructure.storage.local_blob_store import LocalBlobStore

API_HOST = "0.0.0.0"
API_PORT = 8000
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaseServices:
    """Application services shared by the HTTP routers."""

    lifecycle: CaseLifecycleService
    query: CaseQueryService
    attachments: CaseAttachmentService
    reminders: SlaReminderService
    dispatcher: BestEffortDispatcher
    blob_store: LocalBlobStore


def build_notifier(settings: Settings) -> NotifierPort:
    """Build webhook notifier, or a logging no-op when no webhook is configured."""

    if settings.notifier_webhook_url is None:
        return DisabledNotifier()
    return WebhookChatNotifier(
        webhook_url=str(settings.notifier_webhook_url),
        web_base_url=str(settings.web_base_url),
        timeout_seconds=settings.notifier_timeout_seconds,
        max_retries=settings.notifier_max_retries,
    )


def build_case_services(
    settings: Settings,
    *,
    notifier: NotifierPort | None = None,
) -> CaseServices:
    """Build case services with SQLAlchemy-backed dependencies."""

    session_factory = create_session_factory(settings.database_url)
    cases = SqlAlchemyCaseRepository(session_factory)
    lookups = SqlAlchemyProvenanceQueries(session_factory)
    directory = SqlAlchemyUserDirectory(session_factory)
    audit_logger = SqlAlchemyAuditLogger(session_factory)
    dispatcher = BestEffortDispatcher(timeout_seconds=settings.side_effect_budget_seconds)
    blob_store = LocalBlobStore(
        root=settings.blob_store_root,
        signing_secret=settings.blob_signing_secret,
        public_base_url=str(settings.blob_public_base_url),
    )
    provenance_resolver = ProvenanceResolver(lookups=lookups)
    notifier = notifier or build_notifier(settings)

    lifecycle = CaseLifecycleService(
        cases=cases,
        lookups=lookups,
        directory=directory,
        provenance_resolver=provenance_resolver,
        assignment_resolver=ActorAssignmentResolver(lookups=lookups, directory=directory),
        dispatcher=dispatcher,
        notifier=notifier,
        audit_logger=audit_logger,
        sla_policy=SlaPolicy(
            window_hours=settings.sla_window_hours,
            priority_windows_enabled=settings.sla_priority_windows_enabled,
        ),
    )
    query = CaseQueryService(
        cases=cases,
        blob_store=blob_store,
        provenance_resolver=provenance_resolver,
        url_ttl_seconds=settings.attachment_url_ttl_seconds,
    )
    attachments = CaseAttachmentService(
        cases=cases,
        blob_store=blob_store,
        dispatcher=dispatcher,
        audit_logger=audit_logger,
        max_files=settings.attachment_max_files,
        max_bytes=settings.attachment_max_bytes,
    )
    reminders = SlaReminderService(
        cases=cases,
        directory=directory,
        notifier=notifier,
        dispatcher=dispatcher,
    )
    return CaseServices(
        lifecycle=lifecycle,
        query=query,
        attachments=attachments,
        reminders=reminders,
        dispatcher=dispatcher,
        blob_store=blob_store,
    )


def create_app(
    *,
    settings: Settings | None = None,
    services: CaseServices | None = None,
) -> FastAPI:
    """Create FastAPI app exposing after-sales case routes."""

    if settings is None:
        settings = load_settings()
    configure_logging(level=settings.log_level)
    if services is None:
        services = build_case_services(settings)
    case_services = services
    app_settings = settings

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        stop_event = asyncio.Event()
        reminder_task = None
        if app_settings.sla_reminder_enabled:
            reminder_task = asyncio.create_task(
                case_services.reminders.run_until_stopped(
                    stop_event,
                    interval_seconds=app_settings.sla_reminder_interval_seconds,
                ),
                name="sla_reminders",
            )
        logger.info("aftersales_api_started")
        yield
        stop_event.set()
        if reminder_task is not None:
            await reminder_task
        logger.info(
            "aftersales_api_draining_side_effects pending=%s",
            case_services.dispatcher.pending_count,
        )
        await case_services.dispatcher.drain()

    app = FastAPI(title="After-sales case engine", lifespan=lifespan)
    app.include_router(
        build_case_router(
            lifecycle_service=case_services.lifecycle,
            query_service=case_services.query,
            attachment_service=case_services.attachments,
        )
    )
    app.include_router(build_blob_router(blob_store=case_services.blob_store))

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run_asgi_server(*, host: str = API_HOST, port: int = API_PORT) -> None:
    """Run the API as a long-lived ASGI process using application factory mode."""

    uvicorn.run(
        "apps.api.main:create_app",
        host=host,
        port=port,
        factory=True,
    )


def main() -> None:
    """Run the after-sales API process."""

    run_asgi_server()


if __name__ == "__main__":
    main()
