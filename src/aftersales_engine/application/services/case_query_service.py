"""Read-side use-cases: list, detail, aggregate counts and tracking lookup."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import UUID

from aftersales_engine.application.ports.blob_store_port import BlobStorePort
from aftersales_engine.application.ports.case_repository_port import (
    AttachmentRecord,
    CaseCountScope,
    CaseListFilter,
    CaseLogRecord,
    CaseRecord,
    CaseRepositoryPort,
    CaseStatusCounts,
)
from aftersales_engine.application.services.provenance_resolver import ProvenanceResolver
from aftersales_engine.domain.actor import CaseActor
from aftersales_engine.domain.auth.roles import Role
from aftersales_engine.domain.carriers import detect_carrier
from aftersales_engine.domain.errors import CaseNotFoundError, CaseRoleViolationError
from aftersales_engine.domain.provenance import ProvenanceResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentView:
    """Attachment metadata with a time-limited download URL."""

    id: int
    filename: str
    media_type: str
    storage_key: str
    url: str
    created_at: datetime


@dataclass(frozen=True)
class CaseDetail:
    """Case with its ordered log and attachments."""

    case: CaseRecord
    logs: list[CaseLogRecord]
    attachments: list[AttachmentView]


@dataclass(frozen=True)
class TrackingLookup:
    """Diagnostic answer for a tracking number."""

    tracking_no: str
    carrier: str
    provenance: ProvenanceResult


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class CaseQueryService:
    """Serve case reads scoped to what the acting user may see.

    Suppliers only see cases they own and store users only their store's
    cases; admins and buyers see everything.
    """

    def __init__(
        self,
        *,
        cases: CaseRepositoryPort,
        blob_store: BlobStorePort,
        provenance_resolver: ProvenanceResolver,
        url_ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cases = cases
        self._blob_store = blob_store
        self._provenance_resolver = provenance_resolver
        self._url_ttl_seconds = url_ttl_seconds
        self._clock = clock

    async def list_cases(self, *, filters: CaseListFilter, actor: CaseActor) -> list[CaseRecord]:
        """Return filtered cases visible to the actor, newest first."""

        return await self._cases.list_cases(filters=_scope_filters(filters, actor=actor))

    async def get_case_detail(self, case_id: UUID, *, actor: CaseActor) -> CaseDetail:
        """Return one visible case with logs and signed attachment URLs."""

        case = await self._cases.get_case(case_id=case_id)
        if case is None or not _can_view(case, actor=actor):
            raise CaseNotFoundError(case_id=case_id)

        logs = await self._cases.list_case_logs(case_id=case_id)
        attachments = await self._cases.list_attachments(case_id=case_id)
        views = [await self._attachment_view(attachment) for attachment in attachments]
        return CaseDetail(case=case, logs=logs, attachments=views)

    async def count_cases_by_status(self, *, actor: CaseActor) -> CaseStatusCounts:
        """Return total, per-status and overdue counts within the actor's scope."""

        scope = CaseCountScope()
        if actor.role is Role.SUPPLIER:
            scope = CaseCountScope(supplier_id=actor.user_id)
        elif actor.role is Role.STORE:
            scope = CaseCountScope(store_id=_require_store(actor))
        return await self._cases.count_cases_by_status(scope=scope, now=self._clock())

    async def lookup_tracking(self, tracking_no: str) -> TrackingLookup:
        """Resolve a tracking number without touching any case."""

        normalized = tracking_no.strip()
        provenance = await self._provenance_resolver.resolve_by_tracking_number(normalized)
        return TrackingLookup(
            tracking_no=normalized,
            carrier=detect_carrier(normalized),
            provenance=provenance,
        )

    async def _attachment_view(self, attachment: AttachmentRecord) -> AttachmentView:
        try:
            url = await self._blob_store.signed_url(
                attachment.storage_key,
                ttl_seconds=self._url_ttl_seconds,
            )
        except Exception as exc:
            logger.warning(
                "attachment_url_signing_failed attachment_id=%s storage_key=%s error=%s",
                attachment.id,
                attachment.storage_key,
                exc,
            )
            url = attachment.storage_key
        return AttachmentView(
            id=attachment.id,
            filename=attachment.filename,
            media_type=attachment.media_type,
            storage_key=attachment.storage_key,
            url=url,
            created_at=attachment.created_at,
        )


def _scope_filters(filters: CaseListFilter, *, actor: CaseActor) -> CaseListFilter:
    if actor.role is Role.SUPPLIER:
        return replace(filters, supplier_id=actor.user_id)
    if actor.role is Role.STORE:
        return replace(filters, store_id=_require_store(actor))
    return filters


def _can_view(case: CaseRecord, *, actor: CaseActor) -> bool:
    if actor.role is Role.SUPPLIER:
        return case.supplier_id == actor.user_id
    if actor.role is Role.STORE:
        return actor.store_id is not None and case.store_id == actor.store_id
    return True


def _require_store(actor: CaseActor) -> str:
    if actor.store_id is None:
        raise CaseRoleViolationError(
            "store users must be bound to a store to read cases",
            required_roles=(Role.ADMIN, Role.BUYER, Role.SUPPLIER),
        )
    return actor.store_id
