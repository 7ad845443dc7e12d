"""Port for after-sales case persistence operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from aftersales_engine.domain.case_status import CaseStatus
from aftersales_engine.domain.case_types import (
    CasePriority,
    FulfillmentChannel,
    IssueType,
)


@dataclass(frozen=True)
class CaseLogCreateInput:
    """One append-only case log entry written together with a transition."""

    action: str
    actor_id: str
    description: str | None = None


@dataclass(frozen=True)
class CaseCreateInput:
    """Input payload for creating a case row with its initial log entries."""

    case_id: UUID
    case_number: str
    status: CaseStatus
    issue_type: IssueType
    priority: CasePriority
    description: str
    channel: FulfillmentChannel
    sla_deadline: datetime
    opened_at: datetime
    order_id: str | None = None
    shipment_id: str | None = None
    store_id: str | None = None
    supplier_id: str | None = None
    customer_id: str | None = None
    handler_id: str | None = None
    claim_amount: Decimal | None = None
    inventory_disposition: str | None = None


@dataclass(frozen=True)
class CaseRecord:
    """Case persistence model used across repository boundaries."""

    case_id: UUID
    case_number: str
    status: CaseStatus
    issue_type: IssueType
    priority: CasePriority
    description: str
    channel: FulfillmentChannel
    sla_deadline: datetime
    created_at: datetime
    updated_at: datetime
    order_id: str | None = None
    shipment_id: str | None = None
    replacement_shipment_id: str | None = None
    store_id: str | None = None
    supplier_id: str | None = None
    customer_id: str | None = None
    handler_id: str | None = None
    claim_amount: Decimal | None = None
    inventory_disposition: str | None = None
    resolution: str | None = None
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class CaseLogRecord:
    """Persisted case log entry."""

    id: int
    case_id: UUID
    action: str
    actor_id: str
    description: str | None
    created_at: datetime


@dataclass(frozen=True)
class ReplacementShipmentInput:
    """Shipment row created when a supplier ships a replacement item."""

    shipment_id: str
    shipment_no: str
    tracking_no: str
    carrier: str | None
    order_id: str | None
    supplier_id: str | None
    request_item_id: str | None


@dataclass(frozen=True)
class AttachmentCreateInput:
    """Attachment metadata persisted after the blob is stored."""

    storage_key: str
    media_type: str
    filename: str


@dataclass(frozen=True)
class AttachmentRecord:
    """Persisted attachment metadata."""

    id: int
    case_id: UUID
    storage_key: str
    media_type: str
    filename: str
    created_at: datetime


@dataclass(frozen=True)
class CaseListFilter:
    """Filters for case listing; unset fields do not constrain the result."""

    status: CaseStatus | None = None
    issue_type: IssueType | None = None
    order_id: str | None = None
    supplier_id: str | None = None
    store_id: str | None = None
    search: str | None = None
    limit: int = 100
    offset: int = 0


@dataclass(frozen=True)
class CaseCountScope:
    """Restricts aggregate counts to one supplier and/or store."""

    supplier_id: str | None = None
    store_id: str | None = None


@dataclass(frozen=True)
class CaseStatusCounts:
    """Aggregate case counts for dashboards."""

    total: int
    by_status: dict[CaseStatus, int] = field(default_factory=dict)
    overdue: int = 0


class CaseRepositoryPort(Protocol):
    """Async case repository contract.

    Every `*_if_*` method is a compare-and-set: the row is only changed when
    the stated preconditions still hold, and the log entry is written in the
    same transaction. `None` means the preconditions no longer held.
    """

    async def create_case(
        self,
        payload: CaseCreateInput,
        *,
        logs: list[CaseLogCreateInput],
    ) -> CaseRecord:
        """Insert case and its initial log entries or raise DuplicateCaseNumberError."""

    async def get_case(self, *, case_id: UUID) -> CaseRecord | None:
        """Return case by id when present."""

    async def assign_supplier_if_opened(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Set owning supplier and move OPENED -> EXECUTING."""

    async def update_resolution_if_executing(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        resolution: str | None,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Replace the resolution draft while the owner's case is EXECUTING."""

    async def submit_resolution_if_executing(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        resolution: str,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Freeze resolution text and move EXECUTING -> INSPECTING."""

    async def review_resolution_if_inspecting(
        self,
        *,
        case_id: UUID,
        confirmed: bool,
        resolved_at: datetime,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Move INSPECTING -> RESOLVED (setting resolved_at) or back to EXECUTING."""

    async def attach_replacement_shipment_if_executing(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        shipment: ReplacementShipmentInput,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Insert replacement shipment and link it, or raise DuplicateShipmentNumberError."""

    async def override_status_if_current(
        self,
        *,
        case_id: UUID,
        expected_status: CaseStatus,
        target_status: CaseStatus,
        resolved_at: datetime,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Force a status change; resolved_at is only set when entering RESOLVED."""

    async def list_case_logs(self, *, case_id: UUID) -> list[CaseLogRecord]:
        """Return case log entries in creation order."""

    async def list_cases(self, *, filters: CaseListFilter) -> list[CaseRecord]:
        """Return filtered cases, newest first."""

    async def count_cases_by_status(
        self,
        *,
        scope: CaseCountScope,
        now: datetime,
    ) -> CaseStatusCounts:
        """Return total, per-status and overdue case counts."""

    async def list_overdue_cases(self, *, now: datetime, limit: int = 500) -> list[CaseRecord]:
        """Return unsettled cases past their SLA deadline, most overdue first."""

    async def record_sla_reminder(
        self,
        *,
        case_id: UUID,
        batch_date: date,
        recipient_id: str,
    ) -> bool:
        """Claim the reminder slot for one case and day; False when already claimed."""

    async def add_attachments(
        self,
        *,
        case_id: UUID,
        attachments: list[AttachmentCreateInput],
        log: CaseLogCreateInput,
    ) -> list[AttachmentRecord]:
        """Persist attachment rows and one upload log entry."""

    async def list_attachments(self, *, case_id: UUID) -> list[AttachmentRecord]:
        """Return case attachments in upload order."""
