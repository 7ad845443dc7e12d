"""Pydantic models for the after-sales HTTP contracts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from aftersales_engine.domain.case_status import CaseStatus
from aftersales_engine.domain.case_types import (
    AssignmentRoute,
    CasePriority,
    FulfillmentChannel,
    IssueType,
)


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class OpenCaseRequest(StrictModel):
    """HTTP request model for opening a case."""

    issue_type: IssueType
    priority: CasePriority
    description: str = Field(min_length=1)
    tracking_no: str | None = None
    order_id: str | None = None
    shipment_id: str | None = None
    store_id: str | None = None
    supplier_id: str | None = None
    customer_id: str | None = None
    claim_amount: Decimal | None = Field(default=None, ge=0, allow_inf_nan=False)
    inventory_disposition: str | None = None


class AssignSupplierRequest(StrictModel):
    supplier_id: str = Field(min_length=1)


class UpdateResolutionRequest(StrictModel):
    resolution: str | None = None
    progress_description: str | None = None


class SubmitResolutionRequest(StrictModel):
    resolution: str = Field(min_length=1)


class ReviewResolutionRequest(StrictModel):
    confirmed: bool


class ReplacementTrackingRequest(StrictModel):
    tracking_no: str = Field(min_length=1)
    carrier: str | None = None


class StatusOverrideRequest(StrictModel):
    status: CaseStatus


class ProvenanceResponse(StrictModel):
    channel: FulfillmentChannel
    supplier_id: str | None = None
    order_id: str | None = None
    store_id: str | None = None
    shipment_id: str | None = None


class CaseResponse(StrictModel):
    """Case representation returned by every case endpoint."""

    id: UUID
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


class OpenCaseResponse(StrictModel):
    case: CaseResponse
    provenance: ProvenanceResponse
    route: AssignmentRoute
    assignment_warning: str | None = None


class CaseListResponse(StrictModel):
    items: list[CaseResponse]
    limit: int
    offset: int


class CaseLogResponse(StrictModel):
    id: int
    action: str
    actor_id: str
    description: str | None = None
    created_at: datetime


class AttachmentResponse(StrictModel):
    id: int
    filename: str
    media_type: str
    url: str | None = None
    created_at: datetime


class CaseDetailResponse(StrictModel):
    case: CaseResponse
    logs: list[CaseLogResponse]
    attachments: list[AttachmentResponse]


class CaseStatsResponse(StrictModel):
    total: int
    by_status: dict[CaseStatus, int]
    overdue: int


class TrackingLookupResponse(StrictModel):
    tracking_no: str
    carrier: str
    provenance: ProvenanceResponse


class AttachmentUploadResponse(StrictModel):
    items: list[AttachmentResponse]
