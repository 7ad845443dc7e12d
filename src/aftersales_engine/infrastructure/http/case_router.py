"""FastAPI router exposing after-sales case operations."""

from __future__ import annotations

import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile

from aftersales_engine.application.dto.case_models import (
    AssignSupplierRequest,
    AttachmentResponse,
    AttachmentUploadResponse,
    CaseDetailResponse,
    CaseListResponse,
    CaseLogResponse,
    CaseResponse,
    CaseStatsResponse,
    OpenCaseRequest,
    OpenCaseResponse,
    ProvenanceResponse,
    ReplacementTrackingRequest,
    ReviewResolutionRequest,
    StatusOverrideRequest,
    SubmitResolutionRequest,
    TrackingLookupResponse,
    UpdateResolutionRequest,
)
from aftersales_engine.application.ports.case_repository_port import (
    CaseListFilter,
    CaseRecord,
)
from aftersales_engine.application.services.case_attachment_service import (
    AttachmentUpload,
    CaseAttachmentService,
)
from aftersales_engine.application.services.case_lifecycle_service import (
    CaseLifecycleService,
    OpenCaseCommand,
)
from aftersales_engine.application.services.case_query_service import CaseQueryService
from aftersales_engine.domain.actor import CaseActor
from aftersales_engine.domain.case_status import CaseStatus
from aftersales_engine.domain.case_types import IssueType
from aftersales_engine.domain.errors import (
    CaseGuardViolationError,
    CaseNotFoundError,
    CaseReferenceNotFoundError,
    CaseRoleViolationError,
    CaseTransitionConflictError,
    CaseValidationError,
    DuplicateCaseNumberError,
    DuplicateShipmentNumberError,
)
from aftersales_engine.domain.provenance import ProvenanceResult
from aftersales_engine.infrastructure.http.actor_context import (
    InvalidActorError,
    MissingActorError,
    resolve_actor,
)

logger = logging.getLogger(__name__)

CASE_ERRORS = (
    CaseValidationError,
    CaseNotFoundError,
    CaseReferenceNotFoundError,
    CaseGuardViolationError,
    CaseTransitionConflictError,
    DuplicateCaseNumberError,
    DuplicateShipmentNumberError,
)


async def current_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
    x_actor_store_id: Annotated[str | None, Header()] = None,
) -> CaseActor:
    """Resolve the acting user forwarded by the gateway."""

    try:
        return resolve_actor(
            actor_id_header=x_actor_id,
            actor_role_header=x_actor_role,
            actor_store_header=x_actor_store_id,
        )
    except (MissingActorError, InvalidActorError) as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


ActorDep = Annotated[CaseActor, Depends(current_actor)]


def build_case_router(
    *,
    lifecycle_service: CaseLifecycleService,
    query_service: CaseQueryService,
    attachment_service: CaseAttachmentService,
) -> APIRouter:
    """Build router exposing the after-sales case surface."""

    router = APIRouter(prefix="/after-sales", tags=["after-sales"])

    @router.post("", response_model=OpenCaseResponse, status_code=201)
    async def open_case(payload: OpenCaseRequest, actor: ActorDep) -> OpenCaseResponse:
        command = OpenCaseCommand(**payload.model_dump())
        try:
            result = await lifecycle_service.open_case(command, actor=actor)
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return OpenCaseResponse(
            case=_case_response(result.case),
            provenance=_provenance_response(result.provenance),
            route=result.assignment.route,
            assignment_warning=result.assignment.warning,
        )

    @router.get("", response_model=CaseListResponse)
    async def list_cases(
        actor: ActorDep,
        status: CaseStatus | None = None,
        issue_type: IssueType | None = None,
        order_id: str | None = None,
        supplier_id: str | None = None,
        store_id: str | None = None,
        search: str | None = None,
        limit: Annotated[int, Query(ge=1, le=500)] = 100,
        offset: Annotated[int, Query(ge=0)] = 0,
    ) -> CaseListResponse:
        filters = CaseListFilter(
            status=status,
            issue_type=issue_type,
            order_id=order_id,
            supplier_id=supplier_id,
            store_id=store_id,
            search=search.strip() if search and search.strip() else None,
            limit=limit,
            offset=offset,
        )
        try:
            records = await query_service.list_cases(filters=filters, actor=actor)
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return CaseListResponse(
            items=[_case_response(record) for record in records],
            limit=limit,
            offset=offset,
        )

    @router.get("/stats", response_model=CaseStatsResponse)
    async def case_stats(actor: ActorDep) -> CaseStatsResponse:
        try:
            counts = await query_service.count_cases_by_status(actor=actor)
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return CaseStatsResponse(
            total=counts.total,
            by_status={status: counts.by_status.get(status, 0) for status in CaseStatus},
            overdue=counts.overdue,
        )

    @router.get("/tracking/{tracking_no}", response_model=TrackingLookupResponse)
    async def lookup_tracking(tracking_no: str, actor: ActorDep) -> TrackingLookupResponse:
        lookup = await query_service.lookup_tracking(tracking_no)
        logger.info(
            "tracking_lookup tracking_no=%s channel=%s actor_id=%s",
            lookup.tracking_no,
            lookup.provenance.channel.value,
            actor.user_id,
        )
        return TrackingLookupResponse(
            tracking_no=lookup.tracking_no,
            carrier=lookup.carrier,
            provenance=_provenance_response(lookup.provenance),
        )

    @router.get("/{case_id}", response_model=CaseDetailResponse)
    async def get_case(case_id: UUID, actor: ActorDep) -> CaseDetailResponse:
        try:
            detail = await query_service.get_case_detail(case_id, actor=actor)
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return CaseDetailResponse(
            case=_case_response(detail.case),
            logs=[
                CaseLogResponse(
                    id=log.id,
                    action=log.action,
                    actor_id=log.actor_id,
                    description=log.description,
                    created_at=log.created_at,
                )
                for log in detail.logs
            ],
            attachments=[
                AttachmentResponse(
                    id=view.id,
                    filename=view.filename,
                    media_type=view.media_type,
                    url=view.url,
                    created_at=view.created_at,
                )
                for view in detail.attachments
            ],
        )

    @router.patch("/{case_id}/assign", response_model=CaseResponse)
    async def assign_to_supplier(
        case_id: UUID,
        payload: AssignSupplierRequest,
        actor: ActorDep,
    ) -> CaseResponse:
        try:
            record = await lifecycle_service.assign_to_supplier(
                case_id,
                supplier_id=payload.supplier_id,
                actor=actor,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return _case_response(record)

    @router.patch("/{case_id}/resolution", response_model=CaseResponse)
    async def update_resolution(
        case_id: UUID,
        payload: UpdateResolutionRequest,
        actor: ActorDep,
    ) -> CaseResponse:
        try:
            record = await lifecycle_service.update_resolution_draft(
                case_id,
                actor=actor,
                resolution=payload.resolution,
                progress_description=payload.progress_description,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return _case_response(record)

    @router.post("/{case_id}/submit-resolution", response_model=CaseResponse)
    async def submit_resolution(
        case_id: UUID,
        payload: SubmitResolutionRequest,
        actor: ActorDep,
    ) -> CaseResponse:
        try:
            record = await lifecycle_service.submit_resolution(
                case_id,
                resolution=payload.resolution,
                actor=actor,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return _case_response(record)

    @router.patch("/{case_id}/confirm", response_model=CaseResponse)
    async def review_resolution(
        case_id: UUID,
        payload: ReviewResolutionRequest,
        actor: ActorDep,
    ) -> CaseResponse:
        try:
            record = await lifecycle_service.review_resolution(
                case_id,
                confirmed=payload.confirmed,
                actor=actor,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return _case_response(record)

    @router.post("/{case_id}/replacement-tracking", response_model=CaseResponse)
    async def upload_replacement_tracking(
        case_id: UUID,
        payload: ReplacementTrackingRequest,
        actor: ActorDep,
    ) -> CaseResponse:
        try:
            record = await lifecycle_service.upload_replacement_tracking(
                case_id,
                tracking_no=payload.tracking_no,
                carrier=payload.carrier,
                actor=actor,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return _case_response(record)

    @router.patch("/{case_id}/status", response_model=CaseResponse)
    async def override_status(
        case_id: UUID,
        payload: StatusOverrideRequest,
        actor: ActorDep,
    ) -> CaseResponse:
        try:
            record = await lifecycle_service.override_status(
                case_id,
                target_status=payload.status,
                actor=actor,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return _case_response(record)

    @router.post(
        "/{case_id}/attachments",
        response_model=AttachmentUploadResponse,
        status_code=201,
    )
    async def upload_attachments(
        case_id: UUID,
        files: Annotated[list[UploadFile], File()],
        actor: ActorDep,
    ) -> AttachmentUploadResponse:
        uploads = [
            AttachmentUpload(
                filename=upload.filename or "upload",
                media_type=upload.content_type or "application/octet-stream",
                data=await upload.read(),
            )
            for upload in files
        ]
        try:
            records = await attachment_service.upload_attachments(
                case_id,
                files=uploads,
                actor=actor,
            )
        except CASE_ERRORS as exc:
            raise _http_error(exc) from exc
        return AttachmentUploadResponse(
            items=[
                AttachmentResponse(
                    id=record.id,
                    filename=record.filename,
                    media_type=record.media_type,
                    created_at=record.created_at,
                )
                for record in records
            ]
        )

    return router


def _http_error(exc: Exception) -> HTTPException:
    """Map engine errors into HTTP status codes and structured bodies."""

    if isinstance(exc, CaseValidationError):
        return HTTPException(
            status_code=422,
            detail={"code": "validation_error", "field": exc.field, "reason": exc.message},
        )
    if isinstance(exc, (CaseNotFoundError, CaseReferenceNotFoundError)):
        return HTTPException(status_code=404, detail={"code": "not_found", "reason": str(exc)})
    if isinstance(exc, CaseRoleViolationError):
        return HTTPException(status_code=403, detail=_guard_detail("role_violation", exc))
    if isinstance(exc, CaseGuardViolationError):
        return HTTPException(status_code=409, detail=_guard_detail("guard_violation", exc))
    if isinstance(exc, CaseTransitionConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "code": "transition_conflict",
                "reason": str(exc),
                "current_status": exc.current_status.value,
                "retryable": True,
            },
        )
    code = "duplicate_shipment_number"
    if isinstance(exc, DuplicateCaseNumberError):
        code = "duplicate_case_number"
    return HTTPException(
        status_code=409,
        detail={"code": code, "reason": str(exc), "retryable": True},
    )


def _guard_detail(code: str, exc: CaseGuardViolationError) -> dict[str, Any]:
    return {
        "code": code,
        "reason": exc.reason,
        "current_status": exc.current_status.value if exc.current_status else None,
        "required_statuses": [status.value for status in exc.required_statuses],
        "required_roles": [role.value for role in exc.required_roles],
    }


def _case_response(record: CaseRecord) -> CaseResponse:
    return CaseResponse(
        id=record.case_id,
        case_number=record.case_number,
        status=record.status,
        issue_type=record.issue_type,
        priority=record.priority,
        description=record.description,
        channel=record.channel,
        sla_deadline=record.sla_deadline,
        created_at=record.created_at,
        updated_at=record.updated_at,
        order_id=record.order_id,
        shipment_id=record.shipment_id,
        replacement_shipment_id=record.replacement_shipment_id,
        store_id=record.store_id,
        supplier_id=record.supplier_id,
        customer_id=record.customer_id,
        handler_id=record.handler_id,
        claim_amount=record.claim_amount,
        inventory_disposition=record.inventory_disposition,
        resolution=record.resolution,
        resolved_at=record.resolved_at,
    )


def _provenance_response(provenance: ProvenanceResult) -> ProvenanceResponse:
    return ProvenanceResponse(
        channel=provenance.channel,
        supplier_id=provenance.supplier_id,
        order_id=provenance.order_id,
        store_id=provenance.store_id,
        shipment_id=provenance.shipment_id,
    )
