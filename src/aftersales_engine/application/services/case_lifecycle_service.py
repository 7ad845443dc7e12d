"""Case lifecycle engine: open, route and drive after-sales cases through review."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from aftersales_engine.application.ports.audit_logger_port import (
    AuditLoggerPort,
    AuditRecordInput,
)
from aftersales_engine.application.ports.case_repository_port import (
    CaseCreateInput,
    CaseLogCreateInput,
    CaseRecord,
    CaseRepositoryPort,
    ReplacementShipmentInput,
)
from aftersales_engine.application.ports.notifier_port import NotificationMessage, NotifierPort
from aftersales_engine.application.ports.provenance_lookup_port import (
    OrderRecord,
    ProvenanceLookupPort,
)
from aftersales_engine.application.ports.user_directory_port import UserDirectoryPort
from aftersales_engine.application.services.actor_assignment_service import (
    ActorAssignmentResolver,
)
from aftersales_engine.application.services.best_effort_dispatcher import BestEffortDispatcher
from aftersales_engine.application.services.provenance_resolver import ProvenanceResolver
from aftersales_engine.domain.actor import SYSTEM_ACTOR_ID, CaseActor
from aftersales_engine.domain.auth.roles import CASE_MANAGER_ROLES, Role
from aftersales_engine.domain.carriers import detect_carrier
from aftersales_engine.domain.case_number import (
    generate_case_number,
    generate_replacement_shipment_number,
)
from aftersales_engine.domain.case_status import CaseStatus
from aftersales_engine.domain.case_types import (
    ISSUE_TYPE_LABELS,
    PRIORITY_LABELS,
    AssignmentRoute,
    CaseLogAction,
    CasePriority,
    FulfillmentChannel,
    IssueType,
    is_exchange_case,
)
from aftersales_engine.domain.errors import (
    CaseGuardViolationError,
    CaseNotFoundError,
    CaseReferenceNotFoundError,
    CaseRoleViolationError,
    CaseStateViolationError,
    CaseTransitionConflictError,
    CaseValidationError,
    DuplicateCaseNumberError,
    DuplicateShipmentNumberError,
)
from aftersales_engine.domain.provenance import AssignmentDecision, ProvenanceResult
from aftersales_engine.domain.sla import SlaPolicy
from aftersales_engine.domain.transitions import (
    assert_transition,
    require_not_terminal,
    require_status,
)

logger = logging.getLogger(__name__)

CASE_RESOURCE_TYPE = "after_sales_case"
_CASE_NUMBER_ATTEMPTS = 3
_SHIPMENT_NUMBER_ATTEMPTS = 3


@dataclass(frozen=True)
class OpenCaseCommand:
    """Operator input for opening a case; enums arrive already parsed."""

    issue_type: IssueType | None
    priority: CasePriority | None
    description: str | None
    tracking_no: str | None = None
    order_id: str | None = None
    shipment_id: str | None = None
    store_id: str | None = None
    supplier_id: str | None = None
    customer_id: str | None = None
    claim_amount: Decimal | None = None
    inventory_disposition: str | None = None


@dataclass(frozen=True)
class OpenCaseResult:
    """Persisted case plus the provenance and routing used to create it."""

    case: CaseRecord
    provenance: ProvenanceResult
    assignment: AssignmentDecision


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class CaseLifecycleService:
    """Validate and apply case transitions against the repository.

    Every mutation goes through one compare-and-set repository call; when
    that call reports the precondition no longer holds the caller receives
    CaseTransitionConflictError. Notifications and audit records are handed
    to the BestEffortDispatcher and never awaited here.
    """

    def __init__(
        self,
        *,
        cases: CaseRepositoryPort,
        lookups: ProvenanceLookupPort,
        directory: UserDirectoryPort,
        provenance_resolver: ProvenanceResolver,
        assignment_resolver: ActorAssignmentResolver,
        dispatcher: BestEffortDispatcher,
        notifier: NotifierPort,
        audit_logger: AuditLoggerPort,
        sla_policy: SlaPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
        case_number_factory: Callable[..., str] = generate_case_number,
        shipment_number_factory: Callable[..., str] = generate_replacement_shipment_number,
    ) -> None:
        self._cases = cases
        self._lookups = lookups
        self._directory = directory
        self._provenance_resolver = provenance_resolver
        self._assignment_resolver = assignment_resolver
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._sla_policy = sla_policy or SlaPolicy()
        self._clock = clock
        self._case_number_factory = case_number_factory
        self._shipment_number_factory = shipment_number_factory

    async def open_case(self, command: OpenCaseCommand, *, actor: CaseActor) -> OpenCaseResult:
        """Resolve provenance, decide routing once, then persist case and logs atomically."""

        issue_type, priority, description = _validate_open_command(command)

        explicit_order = await self._validate_references(command)

        provenance = await self._provenance_resolver.resolve(
            tracking_no=command.tracking_no,
            shipment_id=command.shipment_id,
            order_id=command.order_id,
        )
        decision = await self._assignment_resolver.resolve_assignment(provenance)

        if decision.route is AssignmentRoute.AUTO_SUPPLIER:
            supplier_id = decision.actor_id
            status = CaseStatus.EXECUTING
        elif provenance.channel is FulfillmentChannel.ECOMMERCE:
            supplier_id = None
            status = CaseStatus.OPENED
        else:
            supplier_id = command.supplier_id
            status = CaseStatus.OPENED

        handler_id = actor.user_id
        if decision.route is AssignmentRoute.AUTO_BUYER:
            handler_id = decision.actor_id

        store_id = command.store_id or provenance.store_id
        if store_id is None and explicit_order is not None:
            store_id = explicit_order.store_id

        now = self._clock()
        logs = _initial_logs(actor=actor, decision=decision)
        case = await self._create_with_unique_number(
            now=now,
            logs=logs,
            build=lambda case_number: CaseCreateInput(
                case_id=uuid4(),
                case_number=case_number,
                status=status,
                issue_type=issue_type,
                priority=priority,
                description=description,
                channel=provenance.channel,
                sla_deadline=self._sla_policy.deadline_for(
                    priority=priority,
                    opened_at=now,
                ),
                opened_at=now,
                order_id=command.order_id or provenance.order_id,
                shipment_id=command.shipment_id or provenance.shipment_id,
                store_id=store_id,
                supplier_id=supplier_id,
                customer_id=command.customer_id,
                handler_id=handler_id,
                claim_amount=command.claim_amount,
                inventory_disposition=_clean_optional(command.inventory_disposition),
            ),
        )
        logger.info(
            "case_opened case_id=%s case_number=%s channel=%s route=%s status=%s",
            case.case_id,
            case.case_number,
            case.channel.value,
            decision.route.value,
            case.status.value,
        )

        if case.supplier_id is not None:
            self._notify(
                case=case,
                recipient_id=case.supplier_id,
                event_type="case_assigned",
                title=f"New after-sales case {case.case_number}",
                body=_case_summary(case),
            )
        self._audit(
            action="aftersales.create",
            case=case,
            actor_id=actor.user_id,
            details={
                "case_number": case.case_number,
                "channel": provenance.channel.value,
                "route": decision.route.value,
                "assignment_warning": decision.warning,
            },
        )
        return OpenCaseResult(case=case, provenance=provenance, assignment=decision)

    async def assign_to_supplier(
        self,
        case_id: UUID,
        *,
        supplier_id: str,
        actor: CaseActor,
    ) -> CaseRecord:
        """Dispatch an OPENED case to a supplier, moving it to EXECUTING."""

        supplier_id = _require_text(supplier_id, field="supplier_id")
        case = await self._require_case(case_id)
        _require_case_manager(actor, case=case, action="assign a supplier")
        require_status(
            case.status,
            allowed=frozenset({CaseStatus.OPENED}),
            action="assign a supplier",
        )
        assert_transition(case.status, CaseStatus.EXECUTING)
        await self._require_supplier(supplier_id)

        updated = await self._cases.assign_supplier_if_opened(
            case_id=case_id,
            supplier_id=supplier_id,
            log=CaseLogCreateInput(
                action=CaseLogAction.EXECUTING,
                actor_id=actor.user_id,
                description=f"Assigned to supplier {supplier_id}",
            ),
        )
        if updated is None:
            raise await self._conflict(case_id)

        logger.info("case_assigned case_id=%s supplier_id=%s", case_id, supplier_id)
        self._notify(
            case=updated,
            recipient_id=supplier_id,
            event_type="case_assigned",
            title=f"After-sales case {updated.case_number} assigned to you",
            body=_case_summary(updated),
        )
        self._audit(
            action="aftersales.assign",
            case=updated,
            actor_id=actor.user_id,
            details={"supplier_id": supplier_id},
        )
        return updated

    async def update_resolution_draft(
        self,
        case_id: UUID,
        *,
        actor: CaseActor,
        resolution: str | None = None,
        progress_description: str | None = None,
    ) -> CaseRecord:
        """Let the owning supplier edit the resolution draft while EXECUTING."""

        resolution = _clean_optional(resolution)
        progress_description = _clean_optional(progress_description)
        if resolution is None and progress_description is None:
            raise CaseValidationError(
                field="resolution",
                message="resolution or progress description is required",
            )
        case = await self._require_case(case_id)
        _require_owning_supplier(actor, case=case, action="update the resolution")
        require_status(
            case.status,
            allowed=frozenset({CaseStatus.EXECUTING}),
            action="update the resolution",
        )

        updated = await self._cases.update_resolution_if_executing(
            case_id=case_id,
            supplier_id=actor.user_id,
            resolution=resolution,
            log=CaseLogCreateInput(
                action=CaseLogAction.UPDATED,
                actor_id=actor.user_id,
                description=progress_description or "Resolution draft updated",
            ),
        )
        if updated is None:
            raise await self._conflict(case_id)

        logger.info("case_resolution_updated case_id=%s", case_id)
        self._audit(
            action="aftersales.update_resolution",
            case=updated,
            actor_id=actor.user_id,
            details={"progress_description": progress_description},
        )
        return updated

    async def submit_resolution(
        self,
        case_id: UUID,
        *,
        resolution: str,
        actor: CaseActor,
    ) -> CaseRecord:
        """Freeze the resolution text and move the case to INSPECTING."""

        resolution = _require_text(resolution, field="resolution")
        case = await self._require_case(case_id)
        _require_owning_supplier(actor, case=case, action="submit a resolution")
        require_status(
            case.status,
            allowed=frozenset({CaseStatus.EXECUTING}),
            action="submit a resolution",
        )
        assert_transition(case.status, CaseStatus.INSPECTING)

        updated = await self._cases.submit_resolution_if_executing(
            case_id=case_id,
            supplier_id=actor.user_id,
            resolution=resolution,
            log=CaseLogCreateInput(
                action=CaseLogAction.INSPECTING,
                actor_id=actor.user_id,
                description="Resolution submitted for review",
            ),
        )
        if updated is None:
            raise await self._conflict(case_id)

        logger.info("case_resolution_submitted case_id=%s", case_id)
        if updated.handler_id is not None:
            self._notify(
                case=updated,
                recipient_id=updated.handler_id,
                event_type="resolution_submitted",
                title=f"Resolution submitted for {updated.case_number}",
                body=f"{_case_summary(updated)}\n\n{resolution}",
            )
        self._audit(
            action="aftersales.submit_resolution",
            case=updated,
            actor_id=actor.user_id,
            details={"resolution": resolution},
        )
        return updated

    async def review_resolution(
        self,
        case_id: UUID,
        *,
        confirmed: bool,
        actor: CaseActor,
    ) -> CaseRecord:
        """Confirm (RESOLVED) or send back (EXECUTING) a submitted resolution."""

        case = await self._require_case(case_id)
        _require_case_manager(actor, case=case, action="review a resolution")
        require_status(
            case.status,
            allowed=frozenset({CaseStatus.INSPECTING}),
            action="review a resolution",
        )
        target = CaseStatus.RESOLVED if confirmed else CaseStatus.EXECUTING
        assert_transition(case.status, target)

        updated = await self._cases.review_resolution_if_inspecting(
            case_id=case_id,
            confirmed=confirmed,
            resolved_at=self._clock(),
            log=CaseLogCreateInput(
                action=CaseLogAction.RESOLVED if confirmed else CaseLogAction.EXECUTING,
                actor_id=actor.user_id,
                description=(
                    "Resolution confirmed" if confirmed else "Resolution rejected; case reopened"
                ),
            ),
        )
        if updated is None:
            raise await self._conflict(case_id)

        logger.info("case_resolution_reviewed case_id=%s confirmed=%s", case_id, confirmed)
        if not confirmed and updated.supplier_id is not None:
            self._notify(
                case=updated,
                recipient_id=updated.supplier_id,
                event_type="resolution_rejected",
                title=f"Resolution for {updated.case_number} was sent back",
                body=_case_summary(updated),
            )
        self._audit(
            action="aftersales.confirm",
            case=updated,
            actor_id=actor.user_id,
            details={"confirmed": confirmed},
        )
        return updated

    async def confirm_resolution(self, case_id: UUID, *, actor: CaseActor) -> CaseRecord:
        return await self.review_resolution(case_id, confirmed=True, actor=actor)

    async def reject_resolution(self, case_id: UUID, *, actor: CaseActor) -> CaseRecord:
        return await self.review_resolution(case_id, confirmed=False, actor=actor)

    async def upload_replacement_tracking(
        self,
        case_id: UUID,
        *,
        tracking_no: str,
        actor: CaseActor,
        carrier: str | None = None,
    ) -> CaseRecord:
        """Record the single replacement shipment of an exchange case."""

        tracking_no = _require_text(tracking_no, field="tracking_no")
        case = await self._require_case(case_id)
        _require_owning_supplier(actor, case=case, action="upload replacement tracking")
        if not is_exchange_case(
            issue_type=case.issue_type,
            inventory_disposition=case.inventory_disposition,
        ):
            raise CaseGuardViolationError(
                "replacement tracking is only accepted for repair/exchange cases",
                current_status=case.status,
            )
        require_status(
            case.status,
            allowed=frozenset({CaseStatus.EXECUTING}),
            action="upload replacement tracking",
        )
        if case.replacement_shipment_id is not None:
            raise CaseStateViolationError(
                "a replacement shipment is already recorded for this case",
                current_status=case.status,
            )

        request_item_id = None
        if case.shipment_id is not None:
            original = await self._lookups.find_shipment_by_id(shipment_id=case.shipment_id)
            if original is not None:
                request_item_id = original.request_item_id

        resolved_carrier = _clean_optional(carrier) or detect_carrier(tracking_no)
        log = CaseLogCreateInput(
            action=CaseLogAction.REPLACEMENT_SHIPPED,
            actor_id=actor.user_id,
            description=f"Replacement shipped: {tracking_no} ({resolved_carrier})",
        )
        for attempt in range(1, _SHIPMENT_NUMBER_ATTEMPTS + 1):
            shipment = ReplacementShipmentInput(
                shipment_id=str(uuid4()),
                shipment_no=self._shipment_number_factory(now=self._clock()),
                tracking_no=tracking_no,
                carrier=resolved_carrier,
                order_id=case.order_id,
                supplier_id=case.supplier_id,
                request_item_id=request_item_id,
            )
            try:
                updated = await self._cases.attach_replacement_shipment_if_executing(
                    case_id=case_id,
                    supplier_id=actor.user_id,
                    shipment=shipment,
                    log=log,
                )
                break
            except DuplicateShipmentNumberError:
                logger.warning(
                    "shipment_number_collision shipment_no=%s attempt=%s",
                    shipment.shipment_no,
                    attempt,
                )
                if attempt == _SHIPMENT_NUMBER_ATTEMPTS:
                    raise
        if updated is None:
            raise await self._conflict(case_id)

        logger.info(
            "case_replacement_shipped case_id=%s shipment_no=%s carrier=%s",
            case_id,
            shipment.shipment_no,
            resolved_carrier,
        )
        self._audit(
            action="aftersales.upload_replacement_tracking",
            case=updated,
            actor_id=actor.user_id,
            details={
                "tracking_no": tracking_no,
                "carrier": resolved_carrier,
                "shipment_no": shipment.shipment_no,
            },
        )
        return updated

    async def override_status(
        self,
        case_id: UUID,
        *,
        target_status: CaseStatus,
        actor: CaseActor,
    ) -> CaseRecord:
        """Force any non-terminal case into the target status."""

        case = await self._require_case(case_id)
        _require_case_manager(actor, case=case, action="override the status")
        require_not_terminal(case.status, action="override the status")

        updated = await self._cases.override_status_if_current(
            case_id=case_id,
            expected_status=case.status,
            target_status=target_status,
            resolved_at=self._clock(),
            log=CaseLogCreateInput(
                action=target_status.value,
                actor_id=actor.user_id,
                description=f"Status changed from {case.status.value} to {target_status.value}",
            ),
        )
        if updated is None:
            raise await self._conflict(case_id)

        logger.info(
            "case_status_overridden case_id=%s from_status=%s to_status=%s",
            case_id,
            case.status.value,
            target_status.value,
        )
        self._audit(
            action="aftersales.status_override",
            case=updated,
            actor_id=actor.user_id,
            details={"from_status": case.status.value, "to_status": target_status.value},
        )
        return updated

    async def _validate_references(self, command: OpenCaseCommand) -> OrderRecord | None:
        order = None
        if command.order_id is not None:
            order = await self._lookups.get_order(order_id=command.order_id)
            if order is None:
                raise CaseReferenceNotFoundError(
                    resource_type="order",
                    resource_id=command.order_id,
                )
        if command.shipment_id is not None:
            shipment = await self._lookups.find_shipment_by_id(shipment_id=command.shipment_id)
            if shipment is None:
                raise CaseReferenceNotFoundError(
                    resource_type="shipment",
                    resource_id=command.shipment_id,
                )
        if command.store_id is not None:
            if not await self._lookups.store_exists(store_id=command.store_id):
                raise CaseReferenceNotFoundError(
                    resource_type="store",
                    resource_id=command.store_id,
                )
        if command.supplier_id is not None:
            await self._require_supplier(command.supplier_id)
        return order

    async def _require_supplier(self, supplier_id: str) -> None:
        supplier = await self._directory.find_by_id(user_id=supplier_id)
        if supplier is None or supplier.role is not Role.SUPPLIER:
            raise CaseReferenceNotFoundError(resource_type="supplier", resource_id=supplier_id)

    async def _create_with_unique_number(
        self,
        *,
        now: datetime,
        logs: list[CaseLogCreateInput],
        build: Callable[[str], CaseCreateInput],
    ) -> CaseRecord:
        for attempt in range(1, _CASE_NUMBER_ATTEMPTS + 1):
            case_number = self._case_number_factory(now=now)
            try:
                return await self._cases.create_case(build(case_number), logs=logs)
            except DuplicateCaseNumberError:
                logger.warning(
                    "case_number_collision case_number=%s attempt=%s",
                    case_number,
                    attempt,
                )
                if attempt == _CASE_NUMBER_ATTEMPTS:
                    raise
        raise AssertionError("unreachable")  # pragma: no cover

    async def _require_case(self, case_id: UUID) -> CaseRecord:
        case = await self._cases.get_case(case_id=case_id)
        if case is None:
            raise CaseNotFoundError(case_id=case_id)
        return case

    async def _conflict(self, case_id: UUID) -> Exception:
        """Build the error for a lost compare-and-set from the case's current state."""

        current = await self._cases.get_case(case_id=case_id)
        if current is None:
            return CaseNotFoundError(case_id=case_id)
        logger.info(
            "case_transition_conflict case_id=%s current_status=%s",
            case_id,
            current.status.value,
        )
        return CaseTransitionConflictError(case_id=case_id, current_status=current.status)

    def _notify(
        self,
        *,
        case: CaseRecord,
        recipient_id: str,
        event_type: str,
        title: str,
        body: str,
    ) -> None:
        async def send() -> None:
            recipient = await self._directory.find_by_id(user_id=recipient_id)
            if recipient is None or not recipient.is_active:
                logger.warning(
                    "case_notification_skipped case_id=%s recipient_id=%s reason=unavailable",
                    case.case_id,
                    recipient_id,
                )
                return
            result = await self._notifier.notify(
                NotificationMessage(
                    recipient_id=recipient_id,
                    recipient_name=recipient.username,
                    event_type=event_type,
                    title=title,
                    body=body,
                    link_path=f"/after-sales/{case.case_id}",
                )
            )
            if not result.delivered:
                logger.warning(
                    "case_notification_not_delivered case_id=%s recipient_id=%s error=%s",
                    case.case_id,
                    recipient_id,
                    result.error,
                )

        self._dispatcher.dispatch(
            "notify",
            send,
            context={
                "case_id": case.case_id,
                "event_type": event_type,
                "recipient_id": recipient_id,
            },
        )

    def _audit(
        self,
        *,
        action: str,
        case: CaseRecord,
        actor_id: str,
        details: dict[str, Any],
    ) -> None:
        payload = AuditRecordInput(
            action=action,
            resource_type=CASE_RESOURCE_TYPE,
            resource_id=str(case.case_id),
            actor_id=actor_id,
            details=details,
        )
        self._dispatcher.dispatch(
            "audit",
            lambda: self._audit_logger.record(payload),
            context={"case_id": case.case_id, "action": action},
        )


def _validate_open_command(
    command: OpenCaseCommand,
) -> tuple[IssueType, CasePriority, str]:
    if command.issue_type is None:
        raise CaseValidationError(field="issue_type", message="issue type is required")
    if command.priority is None:
        raise CaseValidationError(field="priority", message="priority is required")
    description = _require_text(command.description, field="description")
    if command.claim_amount is not None:
        if not command.claim_amount.is_finite() or command.claim_amount < 0:
            raise CaseValidationError(
                field="claim_amount",
                message="claim amount must be a non-negative finite number",
            )
    return command.issue_type, command.priority, description


def _initial_logs(*, actor: CaseActor, decision: AssignmentDecision) -> list[CaseLogCreateInput]:
    opened_description = "Case opened"
    if decision.route is AssignmentRoute.AUTO_BUYER:
        opened_description = f"Case opened; handler {decision.actor_id} assigned automatically"
    elif decision.warning is not None:
        opened_description = f"Case opened; manual triage required ({decision.warning})"

    logs = [
        CaseLogCreateInput(
            action=CaseLogAction.OPENED,
            actor_id=actor.user_id,
            description=opened_description,
        )
    ]
    if decision.route is AssignmentRoute.AUTO_SUPPLIER:
        logs.append(
            CaseLogCreateInput(
                action=CaseLogAction.EXECUTING,
                actor_id=SYSTEM_ACTOR_ID,
                description=f"Dispatched to supplier {decision.actor_id} automatically",
            )
        )
    return logs


def _require_case_manager(actor: CaseActor, *, case: CaseRecord, action: str) -> None:
    if actor.is_case_manager:
        return
    raise CaseRoleViolationError(
        f"role {actor.role.value} cannot {action}",
        current_status=case.status,
        required_roles=CASE_MANAGER_ROLES,
    )


def _require_owning_supplier(actor: CaseActor, *, case: CaseRecord, action: str) -> None:
    if actor.role is not Role.SUPPLIER:
        raise CaseRoleViolationError(
            f"role {actor.role.value} cannot {action}",
            current_status=case.status,
            required_roles=(Role.SUPPLIER,),
        )
    if case.supplier_id != actor.user_id:
        raise CaseRoleViolationError(
            f"only the owning supplier can {action}",
            current_status=case.status,
            required_roles=(Role.SUPPLIER,),
        )


def _require_text(value: str | None, *, field: str) -> str:
    cleaned = _clean_optional(value)
    if cleaned is None:
        raise CaseValidationError(field=field, message=f"{field} must not be empty")
    return cleaned


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _case_summary(case: CaseRecord) -> str:
    return (
        f"Case: {case.case_number}\n"
        f"Issue: {ISSUE_TYPE_LABELS[case.issue_type]}\n"
        f"Priority: {PRIORITY_LABELS[case.priority]}\n"
        f"Description: {case.description}"
    )
