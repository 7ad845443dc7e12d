"""SQLAlchemy adapter for after-sales case repository operations."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any, cast
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aftersales_engine.application.ports.case_repository_port import (
    AttachmentCreateInput,
    AttachmentRecord,
    CaseCountScope,
    CaseCreateInput,
    CaseListFilter,
    CaseLogCreateInput,
    CaseLogRecord,
    CaseRecord,
    CaseRepositoryPort,
    CaseStatusCounts,
    ReplacementShipmentInput,
)
from aftersales_engine.domain.case_status import SLA_SETTLED_STATUSES, CaseStatus
from aftersales_engine.domain.case_types import CasePriority, FulfillmentChannel, IssueType
from aftersales_engine.domain.errors import (
    DuplicateCaseNumberError,
    DuplicateShipmentNumberError,
)
from aftersales_engine.infrastructure.db.metadata import (
    after_sales_attachments,
    after_sales_cases,
    after_sales_logs,
    after_sales_sla_reminders,
    orders,
    shipments,
)


def _is_duplicate_case_number_error(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "case_number" in message


def _is_duplicate_shipment_number_error(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "shipment_no" in message


def _is_duplicate_reminder_error(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return (
        "after_sales_sla_reminders.case_id, after_sales_sla_reminders.batch_date" in message
        or "uq_after_sales_sla_reminders_case_batch_date" in message
    )


def _to_case_record(row: RowMapping) -> CaseRecord:
    claim_amount = row["claim_amount"]
    return CaseRecord(
        case_id=cast("Any", row["case_id"]),
        case_number=cast(str, row["case_number"]),
        status=CaseStatus(cast(str, row["status"])),
        issue_type=IssueType(cast(str, row["issue_type"])),
        priority=CasePriority(cast(str, row["priority"])),
        description=cast(str, row["description"]),
        channel=FulfillmentChannel(cast(str, row["channel"])),
        sla_deadline=cast(datetime, row["sla_deadline"]),
        created_at=cast(datetime, row["created_at"]),
        updated_at=cast(datetime, row["updated_at"]),
        order_id=cast(str | None, row["order_id"]),
        shipment_id=cast(str | None, row["shipment_id"]),
        replacement_shipment_id=cast(str | None, row["replacement_shipment_id"]),
        store_id=cast(str | None, row["store_id"]),
        supplier_id=cast(str | None, row["supplier_id"]),
        customer_id=cast(str | None, row["customer_id"]),
        handler_id=cast(str | None, row["handler_id"]),
        claim_amount=Decimal(claim_amount) if claim_amount is not None else None,
        inventory_disposition=cast(str | None, row["inventory_disposition"]),
        resolution=cast(str | None, row["resolution"]),
        resolved_at=cast(datetime | None, row["resolved_at"]),
    )


def _to_log_record(row: RowMapping) -> CaseLogRecord:
    return CaseLogRecord(
        id=int(row["id"]),
        case_id=cast("Any", row["case_id"]),
        action=cast(str, row["action"]),
        actor_id=cast(str, row["actor_id"]),
        description=cast(str | None, row["description"]),
        created_at=cast(datetime, row["created_at"]),
    )


def _to_attachment_record(row: RowMapping) -> AttachmentRecord:
    return AttachmentRecord(
        id=int(row["id"]),
        case_id=cast("Any", row["case_id"]),
        storage_key=cast(str, row["storage_key"]),
        media_type=cast(str, row["media_type"]),
        filename=cast(str, row["filename"]),
        created_at=cast(datetime, row["created_at"]),
    )


def _log_insert(case_id: UUID, log: CaseLogCreateInput) -> sa.Insert:
    return sa.insert(after_sales_logs).values(
        case_id=case_id,
        action=str(log.action),
        actor_id=log.actor_id,
        description=log.description,
    )


class SqlAlchemyCaseRepository(CaseRepositoryPort):
    """Case repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_case(
        self,
        payload: CaseCreateInput,
        *,
        logs: list[CaseLogCreateInput],
    ) -> CaseRecord:
        """Insert a case row and its initial log entries in one transaction."""

        statement = sa.insert(after_sales_cases).values(
            case_id=payload.case_id,
            case_number=payload.case_number,
            status=payload.status.value,
            issue_type=payload.issue_type.value,
            priority=payload.priority.value,
            description=payload.description,
            channel=payload.channel.value,
            sla_deadline=payload.sla_deadline,
            order_id=payload.order_id,
            shipment_id=payload.shipment_id,
            store_id=payload.store_id,
            supplier_id=payload.supplier_id,
            customer_id=payload.customer_id,
            handler_id=payload.handler_id,
            claim_amount=payload.claim_amount,
            inventory_disposition=payload.inventory_disposition,
            created_at=payload.opened_at,
            updated_at=payload.opened_at,
        )

        async with self._session_factory() as session:
            try:
                await session.execute(statement)
                for log in logs:
                    await session.execute(_log_insert(payload.case_id, log))
                row = await self._select_case_row(session, case_id=payload.case_id)
                await session.commit()
            except IntegrityError as error:
                await session.rollback()
                if _is_duplicate_case_number_error(error):
                    raise DuplicateCaseNumberError(
                        f"duplicate case number: {payload.case_number}"
                    ) from error
                raise

        assert row is not None
        return _to_case_record(row)

    async def get_case(self, *, case_id: UUID) -> CaseRecord | None:
        """Return case by id when present."""

        async with self._session_factory() as session:
            row = await self._select_case_row(session, case_id=case_id)

        if row is None:
            return None
        return _to_case_record(row)

    async def assign_supplier_if_opened(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Set owning supplier and move OPENED -> EXECUTING."""

        return await self._apply_if(
            case_id=case_id,
            conditions=[after_sales_cases.c.status == CaseStatus.OPENED.value],
            values={"supplier_id": supplier_id, "status": CaseStatus.EXECUTING.value},
            log=log,
        )

    async def update_resolution_if_executing(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        resolution: str | None,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Replace the resolution draft while the owner's case is EXECUTING."""

        values: dict[str, Any] = {}
        if resolution is not None:
            values["resolution"] = resolution
        return await self._apply_if(
            case_id=case_id,
            conditions=[
                after_sales_cases.c.status == CaseStatus.EXECUTING.value,
                after_sales_cases.c.supplier_id == supplier_id,
            ],
            values=values,
            log=log,
        )

    async def submit_resolution_if_executing(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        resolution: str,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Freeze resolution text and move EXECUTING -> INSPECTING."""

        return await self._apply_if(
            case_id=case_id,
            conditions=[
                after_sales_cases.c.status == CaseStatus.EXECUTING.value,
                after_sales_cases.c.supplier_id == supplier_id,
            ],
            values={"resolution": resolution, "status": CaseStatus.INSPECTING.value},
            log=log,
        )

    async def review_resolution_if_inspecting(
        self,
        *,
        case_id: UUID,
        confirmed: bool,
        resolved_at: datetime,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Move INSPECTING -> RESOLVED (setting resolved_at) or back to EXECUTING."""

        values: dict[str, Any] = {"status": CaseStatus.EXECUTING.value}
        if confirmed:
            values = {"status": CaseStatus.RESOLVED.value, "resolved_at": resolved_at}
        return await self._apply_if(
            case_id=case_id,
            conditions=[after_sales_cases.c.status == CaseStatus.INSPECTING.value],
            values=values,
            log=log,
        )

    async def attach_replacement_shipment_if_executing(
        self,
        *,
        case_id: UUID,
        supplier_id: str,
        shipment: ReplacementShipmentInput,
        log: CaseLogCreateInput,
    ) -> CaseRecord | None:
        """Insert replacement shipment and link it when none is recorded yet."""

        shipment_insert = sa.insert(shipments).values(
            shipment_id=shipment.shipment_id,
            shipment_no=shipment.shipment_no,
            tracking_no=shipment.tracking_no,
            carrier=shipment.carrier,
            source=FulfillmentChannel.SUPPLIER.value,
            status="PENDING",
            supplier_id=shipment.supplier_id,
            order_id=shipment.order_id,
            request_item_id=shipment.request_item_id,
        )
        try:
            return await self._apply_if(
                case_id=case_id,
                conditions=[
                    after_sales_cases.c.status == CaseStatus.EXECUTING.value,
                    after_sales_cases.c.supplier_id == supplier_id,
                    after_sales_cases.c.replacement_shipment_id.is_(None),
                ],
                values={"replacement_shipment_id": shipment.shipment_id},
                log=log,
                prerequisites=[shipment_insert],
            )
        except IntegrityError as error:
            if _is_duplicate_shipment_number_error(error):
                raise DuplicateShipmentNumberError(
                    f"duplicate shipment number: {shipment.shipment_no}"
                ) from error
            raise

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

        values: dict[str, Any] = {"status": target_status.value}
        if target_status is CaseStatus.RESOLVED:
            values["resolved_at"] = resolved_at
        return await self._apply_if(
            case_id=case_id,
            conditions=[after_sales_cases.c.status == expected_status.value],
            values=values,
            log=log,
        )

    async def list_case_logs(self, *, case_id: UUID) -> list[CaseLogRecord]:
        """Return case log entries in creation order."""

        statement = (
            sa.select(after_sales_logs)
            .where(after_sales_logs.c.case_id == case_id)
            .order_by(after_sales_logs.c.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return [_to_log_record(row) for row in result.mappings().all()]

    async def list_cases(self, *, filters: CaseListFilter) -> list[CaseRecord]:
        """Return filtered cases, newest first."""

        source = after_sales_cases.outerjoin(
            orders,
            orders.c.order_id == after_sales_cases.c.order_id,
        ).outerjoin(
            shipments,
            shipments.c.shipment_id == after_sales_cases.c.shipment_id,
        )
        statement = sa.select(after_sales_cases).select_from(source)

        if filters.status is not None:
            statement = statement.where(after_sales_cases.c.status == filters.status.value)
        if filters.issue_type is not None:
            statement = statement.where(after_sales_cases.c.issue_type == filters.issue_type.value)
        if filters.order_id is not None:
            statement = statement.where(after_sales_cases.c.order_id == filters.order_id)
        if filters.supplier_id is not None:
            statement = statement.where(after_sales_cases.c.supplier_id == filters.supplier_id)
        if filters.store_id is not None:
            statement = statement.where(after_sales_cases.c.store_id == filters.store_id)
        if filters.search:
            pattern = f"%{filters.search}%"
            statement = statement.where(
                sa.or_(
                    after_sales_cases.c.case_number.ilike(pattern),
                    orders.c.order_no.ilike(pattern),
                    shipments.c.tracking_no.ilike(pattern),
                )
            )

        statement = (
            statement.order_by(
                after_sales_cases.c.created_at.desc(),
                after_sales_cases.c.case_number.desc(),
            )
            .limit(filters.limit)
            .offset(filters.offset)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return [_to_case_record(row) for row in result.mappings().all()]

    async def count_cases_by_status(
        self,
        *,
        scope: CaseCountScope,
        now: datetime,
    ) -> CaseStatusCounts:
        """Return total, per-status and overdue case counts."""

        scope_conditions = []
        if scope.supplier_id is not None:
            scope_conditions.append(after_sales_cases.c.supplier_id == scope.supplier_id)
        if scope.store_id is not None:
            scope_conditions.append(after_sales_cases.c.store_id == scope.store_id)

        by_status_statement = (
            sa.select(after_sales_cases.c.status, sa.func.count())
            .where(*scope_conditions)
            .group_by(after_sales_cases.c.status)
        )
        overdue_statement = (
            sa.select(sa.func.count())
            .select_from(after_sales_cases)
            .where(
                *scope_conditions,
                after_sales_cases.c.sla_deadline < now,
                after_sales_cases.c.status.not_in(
                    [status.value for status in SLA_SETTLED_STATUSES]
                ),
            )
        )

        async with self._session_factory() as session:
            by_status_result = await session.execute(by_status_statement)
            overdue = (await session.execute(overdue_statement)).scalar_one()

        by_status = {
            CaseStatus(cast(str, status)): int(count)
            for status, count in by_status_result.all()
        }
        return CaseStatusCounts(
            total=sum(by_status.values()),
            by_status=by_status,
            overdue=int(overdue),
        )

    async def list_overdue_cases(self, *, now: datetime, limit: int = 500) -> list[CaseRecord]:
        """Return unsettled cases past their SLA deadline, most overdue first."""

        statement = (
            sa.select(after_sales_cases)
            .where(
                after_sales_cases.c.sla_deadline <= now,
                after_sales_cases.c.status.not_in(
                    [status.value for status in SLA_SETTLED_STATUSES]
                ),
            )
            .order_by(after_sales_cases.c.sla_deadline.asc(), after_sales_cases.c.case_number)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return [_to_case_record(row) for row in result.mappings().all()]

    async def record_sla_reminder(
        self,
        *,
        case_id: UUID,
        batch_date: date,
        recipient_id: str,
    ) -> bool:
        """Claim the reminder slot for one case and day; False when already claimed."""

        statement = sa.insert(after_sales_sla_reminders).values(
            case_id=case_id,
            batch_date=batch_date,
            recipient_id=recipient_id,
        )
        async with self._session_factory() as session:
            try:
                await session.execute(statement)
                await session.commit()
            except IntegrityError as error:
                await session.rollback()
                if _is_duplicate_reminder_error(error):
                    return False
                raise

        return True

    async def add_attachments(
        self,
        *,
        case_id: UUID,
        attachments: list[AttachmentCreateInput],
        log: CaseLogCreateInput,
    ) -> list[AttachmentRecord]:
        """Persist attachment rows and one upload log entry."""

        records: list[AttachmentRecord] = []
        async with self._session_factory() as session:
            for attachment in attachments:
                result = await session.execute(
                    sa.insert(after_sales_attachments)
                    .values(
                        case_id=case_id,
                        storage_key=attachment.storage_key,
                        media_type=attachment.media_type,
                        filename=attachment.filename,
                    )
                    .returning(*after_sales_attachments.c)
                )
                records.append(_to_attachment_record(result.mappings().one()))
            await session.execute(_log_insert(case_id, log))
            await session.commit()

        return records

    async def list_attachments(self, *, case_id: UUID) -> list[AttachmentRecord]:
        """Return case attachments in upload order."""

        statement = (
            sa.select(after_sales_attachments)
            .where(after_sales_attachments.c.case_id == case_id)
            .order_by(after_sales_attachments.c.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return [_to_attachment_record(row) for row in result.mappings().all()]

    async def _apply_if(
        self,
        *,
        case_id: UUID,
        conditions: Sequence[sa.ColumnElement[bool]],
        values: dict[str, Any],
        log: CaseLogCreateInput,
        prerequisites: Sequence[sa.Executable] = (),
    ) -> CaseRecord | None:
        """Run one compare-and-set UPDATE plus its log INSERT atomically.

        Rolls back (including any prerequisite statements) and returns None
        when the UPDATE matched no row.
        """

        statement = (
            sa.update(after_sales_cases)
            .where(after_sales_cases.c.case_id == case_id, *conditions)
            .values(**values, updated_at=sa.func.current_timestamp())
        )

        async with self._session_factory() as session:
            for prerequisite in prerequisites:
                await session.execute(prerequisite)
            result = cast(CursorResult[Any], await session.execute(statement))
            if int(result.rowcount or 0) != 1:
                await session.rollback()
                return None
            await session.execute(_log_insert(case_id, log))
            row = await self._select_case_row(session, case_id=case_id)
            await session.commit()

        assert row is not None
        return _to_case_record(row)

    async def _select_case_row(
        self,
        session: AsyncSession,
        *,
        case_id: UUID,
    ) -> RowMapping | None:
        result = await session.execute(
            sa.select(after_sales_cases).where(after_sales_cases.c.case_id == case_id)
        )
        return result.mappings().first()
