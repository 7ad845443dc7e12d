from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

import pytest
import sqlalchemy as sa
from alembic.config import Config

from alembic import command
from aftersales_engine.application.ports.case_repository_port import (
    AttachmentCreateInput,
    CaseCountScope,
    CaseCreateInput,
    CaseListFilter,
    CaseLogCreateInput,
    CaseRecord,
    ReplacementShipmentInput,
)
from aftersales_engine.domain.case_status import CaseStatus
from aftersales_engine.domain.case_types import (
    CaseLogAction,
    CasePriority,
    FulfillmentChannel,
    IssueType,
)
from aftersales_engine.domain.errors import (
    DuplicateCaseNumberError,
    DuplicateShipmentNumberError,
)
from aftersales_engine.infrastructure.db.case_repository import SqlAlchemyCaseRepository
from aftersales_engine.infrastructure.db.metadata import (
    after_sales_sla_reminders,
    orders,
    shipments,
    stores,
)
from aftersales_engine.infrastructure.db.session import create_session_factory

OPENED_AT = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def _upgrade_head(tmp_path: Path, filename: str) -> tuple[str, str]:
    db_path = tmp_path / filename
    sync_url = f"sqlite+pysqlite:///{db_path}"
    async_url = f"sqlite+aiosqlite:///{db_path}"

    alembic_config = Config("alembic.ini")
    alembic_config.set_main_option("sqlalchemy.url", sync_url)
    command.upgrade(alembic_config, "head")

    return sync_url, async_url


def _case_input(
    *,
    case_number: str,
    status: CaseStatus = CaseStatus.EXECUTING,
    supplier_id: str | None = "S1",
    store_id: str | None = None,
    order_id: str | None = None,
    shipment_id: str | None = None,
    opened_at: datetime = OPENED_AT,
    sla_deadline: datetime | None = None,
) -> CaseCreateInput:
    return CaseCreateInput(
        case_id=uuid4(),
        case_number=case_number,
        status=status,
        issue_type=IssueType.REPAIR,
        priority=CasePriority.MEDIUM,
        description="Compressor rattles after install",
        channel=FulfillmentChannel.SUPPLIER,
        sla_deadline=sla_deadline or opened_at + timedelta(days=7),
        opened_at=opened_at,
        order_id=order_id,
        shipment_id=shipment_id,
        store_id=store_id,
        supplier_id=supplier_id,
        handler_id="B1",
        claim_amount=Decimal("129.90"),
    )


def _opened_log() -> list[CaseLogCreateInput]:
    return [CaseLogCreateInput(action=CaseLogAction.OPENED, actor_id="B1", description="Opened")]


def _submit_log() -> CaseLogCreateInput:
    return CaseLogCreateInput(action=CaseLogAction.INSPECTING, actor_id="S1")


@pytest.mark.asyncio
async def test_create_case_persists_row_and_initial_logs(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_create.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-1")

    created = await repo.create_case(
        payload,
        logs=[
            *_opened_log(),
            CaseLogCreateInput(action=CaseLogAction.EXECUTING, actor_id="SYSTEM"),
        ],
    )
    loaded = await repo.get_case(case_id=payload.case_id)
    logs = await repo.list_case_logs(case_id=payload.case_id)

    assert created.case_id == payload.case_id
    assert loaded is not None
    assert loaded.status is CaseStatus.EXECUTING
    assert loaded.claim_amount == Decimal("129.90")
    assert loaded.resolved_at is None
    assert [(log.action, log.actor_id) for log in logs] == [
        ("OPENED", "B1"),
        ("EXECUTING", "SYSTEM"),
    ]


@pytest.mark.asyncio
async def test_duplicate_case_number_is_rejected_without_partial_rows(tmp_path: Path) -> None:
    sync_url, async_url = _upgrade_head(tmp_path, "case_duplicate.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))

    await repo.create_case(_case_input(case_number="RMA-dup"), logs=_opened_log())
    duplicate = _case_input(case_number="RMA-dup")
    with pytest.raises(DuplicateCaseNumberError):
        await repo.create_case(duplicate, logs=_opened_log())

    assert await repo.get_case(case_id=duplicate.case_id) is None
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        log_count = connection.execute(
            sa.text("SELECT COUNT(*) FROM after_sales_logs")
        ).scalar_one()
    assert log_count == 1


@pytest.mark.asyncio
async def test_stale_compare_and_set_changes_nothing(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_cas.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-cas")
    await repo.create_case(payload, logs=[])

    first = await repo.submit_resolution_if_executing(
        case_id=payload.case_id,
        supplier_id="S1",
        resolution="Replaced compressor",
        log=_submit_log(),
    )
    second = await repo.submit_resolution_if_executing(
        case_id=payload.case_id,
        supplier_id="S1",
        resolution="Second attempt",
        log=_submit_log(),
    )

    assert first is not None
    assert first.status is CaseStatus.INSPECTING
    assert second is None
    loaded = await repo.get_case(case_id=payload.case_id)
    assert loaded is not None
    assert loaded.resolution == "Replaced compressor"
    logs = await repo.list_case_logs(case_id=payload.case_id)
    assert [log.action for log in logs] == ["INSPECTING"]


@pytest.mark.asyncio
async def test_compare_and_set_checks_owning_supplier(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_owner.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-owner", supplier_id="S1")
    await repo.create_case(payload, logs=[])

    result = await repo.update_resolution_if_executing(
        case_id=payload.case_id,
        supplier_id="S2",
        resolution="Not mine",
        log=CaseLogCreateInput(action=CaseLogAction.UPDATED, actor_id="S2"),
    )

    assert result is None
    assert await repo.list_case_logs(case_id=payload.case_id) == []


@pytest.mark.asyncio
async def test_review_sets_resolved_at_only_on_confirmation(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_review.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    confirmed = _case_input(case_number="RMA-c", status=CaseStatus.INSPECTING)
    rejected = _case_input(case_number="RMA-r", status=CaseStatus.INSPECTING)
    await repo.create_case(confirmed, logs=[])
    await repo.create_case(rejected, logs=[])
    resolved_at = OPENED_AT + timedelta(days=2)

    confirmed_record = await repo.review_resolution_if_inspecting(
        case_id=confirmed.case_id,
        confirmed=True,
        resolved_at=resolved_at,
        log=CaseLogCreateInput(action=CaseLogAction.RESOLVED, actor_id="B1"),
    )
    rejected_record = await repo.review_resolution_if_inspecting(
        case_id=rejected.case_id,
        confirmed=False,
        resolved_at=resolved_at,
        log=CaseLogCreateInput(action=CaseLogAction.EXECUTING, actor_id="B1"),
    )

    assert confirmed_record is not None
    assert confirmed_record.status is CaseStatus.RESOLVED
    assert confirmed_record.resolved_at is not None
    assert confirmed_record.resolved_at.replace(tzinfo=UTC) == resolved_at
    assert rejected_record is not None
    assert rejected_record.status is CaseStatus.EXECUTING
    assert rejected_record.resolved_at is None


@pytest.mark.asyncio
async def test_replacement_shipment_is_recorded_once(tmp_path: Path) -> None:
    sync_url, async_url = _upgrade_head(tmp_path, "case_replacement.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-swap")
    await repo.create_case(payload, logs=[])

    def shipment(shipment_id: str, shipment_no: str) -> ReplacementShipmentInput:
        return ReplacementShipmentInput(
            shipment_id=shipment_id,
            shipment_no=shipment_no,
            tracking_no="SF900",
            carrier="shunfeng",
            order_id=None,
            supplier_id="S1",
            request_item_id=None,
        )

    log = CaseLogCreateInput(action=CaseLogAction.REPLACEMENT_SHIPPED, actor_id="S1")
    first = await repo.attach_replacement_shipment_if_executing(
        case_id=payload.case_id,
        supplier_id="S1",
        shipment=shipment("SH-r1", "REPLACE-1"),
        log=log,
    )
    second = await repo.attach_replacement_shipment_if_executing(
        case_id=payload.case_id,
        supplier_id="S1",
        shipment=shipment("SH-r2", "REPLACE-2"),
        log=log,
    )

    assert first is not None
    assert first.replacement_shipment_id == "SH-r1"
    assert second is None
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        rows = connection.execute(
            sa.select(shipments.c.shipment_id, shipments.c.source, shipments.c.status)
        ).all()
    assert [tuple(row) for row in rows] == [("SH-r1", "SUPPLIER", "PENDING")]


@pytest.mark.asyncio
async def test_override_sets_resolved_at_only_when_entering_resolved(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_override.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-ovr", status=CaseStatus.OPENED)
    await repo.create_case(payload, logs=[])

    stale = await repo.override_status_if_current(
        case_id=payload.case_id,
        expected_status=CaseStatus.EXECUTING,
        target_status=CaseStatus.CANCELLED,
        resolved_at=OPENED_AT,
        log=CaseLogCreateInput(action="CANCELLED", actor_id="A1"),
    )
    cancelled = await repo.override_status_if_current(
        case_id=payload.case_id,
        expected_status=CaseStatus.OPENED,
        target_status=CaseStatus.CANCELLED,
        resolved_at=OPENED_AT,
        log=CaseLogCreateInput(action="CANCELLED", actor_id="A1"),
    )

    assert stale is None
    assert cancelled is not None
    assert cancelled.status is CaseStatus.CANCELLED
    assert cancelled.resolved_at is None


@pytest.mark.asyncio
async def test_list_cases_filters_searches_and_orders_newest_first(tmp_path: Path) -> None:
    sync_url, async_url = _upgrade_head(tmp_path, "case_list.db")
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        connection.execute(sa.insert(stores), [{"store_id": "ST1", "name": "Harbor Road"}])
        connection.execute(
            sa.insert(orders),
            [{"order_id": "O1", "order_no": "PO-2026-0042", "store_id": "ST1"}],
        )
        connection.execute(
            sa.insert(shipments),
            [
                {
                    "shipment_id": "SH1",
                    "shipment_no": "SHP-1",
                    "tracking_no": "YT555000",
                    "source": "SUPPLIER",
                    "supplier_id": "S1",
                    "order_id": "O1",
                }
            ],
        )
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))

    older = _case_input(case_number="RMA-100", order_id="O1", store_id="ST1")
    newer = _case_input(
        case_number="RMA-200",
        shipment_id="SH1",
        supplier_id="S2",
        opened_at=OPENED_AT + timedelta(hours=1),
    )
    opened = _case_input(
        case_number="RMA-300",
        status=CaseStatus.OPENED,
        supplier_id=None,
        opened_at=OPENED_AT + timedelta(hours=2),
    )
    for payload in (older, newer, opened):
        await repo.create_case(payload, logs=[])

    everything = await repo.list_cases(filters=CaseListFilter())
    by_order_no = await repo.list_cases(filters=CaseListFilter(search="po-2026"))
    by_tracking = await repo.list_cases(filters=CaseListFilter(search="YT555"))
    by_number = await repo.list_cases(filters=CaseListFilter(search="RMA-3"))
    executing_for_s2 = await repo.list_cases(
        filters=CaseListFilter(status=CaseStatus.EXECUTING, supplier_id="S2")
    )
    by_store = await repo.list_cases(filters=CaseListFilter(store_id="ST1"))
    paged = await repo.list_cases(filters=CaseListFilter(limit=1, offset=1))

    def numbers(records: list[CaseRecord]) -> list[str]:
        return [record.case_number for record in records]

    assert numbers(everything) == ["RMA-300", "RMA-200", "RMA-100"]
    assert numbers(by_order_no) == ["RMA-100"]
    assert numbers(by_tracking) == ["RMA-200"]
    assert numbers(by_number) == ["RMA-300"]
    assert numbers(executing_for_s2) == ["RMA-200"]
    assert numbers(by_store) == ["RMA-100"]
    assert numbers(paged) == ["RMA-200"]


@pytest.mark.asyncio
async def test_count_cases_by_status_reports_overdue_open_work(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_counts.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    now = OPENED_AT + timedelta(days=10)
    past_deadline = OPENED_AT + timedelta(days=7)

    inputs = [
        _case_input(case_number="RMA-1", status=CaseStatus.EXECUTING, sla_deadline=past_deadline),
        _case_input(case_number="RMA-2", status=CaseStatus.OPENED, sla_deadline=past_deadline),
        _case_input(case_number="RMA-3", status=CaseStatus.RESOLVED, sla_deadline=past_deadline),
        _case_input(
            case_number="RMA-4",
            status=CaseStatus.EXECUTING,
            supplier_id="S2",
            sla_deadline=now + timedelta(days=1),
        ),
    ]
    for payload in inputs:
        await repo.create_case(payload, logs=[])

    overall = await repo.count_cases_by_status(scope=CaseCountScope(), now=now)
    for_s1 = await repo.count_cases_by_status(scope=CaseCountScope(supplier_id="S1"), now=now)

    assert overall.total == 4
    assert overall.by_status == {
        CaseStatus.EXECUTING: 2,
        CaseStatus.OPENED: 1,
        CaseStatus.RESOLVED: 1,
    }
    assert overall.overdue == 2
    assert for_s1.total == 3
    assert for_s1.overdue == 2


@pytest.mark.asyncio
async def test_add_attachments_writes_rows_and_one_log(tmp_path: Path) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_attachments.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-att")
    await repo.create_case(payload, logs=[])

    records = await repo.add_attachments(
        case_id=payload.case_id,
        attachments=[
            AttachmentCreateInput(storage_key="k/1.png", media_type="image/png", filename="a.png"),
            AttachmentCreateInput(storage_key="k/2.mp4", media_type="video/mp4", filename="b.mp4"),
        ],
        log=CaseLogCreateInput(
            action=CaseLogAction.ATTACHMENT_UPLOADED,
            actor_id="B1",
            description="Uploaded 2 attachment(s): a.png, b.mp4",
        ),
    )

    listed = await repo.list_attachments(case_id=payload.case_id)
    logs = await repo.list_case_logs(case_id=payload.case_id)
    assert [record.storage_key for record in records] == ["k/1.png", "k/2.mp4"]
    assert [record.id for record in listed] == [record.id for record in records]
    assert all(isinstance(record.case_id, UUID) for record in listed)
    assert [log.action for log in logs] == ["ATTACHMENT_UPLOADED"]


@pytest.mark.asyncio
async def test_replacement_with_taken_shipment_number_changes_nothing(tmp_path: Path) -> None:
    sync_url, async_url = _upgrade_head(tmp_path, "case_replacement_collision.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-collide")
    await repo.create_case(payload, logs=[])
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        connection.execute(
            sa.insert(shipments).values(
                shipment_id="SH-existing",
                shipment_no="REPLACE-taken",
                source="SUPPLIER",
            )
        )

    with pytest.raises(DuplicateShipmentNumberError):
        await repo.attach_replacement_shipment_if_executing(
            case_id=payload.case_id,
            supplier_id="S1",
            shipment=ReplacementShipmentInput(
                shipment_id="SH-new",
                shipment_no="REPLACE-taken",
                tracking_no="SF900",
                carrier="shunfeng",
                order_id=None,
                supplier_id="S1",
                request_item_id=None,
            ),
            log=CaseLogCreateInput(action=CaseLogAction.REPLACEMENT_SHIPPED, actor_id="S1"),
        )

    loaded = await repo.get_case(case_id=payload.case_id)
    assert loaded is not None
    assert loaded.replacement_shipment_id is None
    assert await repo.list_case_logs(case_id=payload.case_id) == []
    with engine.begin() as connection:
        shipment_ids = connection.execute(sa.select(shipments.c.shipment_id)).scalars().all()
    assert shipment_ids == ["SH-existing"]


@pytest.mark.asyncio
async def test_list_overdue_cases_skips_settled_and_orders_most_overdue_first(
    tmp_path: Path,
) -> None:
    _, async_url = _upgrade_head(tmp_path, "case_overdue.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    now = OPENED_AT + timedelta(days=10)

    inputs = [
        _case_input(case_number="RMA-1", sla_deadline=now - timedelta(days=1)),
        _case_input(
            case_number="RMA-2",
            status=CaseStatus.OPENED,
            sla_deadline=now - timedelta(days=3),
        ),
        _case_input(
            case_number="RMA-3",
            status=CaseStatus.INSPECTING,
            sla_deadline=now - timedelta(days=2),
        ),
        _case_input(
            case_number="RMA-4",
            status=CaseStatus.RESOLVED,
            sla_deadline=now - timedelta(days=5),
        ),
        _case_input(
            case_number="RMA-5",
            status=CaseStatus.CLOSED,
            sla_deadline=now - timedelta(days=5),
        ),
        _case_input(
            case_number="RMA-6",
            status=CaseStatus.CANCELLED,
            sla_deadline=now - timedelta(days=5),
        ),
        _case_input(case_number="RMA-7", sla_deadline=now + timedelta(hours=1)),
    ]
    for payload in inputs:
        await repo.create_case(payload, logs=[])

    overdue = await repo.list_overdue_cases(now=now)
    limited = await repo.list_overdue_cases(now=now, limit=2)

    assert [case.case_number for case in overdue] == ["RMA-2", "RMA-3", "RMA-1"]
    assert [case.case_number for case in limited] == ["RMA-2", "RMA-3"]


@pytest.mark.asyncio
async def test_record_sla_reminder_claims_each_case_once_per_day(tmp_path: Path) -> None:
    sync_url, async_url = _upgrade_head(tmp_path, "case_reminders.db")
    repo = SqlAlchemyCaseRepository(create_session_factory(async_url))
    payload = _case_input(case_number="RMA-late")
    await repo.create_case(payload, logs=[])
    today = OPENED_AT.date()

    first = await repo.record_sla_reminder(
        case_id=payload.case_id,
        batch_date=today,
        recipient_id="B1",
    )
    repeat = await repo.record_sla_reminder(
        case_id=payload.case_id,
        batch_date=today,
        recipient_id="B1",
    )
    next_day = await repo.record_sla_reminder(
        case_id=payload.case_id,
        batch_date=today + timedelta(days=1),
        recipient_id="B1",
    )

    assert first is True
    assert repeat is False
    assert next_day is True
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        rows = connection.execute(
            sa.select(
                after_sales_sla_reminders.c.batch_date,
                after_sales_sla_reminders.c.recipient_id,
            ).order_by(after_sales_sla_reminders.c.batch_date)
        ).all()
    assert [tuple(row) for row in rows] == [
        (today, "B1"),
        (today + timedelta(days=1), "B1"),
    ]
