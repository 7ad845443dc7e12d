from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import sqlalchemy as sa
from alembic.config import Config
from fastapi.testclient import TestClient

from alembic import command
from aftersales_engine.application.ports.notifier_port import (
    NotificationMessage,
    NotificationResult,
)
from aftersales_engine.config.settings import Settings
from aftersales_engine.infrastructure.db.metadata import (
    audit_logs,
    order_requests,
    orders,
    request_items,
    requests_for_quote,
    shipments,
    stores,
    users,
)
from apps.api.main import build_case_services, create_app

ADMIN = {"X-Actor-Id": "A1", "X-Actor-Role": "admin"}
BUYER = {"X-Actor-Id": "B1", "X-Actor-Role": "buyer"}
SUPPLIER_ONE = {"X-Actor-Id": "S1", "X-Actor-Role": "supplier"}
SUPPLIER_TWO = {"X-Actor-Id": "S2", "X-Actor-Role": "supplier"}
STORE_USER = {"X-Actor-Id": "U1", "X-Actor-Role": "store", "X-Actor-Store-Id": "ST1"}


@dataclass
class _NotifierSpy:
    messages: list[NotificationMessage] = field(default_factory=list)

    async def notify(self, message: NotificationMessage) -> NotificationResult:
        self.messages.append(message)
        return NotificationResult(delivered=True)


def _upgrade_head(tmp_path: Path, filename: str) -> tuple[str, str]:
    db_path = tmp_path / filename
    sync_url = f"sqlite+pysqlite:///{db_path}"
    async_url = f"sqlite+aiosqlite:///{db_path}"

    alembic_config = Config("alembic.ini")
    alembic_config.set_main_option("sqlalchemy.url", sync_url)
    command.upgrade(alembic_config, "head")

    return sync_url, async_url


def _user_row(user_id: str, role: str, *, store_id: str | None = None) -> dict[str, object]:
    return {
        "user_id": user_id,
        "username": f"{role}-{user_id.lower()}",
        "role": role,
        "is_active": True,
        "store_id": store_id,
    }


def _seed(sync_url: str) -> None:
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        connection.execute(sa.insert(stores), [{"store_id": "ST1", "name": "Harbor Road"}])
        connection.execute(
            sa.insert(users),
            [
                _user_row("A1", "admin"),
                _user_row("B1", "buyer"),
                _user_row("S1", "supplier"),
                _user_row("S2", "supplier"),
                _user_row("U1", "store", store_id="ST1"),
            ],
        )
        connection.execute(
            sa.insert(orders),
            [
                {"order_id": "O1", "order_no": "PO-1001", "store_id": "ST1"},
                {"order_id": "O7", "order_no": "PO-7007", "store_id": "ST1"},
            ],
        )
        connection.execute(
            sa.insert(requests_for_quote),
            [{"request_id": "R7", "request_no": "RFQ-7", "store_id": "ST1", "requester_id": None}],
        )
        connection.execute(
            sa.insert(request_items),
            [
                {
                    "item_id": "RI7",
                    "request_id": "R7",
                    "product_name": "Label printer",
                    "tracking_no": "JD999",
                    "source": "ECOMMERCE",
                }
            ],
        )
        connection.execute(sa.insert(order_requests), [{"order_id": "O7", "request_id": "R7"}])
        connection.execute(
            sa.insert(shipments),
            [
                {
                    "shipment_id": "SH1",
                    "shipment_no": "SHP-1",
                    "tracking_no": "SF123",
                    "carrier": "shunfeng",
                    "source": "SUPPLIER",
                    "supplier_id": "S1",
                    "order_id": "O1",
                }
            ],
        )


def _settings(tmp_path: Path, async_url: str) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=async_url,
        WEB_BASE_URL="https://aftersales.example.org",
        BLOB_STORE_ROOT=str(tmp_path / "blobs"),
        BLOB_SIGNING_SECRET="blob-secret",
        BLOB_PUBLIC_BASE_URL="http://testserver/blobs",
        NOTIFIER_WEBHOOK_URL=None,
    )


def _client_parts(tmp_path: Path, filename: str) -> tuple[str, TestClient, _NotifierSpy]:
    sync_url, async_url = _upgrade_head(tmp_path, filename)
    _seed(sync_url)
    settings = _settings(tmp_path, async_url)
    notifier = _NotifierSpy()
    app = create_app(
        settings=settings,
        services=build_case_services(settings, notifier=notifier),
    )
    return sync_url, TestClient(app), notifier


def test_supplier_case_flows_from_open_to_resolved(tmp_path: Path) -> None:
    sync_url, client, notifier = _client_parts(tmp_path, "api_flow.db")

    with client:
        opened = client.post(
            "/after-sales",
            json={
                "issue_type": "DAMAGED",
                "priority": "HIGH",
                "description": "Chiller arrived dented",
                "tracking_no": "SF123",
                "claim_amount": "250.00",
            },
            headers=ADMIN,
        )
        assert opened.status_code == 201
        body = opened.json()
        case_id = body["case"]["id"]
        assert body["route"] == "AUTO_SUPPLIER"
        assert body["case"]["status"] == "EXECUTING"
        assert body["case"]["supplier_id"] == "S1"
        assert body["case"]["store_id"] == "ST1"
        assert body["provenance"]["channel"] == "SUPPLIER"

        foreign_submit = client.post(
            f"/after-sales/{case_id}/submit-resolution",
            json={"resolution": "Not my case"},
            headers=SUPPLIER_TWO,
        )
        early_confirm = client.patch(
            f"/after-sales/{case_id}/confirm",
            json={"confirmed": True},
            headers=ADMIN,
        )
        submitted = client.post(
            f"/after-sales/{case_id}/submit-resolution",
            json={"resolution": "Credit note issued"},
            headers=SUPPLIER_ONE,
        )
        confirmed = client.patch(
            f"/after-sales/{case_id}/confirm",
            json={"confirmed": True},
            headers=BUYER,
        )
        override = client.patch(
            f"/after-sales/{case_id}/status",
            json={"status": "EXECUTING"},
            headers=ADMIN,
        )
        owner_detail = client.get(f"/after-sales/{case_id}", headers=SUPPLIER_ONE)
        foreign_detail = client.get(f"/after-sales/{case_id}", headers=SUPPLIER_TWO)

    assert foreign_submit.status_code == 403
    assert foreign_submit.json()["detail"]["code"] == "role_violation"
    assert early_confirm.status_code == 409
    assert early_confirm.json()["detail"]["code"] == "guard_violation"
    assert early_confirm.json()["detail"]["current_status"] == "EXECUTING"
    assert early_confirm.json()["detail"]["required_statuses"] == ["INSPECTING"]
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "INSPECTING"
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "RESOLVED"
    assert confirmed.json()["resolved_at"] is not None
    assert override.status_code == 409
    assert owner_detail.status_code == 200
    assert [log["action"] for log in owner_detail.json()["logs"]] == [
        "OPENED",
        "EXECUTING",
        "INSPECTING",
        "RESOLVED",
    ]
    assert foreign_detail.status_code == 404

    assert sorted(message.event_type for message in notifier.messages) == [
        "case_assigned",
        "resolution_submitted",
    ]
    engine = sa.create_engine(sync_url)
    with engine.begin() as connection:
        actions = connection.execute(sa.select(audit_logs.c.action)).scalars().all()
    assert sorted(actions) == [
        "aftersales.confirm",
        "aftersales.create",
        "aftersales.submit_resolution",
    ]


def test_ecommerce_case_is_handed_to_buyer_and_assigned_manually(tmp_path: Path) -> None:
    _, client, _ = _client_parts(tmp_path, "api_ecommerce.db")

    with client:
        opened = client.post(
            "/after-sales",
            json={
                "issue_type": "WRONG_ITEM",
                "priority": "MEDIUM",
                "description": "Received the wrong printer model",
                "tracking_no": "JD999",
            },
            headers=ADMIN,
        )
        case_id = opened.json()["case"]["id"]
        assigned = client.patch(
            f"/after-sales/{case_id}/assign",
            json={"supplier_id": "S2"},
            headers=BUYER,
        )
        reassigned = client.patch(
            f"/after-sales/{case_id}/assign",
            json={"supplier_id": "S1"},
            headers=BUYER,
        )

    assert opened.status_code == 201
    assert opened.json()["route"] == "AUTO_BUYER"
    assert opened.json()["case"]["status"] == "OPENED"
    assert opened.json()["case"]["handler_id"] == "B1"
    assert opened.json()["case"]["order_id"] == "O7"
    assert assigned.status_code == 200
    assert assigned.json()["status"] == "EXECUTING"
    assert assigned.json()["supplier_id"] == "S2"
    assert reassigned.status_code == 409


def test_open_case_rejects_bad_input_and_unknown_references(tmp_path: Path) -> None:
    _, client, _ = _client_parts(tmp_path, "api_validation.db")
    base = {"issue_type": "CLAIM", "priority": "LOW", "description": "Short shipped"}

    with client:
        missing_actor = client.post("/after-sales", json=base)
        unknown_role = client.post(
            "/after-sales",
            json=base,
            headers={"X-Actor-Id": "X1", "X-Actor-Role": "superuser"},
        )
        negative_claim = client.post(
            "/after-sales",
            json={**base, "claim_amount": "-1"},
            headers=ADMIN,
        )
        blank_description = client.post(
            "/after-sales",
            json={**base, "description": "   "},
            headers=ADMIN,
        )
        unknown_store = client.post(
            "/after-sales",
            json={**base, "store_id": "ST404"},
            headers=ADMIN,
        )
        unknown_field = client.post(
            "/after-sales",
            json={**base, "status": "RESOLVED"},
            headers=ADMIN,
        )

    assert missing_actor.status_code == 401
    assert unknown_role.status_code == 401
    assert negative_claim.status_code == 422
    assert blank_description.status_code == 422
    assert blank_description.json()["detail"] == {
        "code": "validation_error",
        "field": "description",
        "reason": "description must not be empty",
    }
    assert unknown_store.status_code == 404
    assert unknown_store.json()["detail"]["code"] == "not_found"
    assert unknown_field.status_code == 422


def test_listing_stats_and_tracking_lookup_respect_actor_scope(tmp_path: Path) -> None:
    _, client, _ = _client_parts(tmp_path, "api_reads.db")
    base = {"issue_type": "MISSING", "priority": "URGENT", "description": "Two cartons missing"}

    with client:
        supplier_case = client.post(
            "/after-sales",
            json={**base, "tracking_no": "SF123"},
            headers=ADMIN,
        ).json()["case"]
        client.post("/after-sales", json={**base, "store_id": "ST1"}, headers=ADMIN)
        client.post("/after-sales", json=base, headers=ADMIN)

        admin_list = client.get("/after-sales", headers=ADMIN)
        supplier_list = client.get("/after-sales", headers=SUPPLIER_ONE)
        store_list = client.get("/after-sales", headers=STORE_USER)
        search = client.get(
            "/after-sales",
            params={"search": supplier_case["case_number"]},
            headers=ADMIN,
        )
        stats = client.get("/after-sales/stats", headers=ADMIN)
        supplier_stats = client.get("/after-sales/stats", headers=SUPPLIER_ONE)
        lookup = client.get("/after-sales/tracking/SF123", headers=STORE_USER)
        unknown_lookup = client.get("/after-sales/tracking/EMS0001", headers=STORE_USER)

    assert len(admin_list.json()["items"]) == 3
    assert [item["id"] for item in supplier_list.json()["items"]] == [supplier_case["id"]]
    assert len(store_list.json()["items"]) == 2
    assert [item["id"] for item in search.json()["items"]] == [supplier_case["id"]]
    assert stats.json()["total"] == 3
    assert stats.json()["by_status"]["OPENED"] == 2
    assert stats.json()["by_status"]["EXECUTING"] == 1
    assert stats.json()["by_status"]["CANCELLED"] == 0
    assert stats.json()["overdue"] == 0
    assert supplier_stats.json()["total"] == 1
    assert lookup.json()["carrier"] == "shunfeng"
    assert lookup.json()["provenance"]["channel"] == "SUPPLIER"
    assert lookup.json()["provenance"]["supplier_id"] == "S1"
    assert unknown_lookup.json()["carrier"] == "unknown"
    assert unknown_lookup.json()["provenance"]["channel"] == "UNKNOWN"


def test_attachments_are_uploaded_and_served_through_signed_urls(tmp_path: Path) -> None:
    _, client, _ = _client_parts(tmp_path, "api_attachments.db")

    with client:
        case_id = client.post(
            "/after-sales",
            json={"issue_type": "DAMAGED", "priority": "HIGH", "description": "Cracked lid"},
            headers=ADMIN,
        ).json()["case"]["id"]
        uploaded = client.post(
            f"/after-sales/{case_id}/attachments",
            files=[("files", ("lid.png", b"\x89PNG-bytes", "image/png"))],
            headers=BUYER,
        )
        rejected = client.post(
            f"/after-sales/{case_id}/attachments",
            files=[("files", ("notes.txt", b"plain", "text/plain"))],
            headers=BUYER,
        )
        detail = client.get(f"/after-sales/{case_id}", headers=BUYER)
        url = detail.json()["attachments"][0]["url"]
        downloaded = client.get(url)
        tampered = client.get(url.replace("signature=", "signature=0"))

    assert uploaded.status_code == 201
    assert [item["filename"] for item in uploaded.json()["items"]] == ["lid.png"]
    assert rejected.status_code == 422
    assert rejected.json()["detail"]["field"] == "files"
    assert [log["action"] for log in detail.json()["logs"]] == ["OPENED", "ATTACHMENT_UPLOADED"]
    assert url.startswith("http://testserver/blobs/after-sales-attachments/")
    assert downloaded.status_code == 200
    assert downloaded.content == b"\x89PNG-bytes"
    assert tampered.status_code == 403


def test_health_endpoint(tmp_path: Path) -> None:
    _, client, _ = _client_parts(tmp_path, "api_health.db")

    with client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
