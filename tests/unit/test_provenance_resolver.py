from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from aftersales_engine.application.ports.provenance_lookup_port import (
    OrderRecord,
    RequestForQuoteRecord,
    RequestItemRecord,
    ShipmentRecord,
)
from aftersales_engine.application.services.provenance_resolver import (
    ProvenanceResolver,
    derive_order_and_store,
)
from aftersales_engine.domain.case_types import FulfillmentChannel
from aftersales_engine.domain.provenance import UNKNOWN_PROVENANCE


def _shipment(
    shipment_id: str,
    *,
    tracking_no: str | None = None,
    source: FulfillmentChannel = FulfillmentChannel.SUPPLIER,
    supplier_id: str | None = "S1",
    order_id: str | None = None,
    request_id: str | None = None,
    day: int = 1,
) -> ShipmentRecord:
    return ShipmentRecord(
        shipment_id=shipment_id,
        tracking_no=tracking_no,
        carrier=None,
        source=source,
        supplier_id=supplier_id,
        order_id=order_id,
        request_item_id=None,
        request_id=request_id,
        created_at=datetime(2026, 2, day, tzinfo=UTC),
    )


@dataclass
class _Lookups:
    shipments: list[ShipmentRecord] = field(default_factory=list)
    items: list[RequestItemRecord] = field(default_factory=list)
    requests: dict[str, RequestForQuoteRecord] = field(default_factory=dict)
    order_links: dict[str, str] = field(default_factory=dict)
    orders: dict[str, OrderRecord] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    async def find_shipment_by_tracking_no(self, *, tracking_no: str) -> ShipmentRecord | None:
        self.calls.append(f"shipment_by_tracking:{tracking_no}")
        return next((item for item in self.shipments if item.tracking_no == tracking_no), None)

    async def find_shipment_by_id(self, *, shipment_id: str) -> ShipmentRecord | None:
        self.calls.append(f"shipment_by_id:{shipment_id}")
        return next((item for item in self.shipments if item.shipment_id == shipment_id), None)

    async def find_shipment_by_order_id(self, *, order_id: str) -> ShipmentRecord | None:
        matches = [item for item in self.shipments if item.order_id == order_id]
        return max(matches, key=lambda item: item.created_at) if matches else None

    async def find_request_item_by_tracking_no(
        self,
        *,
        tracking_no: str,
        source: FulfillmentChannel,
    ) -> RequestItemRecord | None:
        return next(
            (
                item
                for item in self.items
                if item.tracking_no == tracking_no and item.source is source
            ),
            None,
        )

    async def find_order_request_link(self, *, order_id: str) -> RequestForQuoteRecord | None:
        request_id = self.order_links.get(order_id)
        return self.requests.get(request_id) if request_id is not None else None

    async def get_request(self, *, request_id: str) -> RequestForQuoteRecord | None:
        return self.requests.get(request_id)

    async def request_has_tracked_item(
        self,
        *,
        request_id: str,
        source: FulfillmentChannel,
    ) -> bool:
        return any(
            item.request_id == request_id and item.source is source and item.tracking_no
            for item in self.items
        )

    async def get_order(self, *, order_id: str) -> OrderRecord | None:
        return self.orders.get(order_id)

    async def store_exists(self, *, store_id: str) -> bool:
        return True


def _request(
    request_id: str,
    *,
    store_id: str | None = None,
    linked_orders: tuple[OrderRecord, ...] = (),
) -> RequestForQuoteRecord:
    return RequestForQuoteRecord(
        request_id=request_id,
        request_no=f"RFQ-{request_id}",
        store_id=store_id,
        requester_id=None,
        linked_orders=linked_orders,
    )


def test_order_store_tiers_prefer_direct_order() -> None:
    direct = OrderRecord(order_id="O1", order_no="PO-1", store_id="ST1")
    request = _request(
        "R1",
        store_id="ST9",
        linked_orders=(OrderRecord(order_id="O2", order_no="PO-2", store_id="ST2"),),
    )

    assert derive_order_and_store(direct_order=direct, request=request) == ("O1", "ST1")


def test_order_store_tiers_fill_missing_order_store_from_request() -> None:
    direct = OrderRecord(order_id="O1", order_no="PO-1", store_id=None)

    assert derive_order_and_store(direct_order=direct, request=_request("R1", store_id="ST9")) == (
        "O1",
        "ST9",
    )


def test_order_store_tiers_fall_back_to_first_linked_order_then_request_store() -> None:
    linked = (
        OrderRecord(order_id="O2", order_no="PO-2", store_id="ST2"),
        OrderRecord(order_id="O3", order_no="PO-3", store_id="ST3"),
    )

    assert derive_order_and_store(
        direct_order=None,
        request=_request("R1", store_id="ST9", linked_orders=linked),
    ) == ("O2", "ST2")
    assert derive_order_and_store(direct_order=None, request=_request("R1", store_id="ST9")) == (
        None,
        "ST9",
    )
    assert derive_order_and_store(direct_order=None, request=None) == (None, None)


@pytest.mark.asyncio
async def test_supplier_shipment_tracking_resolves_supplier_order_and_store() -> None:
    lookups = _Lookups(
        shipments=[_shipment("SH1", tracking_no="SF123", order_id="O1", request_id="R1")],
        orders={"O1": OrderRecord(order_id="O1", order_no="PO-1", store_id="ST1")},
        requests={"R1": _request("R1", store_id="ST9")},
    )

    result = await ProvenanceResolver(lookups=lookups).resolve_by_tracking_number(" SF123 ")

    assert result.channel is FulfillmentChannel.SUPPLIER
    assert result.supplier_id == "S1"
    assert result.order_id == "O1"
    assert result.store_id == "ST1"
    assert result.shipment_id == "SH1"
    assert result.request_id == "R1"


@pytest.mark.asyncio
async def test_ecommerce_shipment_never_reports_supplier() -> None:
    lookups = _Lookups(
        shipments=[
            _shipment(
                "SH2",
                tracking_no="JD55",
                source=FulfillmentChannel.ECOMMERCE,
                supplier_id="S1",
            )
        ]
    )

    result = await ProvenanceResolver(lookups=lookups).resolve_by_tracking_number("JD55")

    assert result.channel is FulfillmentChannel.ECOMMERCE
    assert result.supplier_id is None


@pytest.mark.asyncio
async def test_ecommerce_request_item_tracking_resolves_via_request_orders() -> None:
    lookups = _Lookups(
        items=[
            RequestItemRecord(
                item_id="RI7",
                request_id="R7",
                tracking_no="JD999",
                carrier=None,
                source=FulfillmentChannel.ECOMMERCE,
            )
        ],
        requests={
            "R7": _request(
                "R7",
                store_id="ST7",
                linked_orders=(OrderRecord(order_id="O7", order_no="PO-7", store_id=None),),
            )
        },
    )

    result = await ProvenanceResolver(lookups=lookups).resolve_by_tracking_number("JD999")

    assert result.channel is FulfillmentChannel.ECOMMERCE
    assert result.order_id == "O7"
    assert result.store_id == "ST7"
    assert result.request_id == "R7"
    assert result.shipment_id is None


@pytest.mark.asyncio
async def test_supplier_sourced_request_item_is_not_a_provenance_match() -> None:
    lookups = _Lookups(
        items=[
            RequestItemRecord(
                item_id="RI8",
                request_id="R8",
                tracking_no="SF888",
                carrier=None,
                source=FulfillmentChannel.SUPPLIER,
            )
        ]
    )

    result = await ProvenanceResolver(lookups=lookups).resolve_by_tracking_number("SF888")

    assert result == UNKNOWN_PROVENANCE


@pytest.mark.asyncio
async def test_unknown_and_blank_tracking_resolve_to_unknown() -> None:
    resolver = ProvenanceResolver(lookups=_Lookups())

    assert await resolver.resolve_by_tracking_number("NOPE") == UNKNOWN_PROVENANCE
    assert await resolver.resolve_by_tracking_number("   ") == UNKNOWN_PROVENANCE


@pytest.mark.asyncio
async def test_order_resolution_uses_latest_shipment() -> None:
    lookups = _Lookups(
        shipments=[
            _shipment("SH-old", order_id="O1", supplier_id="S-old", day=1),
            _shipment("SH-new", order_id="O1", supplier_id="S-new", day=9),
        ],
        orders={"O1": OrderRecord(order_id="O1", order_no="PO-1", store_id="ST1")},
    )

    result = await ProvenanceResolver(lookups=lookups).resolve_by_order("O1")

    assert result.shipment_id == "SH-new"
    assert result.supplier_id == "S-new"
    assert result.store_id == "ST1"


@pytest.mark.asyncio
async def test_order_without_shipment_resolves_ecommerce_from_tracked_request_item() -> None:
    lookups = _Lookups(
        items=[
            RequestItemRecord(
                item_id="RI3",
                request_id="R3",
                tracking_no="JD333",
                carrier=None,
                source=FulfillmentChannel.ECOMMERCE,
            )
        ],
        requests={"R3": _request("R3", store_id="ST3")},
        order_links={"O3": "R3"},
        orders={"O3": OrderRecord(order_id="O3", order_no="PO-3", store_id=None)},
    )

    result = await ProvenanceResolver(lookups=lookups).resolve_by_order("O3")

    assert result.channel is FulfillmentChannel.ECOMMERCE
    assert result.order_id == "O3"
    assert result.store_id == "ST3"
    assert result.request_id == "R3"


@pytest.mark.asyncio
async def test_order_with_untracked_request_items_is_unknown() -> None:
    lookups = _Lookups(
        items=[
            RequestItemRecord(
                item_id="RI4",
                request_id="R4",
                tracking_no=None,
                carrier=None,
                source=FulfillmentChannel.ECOMMERCE,
            )
        ],
        requests={"R4": _request("R4")},
        order_links={"O4": "R4"},
    )

    assert await ProvenanceResolver(lookups=lookups).resolve_by_order("O4") == UNKNOWN_PROVENANCE


@pytest.mark.asyncio
async def test_resolve_prefers_shipment_id_over_tracking_number() -> None:
    lookups = _Lookups(
        shipments=[
            _shipment("SH1", tracking_no="SF1", supplier_id="S1"),
            _shipment("SH2", tracking_no="SF2", supplier_id="S2"),
        ]
    )

    result = await ProvenanceResolver(lookups=lookups).resolve(
        tracking_no="SF1",
        shipment_id="SH2",
    )

    assert result.supplier_id == "S2"
    assert "shipment_by_tracking:SF1" not in lookups.calls


@pytest.mark.asyncio
async def test_resolve_falls_through_to_order_when_tracking_is_unknown() -> None:
    lookups = _Lookups(
        shipments=[_shipment("SH9", order_id="O9", supplier_id="S9")],
        orders={"O9": OrderRecord(order_id="O9", order_no="PO-9", store_id="ST9")},
    )

    result = await ProvenanceResolver(lookups=lookups).resolve(tracking_no="NOPE", order_id="O9")

    assert result.channel is FulfillmentChannel.SUPPLIER
    assert result.supplier_id == "S9"


@pytest.mark.asyncio
async def test_resolve_is_repeatable_against_unchanged_data() -> None:
    lookups = _Lookups(shipments=[_shipment("SH1", tracking_no="SF1")])
    resolver = ProvenanceResolver(lookups=lookups)

    first = await resolver.resolve(tracking_no="SF1")
    second = await resolver.resolve(tracking_no="SF1")

    assert first == second


@pytest.mark.asyncio
async def test_resolve_without_inputs_is_unknown() -> None:
    assert await ProvenanceResolver(lookups=_Lookups()).resolve() == UNKNOWN_PROVENANCE
