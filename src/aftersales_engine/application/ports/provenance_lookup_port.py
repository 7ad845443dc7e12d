"""Read-only lookup port over shipments, orders and requests for quote."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from aftersales_engine.domain.case_types import FulfillmentChannel


@dataclass(frozen=True)
class OrderRecord:
    """Order fields needed to derive provenance."""

    order_id: str
    order_no: str
    store_id: str | None


@dataclass(frozen=True)
class ShipmentRecord:
    """Shipment fields needed to derive provenance.

    `source` is the channel recorded when the shipment was created and is
    always SUPPLIER or ECOMMERCE.
    """

    shipment_id: str
    tracking_no: str | None
    carrier: str | None
    source: FulfillmentChannel
    supplier_id: str | None
    order_id: str | None
    request_item_id: str | None
    request_id: str | None
    created_at: datetime


@dataclass(frozen=True)
class RequestItemRecord:
    """Request-for-quote line item carrying its own fulfillment source."""

    item_id: str
    request_id: str
    tracking_no: str | None
    carrier: str | None
    source: FulfillmentChannel


@dataclass(frozen=True)
class RequestForQuoteRecord:
    """Request-for-quote with its linked orders in link order."""

    request_id: str
    request_no: str
    store_id: str | None
    requester_id: str | None
    linked_orders: tuple[OrderRecord, ...] = ()


class ProvenanceLookupPort(Protocol):
    """Async lookup contract consumed by the provenance resolver."""

    async def find_shipment_by_tracking_no(self, *, tracking_no: str) -> ShipmentRecord | None:
        """Return the first shipment carrying the tracking number."""

    async def find_shipment_by_id(self, *, shipment_id: str) -> ShipmentRecord | None:
        """Return shipment by id."""

    async def find_shipment_by_order_id(self, *, order_id: str) -> ShipmentRecord | None:
        """Return the most recently created shipment for the order."""

    async def find_request_item_by_tracking_no(
        self,
        *,
        tracking_no: str,
        source: FulfillmentChannel,
    ) -> RequestItemRecord | None:
        """Return a request item with the tracking number and recorded source."""

    async def find_order_request_link(self, *, order_id: str) -> RequestForQuoteRecord | None:
        """Return the first request linked to the order."""

    async def get_request(self, *, request_id: str) -> RequestForQuoteRecord | None:
        """Return request by id with its linked orders."""

    async def request_has_tracked_item(
        self,
        *,
        request_id: str,
        source: FulfillmentChannel,
    ) -> bool:
        """Return whether the request has an item of `source` with a tracking number."""

    async def get_order(self, *, order_id: str) -> OrderRecord | None:
        """Return order by id."""

    async def store_exists(self, *, store_id: str) -> bool:
        """Return whether the store exists."""
