"""Provenance resolution: infer channel, supplier, order and store for a case."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Final

from aftersales_engine.application.ports.provenance_lookup_port import (
    OrderRecord,
    ProvenanceLookupPort,
    RequestForQuoteRecord,
    ShipmentRecord,
)
from aftersales_engine.domain.case_types import FulfillmentChannel
from aftersales_engine.domain.provenance import UNKNOWN_PROVENANCE, ProvenanceResult

logger = logging.getLogger(__name__)

OrderStore = tuple[str | None, str | None]
OrderStoreTier = Callable[[OrderRecord | None, RequestForQuoteRecord | None], OrderStore | None]


def order_store_from_direct_order(
    direct_order: OrderRecord | None,
    request: RequestForQuoteRecord | None,
) -> OrderStore | None:
    """Use the shipment's own order link; its store wins over the request's."""

    if direct_order is None:
        return None
    store_id = direct_order.store_id or (request.store_id if request is not None else None)
    return direct_order.order_id, store_id


def order_store_from_request_orders(
    direct_order: OrderRecord | None,
    request: RequestForQuoteRecord | None,
) -> OrderStore | None:
    """Use the first order linked to the request."""

    if request is None or not request.linked_orders:
        return None
    first_order = request.linked_orders[0]
    return first_order.order_id, first_order.store_id or request.store_id


def order_store_from_request_store(
    direct_order: OrderRecord | None,
    request: RequestForQuoteRecord | None,
) -> OrderStore | None:
    """Fall back to the request's own store when no order is known."""

    if request is None or request.store_id is None:
        return None
    return None, request.store_id


ORDER_STORE_TIERS: Final[tuple[OrderStoreTier, ...]] = (
    order_store_from_direct_order,
    order_store_from_request_orders,
    order_store_from_request_store,
)


def derive_order_and_store(
    *,
    direct_order: OrderRecord | None,
    request: RequestForQuoteRecord | None,
) -> OrderStore:
    """Walk ORDER_STORE_TIERS in priority order and return the first match."""

    for tier in ORDER_STORE_TIERS:
        derived = tier(direct_order, request)
        if derived is not None:
            return derived
    return None, None


class ProvenanceResolver:
    """Resolve a tracking number, shipment or order to its fulfillment provenance.

    Read-only: every call queries the lookup port afresh and returns a new
    value object, so repeated calls against unchanged data agree.
    """

    def __init__(self, *, lookups: ProvenanceLookupPort) -> None:
        self._lookups = lookups

    async def resolve(
        self,
        *,
        tracking_no: str | None = None,
        shipment_id: str | None = None,
        order_id: str | None = None,
    ) -> ProvenanceResult:
        """Try tracking number, shipment id, then order id; first known channel wins."""

        attempts: list[Callable[[], Awaitable[ProvenanceResult]]] = []
        if tracking_no and tracking_no.strip() and not shipment_id:
            attempts.append(lambda: self.resolve_by_tracking_number(tracking_no))
        if shipment_id:
            attempts.append(lambda: self.resolve_by_shipment_id(shipment_id))
        if order_id:
            attempts.append(lambda: self.resolve_by_order(order_id))

        for attempt in attempts:
            result = await attempt()
            if result.is_known:
                return result
        return UNKNOWN_PROVENANCE

    async def resolve_by_tracking_number(self, tracking_no: str) -> ProvenanceResult:
        """Resolve via shipment table first, then e-commerce request items."""

        normalized = tracking_no.strip()
        if not normalized:
            return UNKNOWN_PROVENANCE

        shipment = await self._lookups.find_shipment_by_tracking_no(tracking_no=normalized)
        if shipment is not None:
            return await self._from_shipment(shipment)

        item = await self._lookups.find_request_item_by_tracking_no(
            tracking_no=normalized,
            source=FulfillmentChannel.ECOMMERCE,
        )
        if item is not None:
            request = await self._lookups.get_request(request_id=item.request_id)
            order_id, store_id = derive_order_and_store(direct_order=None, request=request)
            return ProvenanceResult(
                channel=FulfillmentChannel.ECOMMERCE,
                supplier_id=None,
                order_id=order_id,
                store_id=store_id,
                shipment_id=None,
                request_id=item.request_id,
            )

        logger.info("provenance_unknown tracking_no=%s", normalized)
        return UNKNOWN_PROVENANCE

    async def resolve_by_shipment_id(self, shipment_id: str) -> ProvenanceResult:
        """Resolve from an explicitly referenced shipment."""

        shipment = await self._lookups.find_shipment_by_id(shipment_id=shipment_id)
        if shipment is None:
            return UNKNOWN_PROVENANCE
        return await self._from_shipment(shipment)

    async def resolve_by_order(self, order_id: str) -> ProvenanceResult:
        """Resolve from the order's latest shipment, else its linked request items."""

        order = await self._lookups.get_order(order_id=order_id)
        shipment = await self._lookups.find_shipment_by_order_id(order_id=order_id)
        if shipment is not None:
            request = await self._request_for(shipment.request_id)
            if request is None:
                request = await self._lookups.find_order_request_link(order_id=order_id)
            _, store_id = derive_order_and_store(direct_order=order, request=request)
            return ProvenanceResult(
                channel=shipment.source,
                supplier_id=_supplier_for(shipment),
                order_id=order_id,
                store_id=store_id,
                shipment_id=shipment.shipment_id,
                request_id=request.request_id if request is not None else None,
            )

        request = await self._lookups.find_order_request_link(order_id=order_id)
        if request is not None and await self._lookups.request_has_tracked_item(
            request_id=request.request_id,
            source=FulfillmentChannel.ECOMMERCE,
        ):
            _, store_id = derive_order_and_store(direct_order=order, request=request)
            return ProvenanceResult(
                channel=FulfillmentChannel.ECOMMERCE,
                supplier_id=None,
                order_id=order_id,
                store_id=store_id,
                shipment_id=None,
                request_id=request.request_id,
            )

        return UNKNOWN_PROVENANCE

    async def _from_shipment(self, shipment: ShipmentRecord) -> ProvenanceResult:
        direct_order = (
            await self._lookups.get_order(order_id=shipment.order_id)
            if shipment.order_id is not None
            else None
        )
        request = await self._request_for(shipment.request_id)
        order_id, store_id = derive_order_and_store(direct_order=direct_order, request=request)
        return ProvenanceResult(
            channel=shipment.source,
            supplier_id=_supplier_for(shipment),
            order_id=order_id,
            store_id=store_id,
            shipment_id=shipment.shipment_id,
            request_id=shipment.request_id,
        )

    async def _request_for(self, request_id: str | None) -> RequestForQuoteRecord | None:
        if request_id is None:
            return None
        return await self._lookups.get_request(request_id=request_id)


def _supplier_for(shipment: ShipmentRecord) -> str | None:
    if shipment.source is FulfillmentChannel.SUPPLIER:
        return shipment.supplier_id
    return None
