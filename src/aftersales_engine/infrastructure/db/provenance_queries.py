"""SQLAlchemy read-only queries backing provenance resolution."""

from __future__ import annotations

from datetime import datetime
from typing import cast

import sqlalchemy as sa
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aftersales_engine.application.ports.provenance_lookup_port import (
    OrderRecord,
    ProvenanceLookupPort,
    RequestForQuoteRecord,
    RequestItemRecord,
    ShipmentRecord,
)
from aftersales_engine.domain.case_types import FulfillmentChannel
from aftersales_engine.infrastructure.db.metadata import (
    order_requests,
    orders,
    request_items,
    requests_for_quote,
    shipments,
    stores,
)

_SHIPMENT_COLUMNS = (
    shipments.c.shipment_id,
    shipments.c.tracking_no,
    shipments.c.carrier,
    shipments.c.source,
    shipments.c.supplier_id,
    shipments.c.order_id,
    shipments.c.request_item_id,
    request_items.c.request_id,
    shipments.c.created_at,
)


def _to_shipment_record(row: RowMapping) -> ShipmentRecord:
    return ShipmentRecord(
        shipment_id=cast(str, row["shipment_id"]),
        tracking_no=cast(str | None, row["tracking_no"]),
        carrier=cast(str | None, row["carrier"]),
        source=FulfillmentChannel(cast(str, row["source"])),
        supplier_id=cast(str | None, row["supplier_id"]),
        order_id=cast(str | None, row["order_id"]),
        request_item_id=cast(str | None, row["request_item_id"]),
        request_id=cast(str | None, row["request_id"]),
        created_at=cast(datetime, row["created_at"]),
    )


def _to_order_record(row: RowMapping) -> OrderRecord:
    return OrderRecord(
        order_id=cast(str, row["order_id"]),
        order_no=cast(str, row["order_no"]),
        store_id=cast(str | None, row["store_id"]),
    )


def _shipment_select() -> sa.Select[tuple[object, ...]]:
    return sa.select(*_SHIPMENT_COLUMNS).select_from(
        shipments.outerjoin(
            request_items,
            request_items.c.item_id == shipments.c.request_item_id,
        )
    )


class SqlAlchemyProvenanceQueries(ProvenanceLookupPort):
    """Provenance lookups over shipments, orders and requests for quote."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_shipment_by_tracking_no(self, *, tracking_no: str) -> ShipmentRecord | None:
        """Return the earliest shipment carrying the tracking number."""

        statement = (
            _shipment_select()
            .where(shipments.c.tracking_no == tracking_no)
            .order_by(shipments.c.created_at.asc(), shipments.c.shipment_id.asc())
            .limit(1)
        )
        return await self._first_shipment(statement)

    async def find_shipment_by_id(self, *, shipment_id: str) -> ShipmentRecord | None:
        """Return shipment by id."""

        statement = _shipment_select().where(shipments.c.shipment_id == shipment_id)
        return await self._first_shipment(statement)

    async def find_shipment_by_order_id(self, *, order_id: str) -> ShipmentRecord | None:
        """Return the most recently created shipment for the order."""

        statement = (
            _shipment_select()
            .where(shipments.c.order_id == order_id)
            .order_by(shipments.c.created_at.desc(), shipments.c.shipment_id.desc())
            .limit(1)
        )
        return await self._first_shipment(statement)

    async def find_request_item_by_tracking_no(
        self,
        *,
        tracking_no: str,
        source: FulfillmentChannel,
    ) -> RequestItemRecord | None:
        """Return a request item with the tracking number and recorded source."""

        statement = (
            sa.select(request_items)
            .where(
                request_items.c.tracking_no == tracking_no,
                request_items.c.source == source.value,
            )
            .order_by(request_items.c.created_at.asc(), request_items.c.item_id.asc())
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return RequestItemRecord(
            item_id=cast(str, row["item_id"]),
            request_id=cast(str, row["request_id"]),
            tracking_no=cast(str | None, row["tracking_no"]),
            carrier=cast(str | None, row["carrier"]),
            source=FulfillmentChannel(cast(str, row["source"])),
        )

    async def find_order_request_link(self, *, order_id: str) -> RequestForQuoteRecord | None:
        """Return the first request linked to the order."""

        statement = (
            sa.select(order_requests.c.request_id)
            .where(order_requests.c.order_id == order_id)
            .order_by(order_requests.c.created_at.asc(), order_requests.c.request_id.asc())
            .limit(1)
        )
        async with self._session_factory() as session:
            request_id = (await session.execute(statement)).scalar_one_or_none()

        if request_id is None:
            return None
        return await self.get_request(request_id=cast(str, request_id))

    async def get_request(self, *, request_id: str) -> RequestForQuoteRecord | None:
        """Return request by id with its linked orders in link order."""

        request_statement = sa.select(requests_for_quote).where(
            requests_for_quote.c.request_id == request_id
        )
        linked_orders_statement = (
            sa.select(orders.c.order_id, orders.c.order_no, orders.c.store_id)
            .select_from(
                order_requests.join(orders, orders.c.order_id == order_requests.c.order_id)
            )
            .where(order_requests.c.request_id == request_id)
            .order_by(order_requests.c.created_at.asc(), order_requests.c.order_id.asc())
        )

        async with self._session_factory() as session:
            request_row = (await session.execute(request_statement)).mappings().first()
            if request_row is None:
                return None
            order_rows = (await session.execute(linked_orders_statement)).mappings().all()

        return RequestForQuoteRecord(
            request_id=cast(str, request_row["request_id"]),
            request_no=cast(str, request_row["request_no"]),
            store_id=cast(str | None, request_row["store_id"]),
            requester_id=cast(str | None, request_row["requester_id"]),
            linked_orders=tuple(_to_order_record(row) for row in order_rows),
        )

    async def request_has_tracked_item(
        self,
        *,
        request_id: str,
        source: FulfillmentChannel,
    ) -> bool:
        """Return whether the request has an item of `source` with a tracking number."""

        statement = sa.select(
            sa.exists().where(
                request_items.c.request_id == request_id,
                request_items.c.source == source.value,
                request_items.c.tracking_no.is_not(None),
                request_items.c.tracking_no != "",
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return bool(result.scalar_one())

    async def get_order(self, *, order_id: str) -> OrderRecord | None:
        """Return order by id."""

        statement = sa.select(orders.c.order_id, orders.c.order_no, orders.c.store_id).where(
            orders.c.order_id == order_id
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_order_record(row)

    async def store_exists(self, *, store_id: str) -> bool:
        """Return whether the store exists."""

        statement = sa.select(sa.exists().where(stores.c.store_id == store_id))
        async with self._session_factory() as session:
            result = await session.execute(statement)

        return bool(result.scalar_one())

    async def _first_shipment(
        self,
        statement: sa.Select[tuple[object, ...]],
    ) -> ShipmentRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_shipment_record(row)
