"""Decide who handles a newly opened case from its resolved provenance."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from aftersales_engine.application.ports.provenance_lookup_port import (
    ProvenanceLookupPort,
    RequestForQuoteRecord,
)
from aftersales_engine.application.ports.user_directory_port import UserDirectoryPort
from aftersales_engine.domain.auth.roles import Role
from aftersales_engine.domain.case_types import AssignmentRoute, FulfillmentChannel
from aftersales_engine.domain.provenance import (
    MANUAL_ASSIGNMENT,
    AssignmentDecision,
    ProvenanceResult,
)

logger = logging.getLogger(__name__)

NO_ACTIVE_BUYER_WARNING = "no active buyer available; case left for manual triage"


class ActorAssignmentResolver:
    """Compute an AssignmentDecision without mutating anything.

    Lookup failures never escape: they degrade the decision to MANUAL so case
    creation still succeeds.
    """

    def __init__(
        self,
        *,
        lookups: ProvenanceLookupPort,
        directory: UserDirectoryPort,
    ) -> None:
        self._lookups = lookups
        self._directory = directory

    async def resolve_assignment(self, provenance: ProvenanceResult) -> AssignmentDecision:
        """Return AUTO_SUPPLIER, AUTO_BUYER or MANUAL routing for the provenance."""

        try:
            return await self._resolve(provenance)
        except Exception as exc:
            logger.warning(
                "case_assignment_degraded_to_manual channel=%s order_id=%s error=%s",
                provenance.channel.value,
                provenance.order_id,
                exc,
            )
            return AssignmentDecision(
                route=AssignmentRoute.MANUAL,
                warning=f"automatic assignment failed: {exc}",
            )

    async def _resolve(self, provenance: ProvenanceResult) -> AssignmentDecision:
        if provenance.channel is FulfillmentChannel.SUPPLIER and provenance.supplier_id:
            return AssignmentDecision(
                route=AssignmentRoute.AUTO_SUPPLIER,
                actor_id=provenance.supplier_id,
            )

        if provenance.channel is FulfillmentChannel.ECOMMERCE:
            buyer_id = await self._find_ecommerce_handler(provenance)
            if buyer_id is not None:
                return AssignmentDecision(route=AssignmentRoute.AUTO_BUYER, actor_id=buyer_id)
            logger.warning(
                "case_assignment_no_active_buyer order_id=%s request_id=%s",
                provenance.order_id,
                provenance.request_id,
            )
            return AssignmentDecision(
                route=AssignmentRoute.MANUAL,
                warning=NO_ACTIVE_BUYER_WARNING,
            )

        return MANUAL_ASSIGNMENT

    async def _find_ecommerce_handler(self, provenance: ProvenanceResult) -> str | None:
        request_loaders: list[Callable[[], Awaitable[RequestForQuoteRecord | None]]] = []
        if provenance.request_id is not None:
            request_id = provenance.request_id
            request_loaders.append(lambda: self._lookups.get_request(request_id=request_id))
        if provenance.order_id is not None:
            order_id = provenance.order_id
            request_loaders.append(
                lambda: self._lookups.find_order_request_link(order_id=order_id)
            )

        for load_request in request_loaders:
            request = await load_request()
            if request is None:
                continue
            buyer_id = await self._buyer_for_request(request)
            if buyer_id is not None:
                return buyer_id

        return await self._first_active_buyer()

    async def _buyer_for_request(self, request: RequestForQuoteRecord) -> str | None:
        """Return the requester when a buyer; any active buyer when opened by an admin."""

        if request.requester_id is None:
            return None
        requester = await self._directory.find_by_id(user_id=request.requester_id)
        if requester is None:
            return None
        if requester.role is Role.BUYER:
            return requester.user_id
        if requester.role is Role.ADMIN:
            return await self._first_active_buyer()
        return None

    async def _first_active_buyer(self) -> str | None:
        buyers = await self._directory.find_active_users_by_role(role=Role.BUYER)
        if not buyers:
            return None
        return buyers[0].user_id
