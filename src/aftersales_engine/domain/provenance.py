"""Value objects produced by provenance resolution and actor assignment."""

from __future__ import annotations

from dataclasses import dataclass

from aftersales_engine.domain.case_types import AssignmentRoute, FulfillmentChannel


@dataclass(frozen=True)
class ProvenanceResult:
    """Inferred origin of a shipment or order.

    `request_id` names the request-for-quote walked while resolving, so the
    actor assignment step can look up its requester without repeating the
    fallback chain.
    """

    channel: FulfillmentChannel
    supplier_id: str | None = None
    order_id: str | None = None
    store_id: str | None = None
    shipment_id: str | None = None
    request_id: str | None = None

    @property
    def is_known(self) -> bool:
        return self.channel is not FulfillmentChannel.UNKNOWN


UNKNOWN_PROVENANCE = ProvenanceResult(channel=FulfillmentChannel.UNKNOWN)


@dataclass(frozen=True)
class AssignmentDecision:
    """Routing decision computed once before a case is persisted."""

    route: AssignmentRoute
    actor_id: str | None = None
    warning: str | None = None


MANUAL_ASSIGNMENT = AssignmentDecision(route=AssignmentRoute.MANUAL)
