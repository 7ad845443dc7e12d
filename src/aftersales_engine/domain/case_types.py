"""Closed enums describing after-sales case attributes and provenance."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class IssueType(StrEnum):
    """After-sales issue categories."""

    DAMAGED = "DAMAGED"
    MISSING = "MISSING"
    WRONG_ITEM = "WRONG_ITEM"
    REPAIR = "REPAIR"
    CLAIM = "CLAIM"
    DISCOUNT = "DISCOUNT"
    SCRAP = "SCRAP"


class CasePriority(StrEnum):
    """Declared case urgency."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class FulfillmentChannel(StrEnum):
    """Channel a shipment originated from, as inferred by provenance resolution."""

    SUPPLIER = "SUPPLIER"
    ECOMMERCE = "ECOMMERCE"
    UNKNOWN = "UNKNOWN"


class AssignmentRoute(StrEnum):
    """How a newly opened case is routed to its first handler."""

    AUTO_SUPPLIER = "AUTO_SUPPLIER"
    AUTO_BUYER = "AUTO_BUYER"
    MANUAL = "MANUAL"


class CaseLogAction(StrEnum):
    """Action names written to the append-only case log."""

    OPENED = "OPENED"
    EXECUTING = "EXECUTING"
    UPDATED = "UPDATED"
    INSPECTING = "INSPECTING"
    RESOLVED = "RESOLVED"
    REPLACEMENT_SHIPPED = "REPLACEMENT_SHIPPED"
    ATTACHMENT_UPLOADED = "ATTACHMENT_UPLOADED"


ISSUE_TYPE_LABELS: Final[dict[IssueType, str]] = {
    IssueType.DAMAGED: "Damaged packaging",
    IssueType.MISSING: "Missing parts",
    IssueType.WRONG_ITEM: "Wrong item shipped",
    IssueType.REPAIR: "Repair / exchange",
    IssueType.CLAIM: "Price difference claim",
    IssueType.DISCOUNT: "Used sold as new",
    IssueType.SCRAP: "Scrap",
}

PRIORITY_LABELS: Final[dict[CasePriority, str]] = {
    CasePriority.LOW: "Low",
    CasePriority.MEDIUM: "Medium",
    CasePriority.HIGH: "High",
    CasePriority.URGENT: "Urgent",
}

EXCHANGE_DISPOSITION = "exchange"


def is_exchange_case(*, issue_type: IssueType, inventory_disposition: str | None) -> bool:
    """Return whether a case may ship a replacement item."""

    if issue_type is IssueType.REPAIR:
        return True
    if inventory_disposition is None:
        return False
    return inventory_disposition.strip().lower() == EXCHANGE_DISPOSITION
