"""Human-readable case and shipment number generation."""

from __future__ import annotations

import secrets
from datetime import datetime

CASE_NUMBER_PREFIX = "RMA"
REPLACEMENT_SHIPMENT_PREFIX = "REPLACE"


def generate_case_number(*, now: datetime) -> str:
    """Return `RMA-<epoch millis>-<4 hex>` for the given opening timestamp."""

    return _numbered(CASE_NUMBER_PREFIX, now)


def generate_replacement_shipment_number(*, now: datetime) -> str:
    """Return `REPLACE-<epoch millis>-<4 hex>` for a replacement shipment."""

    return _numbered(REPLACEMENT_SHIPMENT_PREFIX, now)


def _numbered(prefix: str, now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return f"{prefix}-{millis}-{secrets.token_hex(2).upper()}"
