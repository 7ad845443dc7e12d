"""Carrier detection from tracking-number prefixes."""

from __future__ import annotations

from typing import Final

UNKNOWN_CARRIER: Final[str] = "unknown"

# Longer prefixes first so "YTO" wins over "YT".
_CARRIER_PREFIXES: Final[tuple[tuple[str, str], ...]] = (
    ("YUNDA", "yunda"),
    ("HTKY", "huitong"),
    ("JDX", "jingdong"),
    ("YTO", "yuantong"),
    ("ZTO", "zhongtong"),
    ("STO", "shentong"),
    ("DBL", "debang"),
    ("SF", "shunfeng"),
    ("YT", "yuantong"),
    ("ZT", "zhongtong"),
    ("ST", "shentong"),
    ("YD", "yunda"),
    ("HT", "huitong"),
    ("DB", "debang"),
    ("JD", "jingdong"),
)


def detect_carrier(tracking_no: str) -> str:
    """Return carrier code inferred from a tracking number, or `unknown`."""

    normalized = tracking_no.strip().upper()
    if not normalized:
        return UNKNOWN_CARRIER
    for prefix, carrier in _CARRIER_PREFIXES:
        if normalized.startswith(prefix):
            return carrier
    return UNKNOWN_CARRIER
