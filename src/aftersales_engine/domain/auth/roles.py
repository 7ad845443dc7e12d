"""Role enum for back-office users."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class Role(StrEnum):
    """Roles recognised by the after-sales engine."""

    ADMIN = "admin"
    BUYER = "buyer"
    SUPPLIER = "supplier"
    STORE = "store"


# Roles allowed to triage, assign, review and override cases.
CASE_MANAGER_ROLES: Final[frozenset[Role]] = frozenset({Role.ADMIN, Role.BUYER})
