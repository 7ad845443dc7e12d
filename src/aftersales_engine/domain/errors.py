"""Error taxonomy raised by after-sales engine operations."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from aftersales_engine.domain.auth.roles import Role
from aftersales_engine.domain.case_status import CaseStatus


class CaseValidationError(ValueError):
    """Raised when required input is missing or malformed."""

    def __init__(self, *, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class CaseNotFoundError(LookupError):
    """Raised when a referenced case does not exist."""

    def __init__(self, *, case_id: UUID) -> None:
        super().__init__(f"case not found: {case_id}")
        self.case_id = case_id


class CaseReferenceNotFoundError(LookupError):
    """Raised when a referenced order, store, shipment or user does not exist."""

    def __init__(self, *, resource_type: str, resource_id: str) -> None:
        super().__init__(f"{resource_type} not found: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id


class CaseGuardViolationError(ValueError):
    """Raised when a transition precondition fails against the current case."""

    def __init__(
        self,
        reason: str,
        *,
        current_status: CaseStatus | None = None,
        required_statuses: Iterable[CaseStatus] = (),
        required_roles: Iterable[Role] = (),
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.current_status = current_status
        self.required_statuses = tuple(sorted(required_statuses))
        self.required_roles = tuple(sorted(required_roles))


class CaseRoleViolationError(CaseGuardViolationError):
    """Raised when the acting user's role or ownership does not permit the action."""


class CaseStateViolationError(CaseGuardViolationError):
    """Raised when the case is not in a state that permits the action."""


class CaseTransitionConflictError(RuntimeError):
    """Raised when a concurrent transition changed the case first."""

    def __init__(self, *, case_id: UUID, current_status: CaseStatus) -> None:
        super().__init__(
            f"case {case_id} was changed concurrently; current status: {current_status.value}"
        )
        self.case_id = case_id
        self.current_status = current_status


class DuplicateCaseNumberError(ValueError):
    """Raised when a generated case number collides with an existing case."""


class DuplicateShipmentNumberError(ValueError):
    """Raised when a generated replacement shipment number is already taken."""
