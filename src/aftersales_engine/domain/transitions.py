"""Deterministic transition guards for after-sales case statuses."""

from __future__ import annotations

from typing import Final

from aftersales_engine.domain.case_status import TERMINAL_STATUSES, CaseStatus
from aftersales_engine.domain.errors import CaseStateViolationError


class InvalidCaseTransitionError(CaseStateViolationError):
    """Raised when an attempted case state transition is not allowed."""


# Operator-driven transitions. Manual overrides bypass this table and are
# only restricted by TERMINAL_STATUSES.
_ALLOWED_TRANSITIONS: Final[dict[CaseStatus, frozenset[CaseStatus]]] = {
    CaseStatus.OPENED: frozenset({CaseStatus.EXECUTING}),
    CaseStatus.EXECUTING: frozenset({CaseStatus.INSPECTING}),
    CaseStatus.INSPECTING: frozenset({CaseStatus.RESOLVED, CaseStatus.EXECUTING}),
    CaseStatus.RESOLVED: frozenset(),
    CaseStatus.CLOSED: frozenset(),
    CaseStatus.CANCELLED: frozenset(),
}


def can_transition(from_status: CaseStatus, to_status: CaseStatus) -> bool:
    """Return whether the transition is valid for the case state machine."""

    allowed_targets = _ALLOWED_TRANSITIONS[from_status]
    return to_status in allowed_targets


def assert_transition(from_status: CaseStatus, to_status: CaseStatus) -> None:
    """Assert a transition is allowed, else raise deterministic domain error."""

    if not can_transition(from_status, to_status):
        allowed_sources = [
            status for status, targets in _ALLOWED_TRANSITIONS.items() if to_status in targets
        ]
        raise InvalidCaseTransitionError(
            f"Invalid case status transition: {from_status.value} -> {to_status.value}",
            current_status=from_status,
            required_statuses=allowed_sources,
        )


def require_status(current: CaseStatus, *, allowed: frozenset[CaseStatus], action: str) -> None:
    """Raise a state violation naming the required statuses when `current` is not allowed."""

    if current in allowed:
        return
    expected = ", ".join(sorted(status.value for status in allowed))
    raise CaseStateViolationError(
        f"cannot {action} while case is {current.value}; required status: {expected}",
        current_status=current,
        required_statuses=allowed,
    )


def require_not_terminal(current: CaseStatus, *, action: str) -> None:
    """Reject any action against a case already in a terminal status."""

    if current not in TERMINAL_STATUSES:
        return
    raise CaseStateViolationError(
        f"cannot {action} while case is {current.value}; case is in a terminal status",
        current_status=current,
        required_statuses=frozenset(CaseStatus) - TERMINAL_STATUSES,
    )
