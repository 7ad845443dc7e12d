"""Acting-user resolution from trusted gateway headers."""

from __future__ import annotations

from aftersales_engine.domain.actor import CaseActor
from aftersales_engine.domain.auth.roles import Role


class MissingActorError(PermissionError):
    """Raised when the gateway did not forward an acting user."""


class InvalidActorError(PermissionError):
    """Raised when forwarded actor headers are malformed."""


def resolve_actor(
    *,
    actor_id_header: str | None,
    actor_role_header: str | None,
    actor_store_header: str | None = None,
) -> CaseActor:
    """Build CaseActor from `X-Actor-Id`, `X-Actor-Role` and `X-Actor-Store-Id`."""

    if actor_id_header is None or not actor_id_header.strip():
        raise MissingActorError("missing acting user")
    if actor_role_header is None or not actor_role_header.strip():
        raise MissingActorError("missing acting user role")

    try:
        role = Role(actor_role_header.strip().lower())
    except ValueError as exc:
        raise InvalidActorError(f"unknown role: {actor_role_header}") from exc

    store_id = None
    if actor_store_header is not None and actor_store_header.strip():
        store_id = actor_store_header.strip()
    return CaseActor(user_id=actor_id_header.strip(), role=role, store_id=store_id)
