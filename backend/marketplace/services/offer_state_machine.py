"""Offer state machine: pure logic, no DB dependency.

An offer is a time-boxed proposal from a brand to a creator. Only a pending
offer that has not passed ``expires_at`` can move; expiry itself is derived
at read time and persisted only by the explicit stale-offer sweep.
"""

from datetime import datetime, timezone
from enum import StrEnum

from marketplace.core.errors import InvalidTransitionError


class OfferStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class OfferAction(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    EXPIRE = "expire"


class OfferActor(StrEnum):
    BRAND = "brand"
    CREATOR = "creator"
    SYSTEM = "system"


TRANSITIONS: dict[tuple[OfferStatus, OfferAction], tuple[OfferStatus, frozenset[OfferActor]]] = {
    (OfferStatus.PENDING, OfferAction.ACCEPT): (
        OfferStatus.ACCEPTED,
        frozenset({OfferActor.CREATOR}),
    ),
    (OfferStatus.PENDING, OfferAction.REJECT): (
        OfferStatus.REJECTED,
        frozenset({OfferActor.CREATOR}),
    ),
    (OfferStatus.PENDING, OfferAction.CANCEL): (
        OfferStatus.CANCELLED,
        frozenset({OfferActor.BRAND}),
    ),
    (OfferStatus.PENDING, OfferAction.EXPIRE): (
        OfferStatus.EXPIRED,
        frozenset({OfferActor.SYSTEM}),
    ),
}

TERMINAL_STATUSES: frozenset[OfferStatus] = frozenset({
    OfferStatus.ACCEPTED,
    OfferStatus.REJECTED,
    OfferStatus.CANCELLED,
    OfferStatus.EXPIRED,
})


def _as_aware(value: datetime) -> datetime:
    # Some drivers hand back naive UTC timestamps
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(expires_at: datetime | None, now: datetime | None = None) -> bool:
    """An offer is expired once ``now`` reaches ``expires_at``."""
    if expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return _as_aware(now) >= _as_aware(expires_at)


def can_be_accepted(status: str, expires_at: datetime | None, now: datetime | None = None) -> bool:
    """Pending and not yet expired. Reject and cancel share this predicate."""
    return status == OfferStatus.PENDING and not is_expired(expires_at, now)


def validate_transition(
    current: str,
    action: str,
    actor: str,
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> OfferStatus:
    """Validate and return the new status for an offer transition.

    User-initiated actions on an expired offer are refused; only the system
    ``expire`` action is valid once ``expires_at`` has passed.
    """
    try:
        current_status = OfferStatus(current)
        offer_action = OfferAction(action)
        offer_actor = OfferActor(actor)
    except ValueError:
        raise InvalidTransitionError("offer", current, action, actor)

    key = (current_status, offer_action)
    if key not in TRANSITIONS:
        raise InvalidTransitionError("offer", current, action, actor)

    new_status, allowed_actors = TRANSITIONS[key]
    if offer_actor not in allowed_actors:
        raise InvalidTransitionError("offer", current, action, actor)

    expired = is_expired(expires_at, now)
    if offer_action == OfferAction.EXPIRE and not expired:
        raise InvalidTransitionError("offer", current, action, actor)
    if offer_action != OfferAction.EXPIRE and expired:
        raise InvalidTransitionError("offer", "expired", action, actor)

    return new_status


def get_available_actions(
    current: str, actor: str, expires_at: datetime | None = None, now: datetime | None = None
) -> list[str]:
    """Return the action names ``actor`` may perform on an offer right now."""
    try:
        current_status = OfferStatus(current)
        actor_enum = OfferActor(actor)
    except ValueError:
        return []

    if current_status in TERMINAL_STATUSES:
        return []

    expired = is_expired(expires_at, now)
    actions: list[str] = []
    for (status, action), (_, allowed_actors) in TRANSITIONS.items():
        if status != current_status or actor_enum not in allowed_actors:
            continue
        if (action == OfferAction.EXPIRE) != expired:
            continue
        actions.append(action.value)
    return actions
