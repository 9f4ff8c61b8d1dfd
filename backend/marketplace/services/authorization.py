"""Capability checks at the service boundary.

State machines decide *whether* an action is legal for an actor role; the
helpers here decide *which* role a concrete user plays on a record.
"""

from marketplace.core.errors import AuthorizationError
from marketplace.models.user import User


def ensure_role(user: User, *roles: str) -> None:
    if user.role not in roles:
        raise AuthorizationError(
            f"This action requires the {' or '.join(repr(r) for r in roles)} role"
        )


def party_role(record, user: User) -> str | None:
    """Return ``"brand"``/``"creator"`` if ``user`` is a party of ``record``."""
    if getattr(record, "brand_id", None) == user.id:
        return "brand"
    if getattr(record, "creator_id", None) == user.id:
        return "creator"
    return None


def ensure_party(record, user: User, *, allow_admin: bool = False) -> str:
    """Return the actor role of ``user`` on an offer or contract, or raise."""
    role = party_role(record, user)
    if role is not None:
        return role
    if allow_admin and user.is_admin:
        return "admin"
    raise AuthorizationError("You are not a party to this record")


def ensure_brand_of(record, user: User) -> None:
    if record.brand_id != user.id:
        raise AuthorizationError("Only the brand of this record can perform this action")


def ensure_creator_of(record, user: User) -> None:
    if record.creator_id != user.id:
        raise AuthorizationError("Only the creator of this record can perform this action")
