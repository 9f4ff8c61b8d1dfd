"""Role-based access control dependencies."""

from fastapi import Depends

from marketplace.core.security import get_current_user
from marketplace.models.user import User
from marketplace.services.authorization import ensure_role


def require_role(*roles: str):
    """Return a FastAPI dependency that enforces one of the given user roles."""

    async def _check(user: User = Depends(get_current_user)) -> User:
        ensure_role(user, *roles)
        return user

    return _check


require_brand = require_role("brand")
require_creator = require_role("creator")
require_admin = require_role("admin")
