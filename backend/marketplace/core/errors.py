"""Domain exception taxonomy.

Every error carries an HTTP status and a stable machine-readable ``code`` so
the API layer can return structured failures without inspecting messages.
Gateway failures are normally absorbed into persisted ``*_failed`` state;
``GatewayError`` only escapes from the adapter itself.
"""

from fastapi import status


class MarketplaceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "error"

    def __init__(self, detail: str, *, code: str | None = None):
        self.detail = detail
        if code is not None:
            self.code = code
        super().__init__(detail)


class ValidationError(MarketplaceError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class InsufficientBalanceError(ValidationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "insufficient_balance"

    def __init__(self, available, requested):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient available balance: {available} available, {requested} requested"
        )


class PreconditionError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "precondition_failed"


class NotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class AuthorizationError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class GatewayError(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "gateway_error"


class ConcurrencyError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "concurrent_modification"


class InvalidTransitionError(PreconditionError):
    """Raised when a state machine transition is not allowed."""

    code = "invalid_transition"

    def __init__(self, entity: str, current: str, action: str, actor: str | None = None):
        self.entity = entity
        self.current = current
        self.action = action
        self.actor = actor
        msg = f"Invalid {entity} transition: {current} + {action}"
        if actor:
            msg += f" by {actor}"
        super().__init__(msg)
