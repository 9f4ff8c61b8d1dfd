from marketplace.core.config import settings
from marketplace.services.gateway.base import PaymentGateway

_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the process-wide gateway selected by ``settings.gateway_mode``."""
    global _gateway
    if _gateway is None:
        if settings.gateway_mode == "http":
            from marketplace.services.gateway.http import HttpPaymentGateway

            _gateway = HttpPaymentGateway()
        else:
            from marketplace.services.gateway.simulated import SimulatedPaymentGateway

            _gateway = SimulatedPaymentGateway()
    return _gateway


def set_gateway(gateway: PaymentGateway | None) -> None:
    """Swap the gateway (tests, or a worker configured differently)."""
    global _gateway
    _gateway = gateway
