"""Payment gateway contract shared by every adapter.

The core treats the gateway as a black box: a charge or a payout either
succeeds with a transaction reference or fails with a reason. Adapters may
raise on transport problems; ``run_with_timeout`` turns every exception and
timeout into a failed ``GatewayResult`` so callers only ever branch on
``success``.
"""

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from marketplace.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    transaction_ref: str | None = None
    reason: str | None = None

    @classmethod
    def ok(cls, transaction_ref: str) -> "GatewayResult":
        return cls(success=True, transaction_ref=transaction_ref)

    @classmethod
    def failed(cls, reason: str) -> "GatewayResult":
        return cls(success=False, reason=reason)


class PaymentGateway(Protocol):
    async def charge(
        self, amount: Decimal, payment_method_ref: str, reference: str,
    ) -> GatewayResult: ...

    async def payout(
        self, amount: Decimal, method: str, details: dict, reference: str,
    ) -> GatewayResult: ...


async def run_with_timeout(
    call: Awaitable[GatewayResult],
    *,
    operation: str,
    reference: str,
    timeout: float | None = None,
) -> GatewayResult:
    """Await a gateway call, converting timeouts and exceptions into failures."""
    timeout = timeout if timeout is not None else settings.gateway_timeout_seconds
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "Gateway %s timed out", operation,
            extra={"reference": reference, "timeout": timeout},
        )
        return GatewayResult.failed(f"Gateway {operation} timed out after {timeout}s")
    except Exception as exc:
        logger.exception("Gateway %s raised", operation, extra={"reference": reference})
        return GatewayResult.failed(f"Gateway {operation} error: {exc}")
