"""In-process gateway used in development and tests.

Mimics the payment simulator of the legacy platform: a short artificial
delay, a generated transaction id, and an optional random failure rate.
"""

import asyncio
import logging
import random
import time
from decimal import Decimal

from marketplace.core.config import settings
from marketplace.services.gateway.base import GatewayResult

logger = logging.getLogger(__name__)


class SimulatedPaymentGateway:
    def __init__(
        self,
        delay: float | None = None,
        failure_rate: float | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.delay = settings.gateway_simulated_delay_seconds if delay is None else delay
        self.failure_rate = (
            settings.gateway_simulated_failure_rate if failure_rate is None else failure_rate
        )
        self._rng = rng or random.Random()

    def _should_fail(self) -> bool:
        return self.failure_rate > 0 and self._rng.random() < self.failure_rate

    async def charge(
        self, amount: Decimal, payment_method_ref: str, reference: str,
    ) -> GatewayResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._should_fail():
            logger.info("SIMULATION: charge declined", extra={"reference": reference})
            return GatewayResult.failed("Simulated charge declined")
        tx = f"PAY_{int(time.time())}_{reference}_{self._rng.randint(1000, 9999)}"
        logger.info(
            "SIMULATION: charge captured",
            extra={"reference": reference, "amount": str(amount), "transaction_id": tx},
        )
        return GatewayResult.ok(tx)

    async def payout(
        self, amount: Decimal, method: str, details: dict, reference: str,
    ) -> GatewayResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self._should_fail():
            logger.info("SIMULATION: payout failed", extra={"reference": reference})
            return GatewayResult.failed("Simulated withdrawal failure")
        tx = f"WD_{int(time.time())}_{reference}"
        logger.info(
            "SIMULATION: payout sent",
            extra={"reference": reference, "amount": str(amount), "method": method, "transaction_id": tx},
        )
        return GatewayResult.ok(tx)
