"""Async HTTP adapter for a Pagar.me-style payment gateway.

Every charge or payout runs under one total budget
(``gateway_timeout_seconds``, enforced by ``run_with_timeout``). Each HTTP
attempt gets an equal slice of it, with one slice left for the retry
backoff, so the retries always fit inside the budget. All attempts of one
call share an ``Idempotency-Key``, which is what makes retrying a POST
after a read timeout or a 5xx safe.
"""

import base64
import logging
import uuid
from decimal import Decimal

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from marketplace.core.config import settings
from marketplace.services.gateway.base import GatewayResult

logger = logging.getLogger(__name__)


class _RetryableStatus(Exception):
    """Raised on a 5xx so tenacity retries the request."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Gateway returned {response.status_code}")


def attempt_timeout() -> float:
    """Per-attempt HTTP timeout that keeps every retry inside the total budget."""
    return settings.gateway_timeout_seconds / (settings.gateway_retry_attempts + 1)


def _to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def _idempotency_key(reference: str) -> str:
    # New per call: a later retry_contract_payment must not replay an old decline
    return f"{reference}:{uuid.uuid4().hex}"


class HttpPaymentGateway:
    """Thin async wrapper around the gateway REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.gateway_base_url).rstrip("/")
        self.api_key = settings.gateway_api_key if api_key is None else api_key
        self.timeout = timeout or attempt_timeout()
        self._transport = transport

    def _headers(self, idempotency_key: str) -> dict[str, str]:
        token = base64.b64encode(f"{self.api_key}:".encode()).decode()
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Basic {token}",
            "Idempotency-Key": idempotency_key,
        }

    @retry(
        stop=stop_after_attempt(settings.gateway_retry_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(
            (httpx.ConnectError, httpx.TimeoutException, _RetryableStatus)
        ),
        reraise=True,
    )
    async def _post(self, path: str, payload: dict, idempotency_key: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}{path}", json=payload, headers=self._headers(idempotency_key)
            )
        if resp.status_code >= 500:
            raise _RetryableStatus(resp)
        return resp

    @staticmethod
    def _result(resp: httpx.Response, operation: str) -> GatewayResult:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_success and body.get("status") in ("paid", "captured", "transferred", "pending"):
            return GatewayResult.ok(str(body.get("id")))
        reason = body.get("message") or body.get("status") or f"HTTP {resp.status_code}"
        logger.warning(
            "Gateway %s rejected", operation,
            extra={"status_code": resp.status_code, "reason": reason},
        )
        return GatewayResult.failed(str(reason))

    async def charge(
        self, amount: Decimal, payment_method_ref: str, reference: str,
    ) -> GatewayResult:
        payload = {
            "code": reference,
            "items": [{"amount": _to_cents(amount), "description": reference, "quantity": 1}],
            "payments": [
                {
                    "payment_method": "credit_card",
                    "credit_card": {
                        "operation_type": "auth_and_capture",
                        "installments": 1,
                        "card_id": payment_method_ref,
                    },
                }
            ],
        }
        try:
            resp = await self._post("/orders", payload, _idempotency_key(reference))
        except _RetryableStatus as exc:
            return self._result(exc.response, "charge")
        return self._result(resp, "charge")

    async def payout(
        self, amount: Decimal, method: str, details: dict, reference: str,
    ) -> GatewayResult:
        payload = {
            "code": reference,
            "amount": _to_cents(amount),
            "method": method,
            "recipient": details,
        }
        try:
            resp = await self._post("/transfers", payload, _idempotency_key(reference))
        except _RetryableStatus as exc:
            return self._result(exc.response, "payout")
        return self._result(resp, "payout")
