"""HTTP-level tests: routing, auth dependencies and domain error mapping."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from marketplace.core.deps import get_db
from marketplace.core.errors import AuthorizationError, InsufficientBalanceError, PreconditionError
from marketplace.core.rate_limit import limiter
from marketplace.core.security import create_access_token, get_current_user
from marketplace.main import app
from marketplace.models.contract import Contract
from marketplace.models.user import User
from marketplace.models.withdrawal import Withdrawal


def _make_user(id: int, role: str) -> User:
    user = User(email=f"{role}{id}@example.com", role=role)
    object.__setattr__(user, "id", id)
    return user


def _make_contract() -> Contract:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    contract = Contract(
        offer_id=10,
        brand_id=1,
        creator_id=2,
        title="Launch video",
        budget=Decimal("1000.00"),
        estimated_days=7,
        requirements=["1 reel"],
        platform_fee=Decimal("100.00"),
        creator_amount=Decimal("900.00"),
        status="active",
        workflow_status="active",
        started_at=now,
        has_brand_review=False,
        has_creator_review=False,
        created_at=now,
    )
    object.__setattr__(contract, "id", 20)
    return contract


def _make_withdrawal() -> Withdrawal:
    withdrawal = Withdrawal(
        creator_id=2,
        amount=Decimal("200.00"),
        withdrawal_method="pix",
        withdrawal_details={"pix_key": "k", "pix_key_type": "email", "holder_name": "A"},
        status="pending",
        created_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
    )
    object.__setattr__(withdrawal, "id", 40)
    return withdrawal


class FakeRedis:
    """The SET NX / DEL subset of redis.asyncio used by the idempotency guard."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0


@pytest.fixture(autouse=True)
def redis():
    fake = FakeRedis()
    with patch("marketplace.core.idempotency.get_redis", new=AsyncMock(return_value=fake)):
        yield fake


@pytest.fixture(autouse=True)
def _no_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


def _login(user: User) -> None:
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_db] = lambda: AsyncMock()


BRAND = _make_user(1, "brand")
CREATOR = _make_user(2, "creator")
OTHER_CREATOR = _make_user(3, "creator")
ADMIN = _make_user(9, "admin")


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token(self, client: AsyncClient):
        app.dependency_overrides[get_db] = lambda: AsyncMock()
        response = await client.get("/api/offers")
        assert response.status_code in (401, 403)

    @pytest.mark.asyncio
    async def test_invalid_token(self, client: AsyncClient):
        app.dependency_overrides[get_db] = lambda: AsyncMock()
        response = await client.get(
            "/api/offers", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_token_resolves_user(self, client: AsyncClient):
        db = AsyncMock()
        user_result = MagicMock()
        user_result.scalar_one_or_none.return_value = CREATOR
        db.execute = AsyncMock(return_value=user_result)
        app.dependency_overrides[get_db] = lambda: db
        token = create_access_token({"sub": str(CREATOR.id)})

        with patch(
            "marketplace.api.offers.offer_svc.list_offers", new=AsyncMock(return_value=[])
        ) as list_offers:
            response = await client.get(
                "/api/offers", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 200
        assert response.json() == []
        assert list_offers.await_args.args[1] is CREATOR


class TestOfferEndpoints:
    @pytest.mark.asyncio
    async def test_accept_returns_contract(self, client: AsyncClient, redis: FakeRedis):
        _login(CREATOR)
        with patch(
            "marketplace.api.offers.offer_svc.accept_offer",
            new=AsyncMock(return_value=_make_contract()),
        ):
            response = await client.post("/api/offers/10/accept")

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == 20
        assert body["status"] == "active"
        assert Decimal(body["creator_amount"]) == Decimal("900.00")
        assert set(redis.store) == {"idempotent:offer:accept:10:2"}

    @pytest.mark.asyncio
    async def test_domain_error_is_structured(self, client: AsyncClient, redis: FakeRedis):
        _login(CREATOR)
        error = PreconditionError("Offer has expired", code="offer_expired")
        with patch("marketplace.api.offers.offer_svc.accept_offer", new=AsyncMock(side_effect=error)):
            response = await client.post("/api/offers/10/accept")

        assert response.status_code == 409
        assert response.json() == {
            "success": False, "code": "offer_expired", "detail": "Offer has expired",
        }
        assert redis.store == {}

    @pytest.mark.asyncio
    async def test_refused_creator_does_not_block_the_offered_creator(self, client: AsyncClient):
        refused = AuthorizationError("This offer was made to another creator")
        with patch(
            "marketplace.api.offers.offer_svc.accept_offer",
            new=AsyncMock(side_effect=[refused, _make_contract()]),
        ):
            _login(OTHER_CREATOR)
            first = await client.post("/api/offers/10/accept")
            _login(CREATOR)
            second = await client.post("/api/offers/10/accept")

        assert first.status_code == 403
        assert second.status_code == 201
        assert second.json()["creator_id"] == 2

    @pytest.mark.asyncio
    async def test_failed_accept_can_be_retried_at_once(self, client: AsyncClient):
        _login(CREATOR)
        declined = PreconditionError("Card declined", code="payment_failed")
        with patch(
            "marketplace.api.offers.offer_svc.accept_offer",
            new=AsyncMock(side_effect=[declined, _make_contract()]),
        ) as accept:
            first = await client.post("/api/offers/10/accept")
            second = await client.post("/api/offers/10/accept")

        assert first.status_code == 409
        assert second.status_code == 201
        assert accept.await_count == 2

    @pytest.mark.asyncio
    async def test_repeated_accept_is_refused_while_first_is_recent(self, client: AsyncClient):
        _login(CREATOR)
        with patch(
            "marketplace.api.offers.offer_svc.accept_offer",
            new=AsyncMock(return_value=_make_contract()),
        ) as accept:
            first = await client.post("/api/offers/10/accept")
            second = await client.post("/api/offers/10/accept")

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "duplicate_request"
        accept.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_brand_cannot_accept(self, client: AsyncClient):
        _login(BRAND)
        with patch("marketplace.api.offers.offer_svc.accept_offer", new=AsyncMock()) as accept:
            response = await client.post("/api/offers/10/accept")

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"
        accept.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_offer_validates_body(self, client: AsyncClient):
        _login(BRAND)
        response = await client.post(
            "/api/offers", json={"creator_id": 2, "title": "x", "budget": "-5", "estimated_days": 3}
        )
        assert response.status_code == 422


PIX_REQUEST = {
    "amount": "200.00",
    "withdrawal_method": "pix",
    "withdrawal_details": {"pix_key": "k", "pix_key_type": "email", "holder_name": "A"},
}


class TestWithdrawalEndpoints:
    @pytest.mark.asyncio
    async def test_insufficient_balance_maps_to_400(self, client: AsyncClient, redis: FakeRedis):
        _login(CREATOR)
        error = InsufficientBalanceError(Decimal("100.00"), Decimal("200.00"))
        with patch(
            "marketplace.api.withdrawals.withdrawal_svc.create_withdrawal",
            new=AsyncMock(side_effect=error),
        ):
            response = await client.post(
                "/api/withdrawals", json=PIX_REQUEST, headers={"Idempotency-Key": "abc"}
            )

        assert response.status_code == 400
        assert response.json()["code"] == "insufficient_balance"
        assert redis.store == {}

    @pytest.mark.asyncio
    async def test_keyed_retry_after_failure_goes_through(self, client: AsyncClient):
        _login(CREATOR)
        error = InsufficientBalanceError(Decimal("100.00"), Decimal("200.00"))
        with patch(
            "marketplace.api.withdrawals.withdrawal_svc.create_withdrawal",
            new=AsyncMock(side_effect=[error, _make_withdrawal()]),
        ):
            headers = {"Idempotency-Key": "abc"}
            first = await client.post("/api/withdrawals", json=PIX_REQUEST, headers=headers)
            second = await client.post("/api/withdrawals", json=PIX_REQUEST, headers=headers)

        assert first.status_code == 400
        assert second.status_code == 201

    @pytest.mark.asyncio
    async def test_resent_key_is_refused(self, client: AsyncClient, redis: FakeRedis):
        _login(CREATOR)
        with patch(
            "marketplace.api.withdrawals.withdrawal_svc.create_withdrawal",
            new=AsyncMock(return_value=_make_withdrawal()),
        ) as create:
            headers = {"Idempotency-Key": "abc"}
            first = await client.post("/api/withdrawals", json=PIX_REQUEST, headers=headers)
            second = await client.post("/api/withdrawals", json=PIX_REQUEST, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "duplicate_request"
        create.assert_awaited_once()
        assert set(redis.store) == {"idempotent:withdrawal:create:2:abc"}

    @pytest.mark.asyncio
    async def test_equal_withdrawals_without_key_are_independent(
        self, client: AsyncClient, redis: FakeRedis
    ):
        _login(CREATOR)
        with patch(
            "marketplace.api.withdrawals.withdrawal_svc.create_withdrawal",
            new=AsyncMock(return_value=_make_withdrawal()),
        ) as create:
            first = await client.post("/api/withdrawals", json=PIX_REQUEST)
            second = await client.post("/api/withdrawals", json=PIX_REQUEST)

        assert first.status_code == 201
        assert second.status_code == 201
        assert create.await_count == 2
        assert redis.store == {}

    @pytest.mark.asyncio
    async def test_same_key_from_two_creators(self, client: AsyncClient):
        with patch(
            "marketplace.api.withdrawals.withdrawal_svc.create_withdrawal",
            new=AsyncMock(return_value=_make_withdrawal()),
        ):
            headers = {"Idempotency-Key": "abc"}
            _login(CREATOR)
            first = await client.post("/api/withdrawals", json=PIX_REQUEST, headers=headers)
            _login(OTHER_CREATOR)
            second = await client.post("/api/withdrawals", json=PIX_REQUEST, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201

    @pytest.mark.asyncio
    async def test_unknown_method_rejected_by_schema(self, client: AsyncClient):
        _login(CREATOR)
        response = await client.post(
            "/api/withdrawals", json={"amount": "20.00", "withdrawal_method": "crypto"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_methods_come_from_settings(self, client: AsyncClient):
        _login(CREATOR)
        response = await client.get("/api/withdrawals/methods")

        assert response.status_code == 200
        methods = {m["id"]: m for m in response.json()}
        assert set(methods) == {"bank_transfer", "pagarme_account", "pix"}
        assert Decimal(methods["pix"]["min_amount"]) == Decimal("5")
        assert Decimal(methods["bank_transfer"]["min_amount"]) == Decimal("50")
        assert "holder_name" in methods["pagarme_account"]["required_details"]

    @pytest.mark.asyncio
    async def test_balance_summary(self, client: AsyncClient):
        _login(CREATOR)
        summary = {
            "creator_id": 2,
            "available_balance": Decimal("950.00"),
            "pending_balance": Decimal("0.00"),
            "held_balance": Decimal("0.00"),
            "total_balance": Decimal("950.00"),
            "total_earned": Decimal("950.00"),
            "total_withdrawn": Decimal("0.00"),
            "earnings_this_month": Decimal("950.00"),
            "earnings_this_year": Decimal("950.00"),
            "pending_withdrawals_count": 0,
            "pending_withdrawals_amount": Decimal("0.00"),
        }
        with patch(
            "marketplace.api.withdrawals.ledger.get_balance_summary",
            new=AsyncMock(return_value=summary),
        ):
            response = await client.get("/api/balance")

        assert response.status_code == 200
        assert Decimal(response.json()["available_balance"]) == Decimal("950.00")

    @pytest.mark.asyncio
    async def test_balance_history_passes_filters(self, client: AsyncClient):
        _login(CREATOR)
        entry = {
            "type": "withdrawal",
            "id": 40,
            "amount": Decimal("-200.00"),
            "running_balance": Decimal("750.00"),
            "description": "Withdrawal via PIX",
            "status": "pending",
            "date": datetime(2026, 1, 2, tzinfo=timezone.utc),
        }
        with patch(
            "marketplace.api.withdrawals.ledger.get_balance_history",
            new=AsyncMock(return_value=[entry]),
        ) as history:
            response = await client.get("/api/balance/history?days=7&type=withdrawal")

        assert response.status_code == 200
        assert response.json()[0]["running_balance"] == "750.00"
        assert history.await_args.args[1] == 2
        assert history.await_args.kwargs == {"days": 7, "entry_type": "withdrawal"}

    @pytest.mark.asyncio
    async def test_balance_history_rejects_unknown_type(self, client: AsyncClient):
        _login(CREATOR)
        response = await client.get("/api/balance/history?type=refund")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_brand_has_no_balance(self, client: AsyncClient):
        _login(BRAND)
        response = await client.get("/api/balance")
        assert response.status_code == 403


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_pending_withdrawal_queue(self, client: AsyncClient):
        _login(ADMIN)
        with patch(
            "marketplace.api.admin.withdrawal_svc.list_all_withdrawals",
            new=AsyncMock(return_value=[_make_withdrawal()]),
        ) as queue:
            response = await client.get("/api/admin/withdrawals")

        assert response.status_code == 200
        assert [w["id"] for w in response.json()] == [40]
        assert queue.await_args.kwargs["status"] == "pending"

    @pytest.mark.asyncio
    async def test_disputed_contract_queue(self, client: AsyncClient):
        _login(ADMIN)
        contract = _make_contract()
        contract.status = "disputed"
        with patch(
            "marketplace.api.admin.contract_svc.list_disputed_contracts",
            new=AsyncMock(return_value=[contract]),
        ):
            response = await client.get("/api/admin/contracts/disputed")

        assert response.status_code == 200
        assert response.json()[0]["status"] == "disputed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/admin/withdrawals", "/api/admin/contracts/disputed"])
    async def test_queues_are_admin_only(self, client: AsyncClient, path: str):
        _login(CREATOR)
        response = await client.get(path)
        assert response.status_code == 403
