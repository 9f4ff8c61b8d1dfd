"""Tests for the offer state machine: actors, expiry gating, terminal states."""

from datetime import datetime, timedelta, timezone

import pytest

from marketplace.core.errors import InvalidTransitionError, PreconditionError
from marketplace.services.offer_state_machine import (
    OfferStatus,
    TERMINAL_STATUSES,
    can_be_accepted,
    get_available_actions,
    is_expired,
    validate_transition,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
FUTURE = NOW + timedelta(hours=5)
PAST = NOW - timedelta(minutes=1)


class TestTransitions:
    def test_creator_accepts_pending_offer(self):
        assert validate_transition("pending", "accept", "creator", FUTURE, NOW) == OfferStatus.ACCEPTED

    def test_creator_rejects_pending_offer(self):
        assert validate_transition("pending", "reject", "creator", FUTURE, NOW) == OfferStatus.REJECTED

    def test_brand_cancels_pending_offer(self):
        assert validate_transition("pending", "cancel", "brand", FUTURE, NOW) == OfferStatus.CANCELLED

    def test_brand_cannot_accept(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending", "accept", "brand", FUTURE, NOW)

    def test_creator_cannot_cancel(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending", "cancel", "creator", FUTURE, NOW)

    @pytest.mark.parametrize("status", ["accepted", "rejected", "cancelled", "expired"])
    def test_terminal_statuses_reject_every_action(self, status):
        for action, actor in (("accept", "creator"), ("reject", "creator"), ("cancel", "brand")):
            with pytest.raises(InvalidTransitionError):
                validate_transition(status, action, actor, FUTURE, NOW)

    def test_unknown_values_raise(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending", "approve", "creator")
        with pytest.raises(InvalidTransitionError):
            validate_transition("draft", "accept", "creator")

    def test_invalid_transition_is_a_precondition_error(self):
        with pytest.raises(PreconditionError):
            validate_transition("accepted", "accept", "creator", FUTURE, NOW)


class TestExpiry:
    def test_expired_offer_cannot_be_accepted(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition("pending", "accept", "creator", PAST, NOW)
        assert exc_info.value.current == "expired"

    def test_expiry_boundary_is_inclusive(self):
        assert is_expired(NOW, NOW) is True
        assert can_be_accepted("pending", NOW, NOW) is False

    def test_system_expires_only_past_offers(self):
        assert validate_transition("pending", "expire", "system", PAST, NOW) == OfferStatus.EXPIRED
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending", "expire", "system", FUTURE, NOW)

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_past = PAST.replace(tzinfo=None)
        assert is_expired(naive_past, NOW) is True

    def test_missing_expiry_never_expires(self):
        assert is_expired(None, NOW) is False


class TestAvailableActions:
    def test_creator_actions_on_live_offer(self):
        assert sorted(get_available_actions("pending", "creator", FUTURE, NOW)) == ["accept", "reject"]

    def test_brand_actions_on_live_offer(self):
        assert get_available_actions("pending", "brand", FUTURE, NOW) == ["cancel"]

    def test_only_system_expire_once_expired(self):
        assert get_available_actions("pending", "creator", PAST, NOW) == []
        assert get_available_actions("pending", "system", PAST, NOW) == ["expire"]

    def test_terminal_offer_has_no_actions(self):
        for status in TERMINAL_STATUSES:
            assert get_available_actions(status, "creator", FUTURE, NOW) == []
