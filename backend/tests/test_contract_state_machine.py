"""Tests for the contract state machine: status pairs, actors, terminal states."""

import pytest

from marketplace.core.errors import InvalidTransitionError
from marketplace.services.contract_state_machine import (
    ContractStatus,
    TRANSITIONS,
    WorkflowStatus,
    get_available_actions,
    is_terminal,
    validate_transition,
)


class TestHappyPathLifecycle:
    """pending/payment_pending through to completed/payment_withdrawn."""

    def test_full_happy_path(self):
        state = ("pending", "payment_pending")

        state = validate_transition(*state, "confirm_payment", "system")
        assert state == (ContractStatus.ACTIVE, WorkflowStatus.ACTIVE)

        state = validate_transition(*state, "complete", "brand")
        assert state == (ContractStatus.COMPLETED, WorkflowStatus.WAITING_REVIEW)

        state = validate_transition(*state, "release_payment", "system")
        assert state == (ContractStatus.COMPLETED, WorkflowStatus.PAYMENT_AVAILABLE)

        state = validate_transition(*state, "mark_withdrawn", "system")
        assert state == (ContractStatus.COMPLETED, WorkflowStatus.PAYMENT_WITHDRAWN)
        assert is_terminal(*state)

    def test_failed_payment_then_retry_succeeds(self):
        state = validate_transition("pending", "payment_pending", "fail_payment", "system")
        assert state == (ContractStatus.PAYMENT_FAILED, WorkflowStatus.PAYMENT_FAILED)

        assert validate_transition(*state, "retry_payment", "brand") == state
        state = validate_transition(*state, "confirm_payment", "system")
        assert state == (ContractStatus.ACTIVE, WorkflowStatus.ACTIVE)


class TestActiveTransitions:
    @pytest.mark.parametrize("actor", ["brand", "creator"])
    def test_either_party_can_cancel_and_keeps_workflow(self, actor):
        assert validate_transition("active", "active", "cancel", actor) == (
            ContractStatus.CANCELLED, WorkflowStatus.ACTIVE,
        )

    @pytest.mark.parametrize("actor", ["brand", "creator"])
    def test_either_party_can_dispute(self, actor):
        assert validate_transition("active", "active", "dispute", actor) == (
            ContractStatus.DISPUTED, WorkflowStatus.ACTIVE,
        )

    def test_only_brand_completes(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("active", "active", "complete", "creator")

    def test_only_brand_terminates(self):
        assert validate_transition("active", "active", "terminate", "brand") == (
            ContractStatus.TERMINATED, WorkflowStatus.TERMINATED,
        )
        with pytest.raises(InvalidTransitionError):
            validate_transition("active", "active", "terminate", "creator")

    def test_release_is_system_only(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("completed", "waiting_review", "release_payment", "creator")


class TestGuards:
    @pytest.mark.parametrize("status", ["pending", "completed", "cancelled", "terminated", "disputed"])
    def test_complete_requires_active(self, status):
        with pytest.raises(InvalidTransitionError):
            validate_transition(status, "active", "complete", "brand")

    def test_second_complete_is_refused(self):
        state = validate_transition("active", "active", "complete", "brand")
        with pytest.raises(InvalidTransitionError):
            validate_transition(*state, "complete", "brand")

    def test_mismatched_pair_is_refused(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("active", "waiting_review", "complete", "brand")

    def test_admin_resolves_dispute(self):
        assert validate_transition("disputed", "active", "resolve_complete", "admin") == (
            ContractStatus.COMPLETED, WorkflowStatus.WAITING_REVIEW,
        )
        assert validate_transition("disputed", "active", "resolve_cancel", "admin") == (
            ContractStatus.CANCELLED, WorkflowStatus.ACTIVE,
        )
        with pytest.raises(InvalidTransitionError):
            validate_transition("disputed", "active", "resolve_complete", "brand")

    def test_every_transition_targets_a_known_pair(self):
        for (status, workflow, _), (new_status, new_workflow, actors) in TRANSITIONS.items():
            assert isinstance(new_status, ContractStatus)
            assert new_workflow is None or isinstance(new_workflow, WorkflowStatus)
            assert actors


class TestAvailableActions:
    def test_brand_on_active_contract(self):
        assert sorted(get_available_actions("active", "active", "brand")) == [
            "cancel", "complete", "dispute", "terminate",
        ]

    def test_creator_on_active_contract(self):
        assert sorted(get_available_actions("active", "active", "creator")) == ["cancel", "dispute"]

    def test_terminal_contract_has_no_actions(self):
        assert get_available_actions("cancelled", "active", "brand") == []
        assert get_available_actions("terminated", "terminated", "brand") == []
        assert get_available_actions("completed", "payment_withdrawn", "system") == []

    def test_unknown_actor_has_no_actions(self):
        assert get_available_actions("active", "active", "stranger") == []
