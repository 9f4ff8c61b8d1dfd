import pytest

from marketplace.core.errors import InvalidTransitionError
from marketplace.services.withdrawal_state_machine import (
    TERMINAL_STATUSES,
    WithdrawalStatus,
    validate_transition,
)


class TestWithdrawalTransitions:
    def test_pending_to_processing_to_completed(self):
        status = validate_transition("pending", "process")
        assert status == WithdrawalStatus.PROCESSING
        assert validate_transition(status, "succeed") == WithdrawalStatus.COMPLETED

    def test_processing_can_fail(self):
        assert validate_transition("processing", "fail") == WithdrawalStatus.FAILED

    def test_only_pending_can_be_cancelled(self):
        assert validate_transition("pending", "cancel") == WithdrawalStatus.CANCELLED
        with pytest.raises(InvalidTransitionError):
            validate_transition("processing", "cancel")

    def test_pending_cannot_complete_directly(self):
        with pytest.raises(InvalidTransitionError):
            validate_transition("pending", "succeed")

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
    def test_terminal_statuses_are_final(self, status):
        for action in ("process", "succeed", "fail", "cancel"):
            with pytest.raises(InvalidTransitionError):
                validate_transition(status, action)
