"""Withdrawal state machine: pure logic, no DB dependency."""

from enum import StrEnum

from marketplace.core.errors import InvalidTransitionError


class WithdrawalStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WithdrawalAction(StrEnum):
    PROCESS = "process"
    SUCCEED = "succeed"
    FAIL = "fail"
    CANCEL = "cancel"


class WithdrawalMethod(StrEnum):
    BANK_TRANSFER = "bank_transfer"
    PAGARME_ACCOUNT = "pagarme_account"
    PIX = "pix"


METHOD_LABELS: dict[WithdrawalMethod, str] = {
    WithdrawalMethod.BANK_TRANSFER: "Bank transfer",
    WithdrawalMethod.PAGARME_ACCOUNT: "Pagar.me account",
    WithdrawalMethod.PIX: "PIX",
}

TRANSITIONS: dict[tuple[WithdrawalStatus, WithdrawalAction], WithdrawalStatus] = {
    (WithdrawalStatus.PENDING, WithdrawalAction.PROCESS): WithdrawalStatus.PROCESSING,
    (WithdrawalStatus.PENDING, WithdrawalAction.CANCEL): WithdrawalStatus.CANCELLED,
    (WithdrawalStatus.PROCESSING, WithdrawalAction.SUCCEED): WithdrawalStatus.COMPLETED,
    (WithdrawalStatus.PROCESSING, WithdrawalAction.FAIL): WithdrawalStatus.FAILED,
}

TERMINAL_STATUSES: frozenset[WithdrawalStatus] = frozenset({
    WithdrawalStatus.COMPLETED,
    WithdrawalStatus.FAILED,
    WithdrawalStatus.CANCELLED,
})

# Withdrawals whose amount is still held on the creator's balance
OPEN_STATUSES: frozenset[WithdrawalStatus] = frozenset({
    WithdrawalStatus.PENDING,
    WithdrawalStatus.PROCESSING,
})


def validate_transition(current: str, action: str) -> WithdrawalStatus:
    try:
        key = (WithdrawalStatus(current), WithdrawalAction(action))
    except ValueError:
        raise InvalidTransitionError("withdrawal", current, action)
    if key not in TRANSITIONS:
        raise InvalidTransitionError("withdrawal", current, action)
    return TRANSITIONS[key]
