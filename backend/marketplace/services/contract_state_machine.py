"""Contract state machine: pure logic, no DB dependency.

A contract carries two status columns: the coarse ``status`` and the
fine-grained ``workflow_status``. Transitions are keyed on both so the pair
can never drift apart. ``None`` as the new workflow status means the
transition leaves it untouched (cancel and dispute keep the last one).
"""

from enum import StrEnum

from marketplace.core.errors import InvalidTransitionError


class ContractStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"
    TERMINATED = "terminated"
    PAYMENT_FAILED = "payment_failed"


class WorkflowStatus(StrEnum):
    PAYMENT_PENDING = "payment_pending"
    ACTIVE = "active"
    WAITING_REVIEW = "waiting_review"
    PAYMENT_AVAILABLE = "payment_available"
    PAYMENT_WITHDRAWN = "payment_withdrawn"
    PAYMENT_FAILED = "payment_failed"
    TERMINATED = "terminated"


class ContractAction(StrEnum):
    CONFIRM_PAYMENT = "confirm_payment"
    FAIL_PAYMENT = "fail_payment"
    RETRY_PAYMENT = "retry_payment"
    COMPLETE = "complete"
    CANCEL = "cancel"
    DISPUTE = "dispute"
    TERMINATE = "terminate"
    RELEASE_PAYMENT = "release_payment"
    MARK_WITHDRAWN = "mark_withdrawn"
    RESOLVE_COMPLETE = "resolve_complete"
    RESOLVE_CANCEL = "resolve_cancel"


class ContractActor(StrEnum):
    BRAND = "brand"
    CREATOR = "creator"
    ADMIN = "admin"
    SYSTEM = "system"


_S = ContractStatus
_W = WorkflowStatus
_A = ContractAction
_PARTIES = frozenset({ContractActor.BRAND, ContractActor.CREATOR})

# (status, workflow_status, action) → (new_status, new_workflow_status | None, allowed actors)
TRANSITIONS: dict[
    tuple[ContractStatus, WorkflowStatus, ContractAction],
    tuple[ContractStatus, WorkflowStatus | None, frozenset[ContractActor]],
] = {
    # Gateway charge after acceptance
    (_S.PENDING, _W.PAYMENT_PENDING, _A.CONFIRM_PAYMENT): (
        _S.ACTIVE, _W.ACTIVE, frozenset({ContractActor.SYSTEM}),
    ),
    (_S.PENDING, _W.PAYMENT_PENDING, _A.FAIL_PAYMENT): (
        _S.PAYMENT_FAILED, _W.PAYMENT_FAILED, frozenset({ContractActor.SYSTEM}),
    ),
    # Retry after a failed charge
    (_S.PAYMENT_FAILED, _W.PAYMENT_FAILED, _A.RETRY_PAYMENT): (
        _S.PAYMENT_FAILED, _W.PAYMENT_FAILED,
        frozenset({ContractActor.BRAND, ContractActor.ADMIN, ContractActor.SYSTEM}),
    ),
    (_S.PAYMENT_FAILED, _W.PAYMENT_FAILED, _A.CONFIRM_PAYMENT): (
        _S.ACTIVE, _W.ACTIVE, frozenset({ContractActor.SYSTEM}),
    ),
    (_S.PAYMENT_FAILED, _W.PAYMENT_FAILED, _A.FAIL_PAYMENT): (
        _S.PAYMENT_FAILED, _W.PAYMENT_FAILED, frozenset({ContractActor.SYSTEM}),
    ),
    # Work in progress
    (_S.ACTIVE, _W.ACTIVE, _A.COMPLETE): (
        _S.COMPLETED, _W.WAITING_REVIEW, frozenset({ContractActor.BRAND}),
    ),
    (_S.ACTIVE, _W.ACTIVE, _A.CANCEL): (
        _S.CANCELLED, None, _PARTIES,
    ),
    (_S.ACTIVE, _W.ACTIVE, _A.DISPUTE): (
        _S.DISPUTED, None, _PARTIES,
    ),
    (_S.ACTIVE, _W.ACTIVE, _A.TERMINATE): (
        _S.TERMINATED, _W.TERMINATED, frozenset({ContractActor.BRAND}),
    ),
    # Escrow release, gated on the creator's review
    (_S.COMPLETED, _W.WAITING_REVIEW, _A.RELEASE_PAYMENT): (
        _S.COMPLETED, _W.PAYMENT_AVAILABLE, frozenset({ContractActor.SYSTEM}),
    ),
    (_S.COMPLETED, _W.PAYMENT_AVAILABLE, _A.MARK_WITHDRAWN): (
        _S.COMPLETED, _W.PAYMENT_WITHDRAWN, frozenset({ContractActor.SYSTEM}),
    ),
    # Manual dispute resolution
    (_S.DISPUTED, _W.ACTIVE, _A.RESOLVE_COMPLETE): (
        _S.COMPLETED, _W.WAITING_REVIEW, frozenset({ContractActor.ADMIN}),
    ),
    (_S.DISPUTED, _W.ACTIVE, _A.RESOLVE_CANCEL): (
        _S.CANCELLED, None, frozenset({ContractActor.ADMIN}),
    ),
}

TERMINAL_STATUSES: frozenset[ContractStatus] = frozenset({
    ContractStatus.CANCELLED,
    ContractStatus.TERMINATED,
})

# Statuses in which a review may be left by either party
REVIEWABLE_WORKFLOWS: frozenset[WorkflowStatus] = frozenset({
    WorkflowStatus.WAITING_REVIEW,
    WorkflowStatus.PAYMENT_AVAILABLE,
    WorkflowStatus.PAYMENT_WITHDRAWN,
})


def is_terminal(status: str, workflow_status: str) -> bool:
    if status in TERMINAL_STATUSES:
        return True
    return status == ContractStatus.COMPLETED and workflow_status == WorkflowStatus.PAYMENT_WITHDRAWN


def validate_transition(
    status: str, workflow_status: str, action: str, actor: str,
) -> tuple[ContractStatus, WorkflowStatus]:
    """Validate and return ``(new_status, new_workflow_status)``.

    Raises InvalidTransitionError if the transition is not allowed.
    """
    try:
        current_status = ContractStatus(status)
        current_workflow = WorkflowStatus(workflow_status)
        contract_action = ContractAction(action)
        contract_actor = ContractActor(actor)
    except ValueError:
        raise InvalidTransitionError("contract", f"{status}/{workflow_status}", action, actor)

    key = (current_status, current_workflow, contract_action)
    if key not in TRANSITIONS:
        raise InvalidTransitionError("contract", f"{status}/{workflow_status}", action, actor)

    new_status, new_workflow, allowed_actors = TRANSITIONS[key]
    if contract_actor not in allowed_actors:
        raise InvalidTransitionError("contract", f"{status}/{workflow_status}", action, actor)

    return new_status, new_workflow or current_workflow


def get_available_actions(status: str, workflow_status: str, actor: str) -> list[str]:
    """Return action names available to ``actor`` for the given status pair."""
    try:
        current_status = ContractStatus(status)
        current_workflow = WorkflowStatus(workflow_status)
        actor_enum = ContractActor(actor)
    except ValueError:
        return []

    if is_terminal(current_status, current_workflow):
        return []

    actions: list[str] = []
    for (s, w, action), (_, _, allowed_actors) in TRANSITIONS.items():
        if s == current_status and w == current_workflow and actor_enum in allowed_actors:
            actions.append(action.value)
    return actions
