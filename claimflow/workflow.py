"""
Status lifecycles for expenses and approvals.

Both lifecycles are closed enums with an explicit transition table. Routes
never compare status strings themselves; they call the ``check_*`` guards,
which raise ``InvalidStateError`` for anything not in the table.

    Expense:  Draft -> Submitted -> Approved -> Paid
                                \\-> Rejected
    Approval: Pending -> Approved | Rejected
"""

from enum import Enum
from typing import Optional

from claimflow.exceptions import InvalidStateError


class ExpenseStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"


class ApprovalStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


EXPENSE_TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.DRAFT: frozenset({ExpenseStatus.SUBMITTED}),
    ExpenseStatus.SUBMITTED: frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED}),
    ExpenseStatus.APPROVED: frozenset({ExpenseStatus.PAID}),
    ExpenseStatus.REJECTED: frozenset(),
    ExpenseStatus.PAID: frozenset(),
}

# Transitions an admin/editor may apply directly through an expense update.
# Draft -> Submitted is excluded: it must go through the submit action so an
# approval record is created alongside it.
EXPENSE_OVERRIDES: frozenset[tuple[ExpenseStatus, ExpenseStatus]] = frozenset({
    (ExpenseStatus.SUBMITTED, ExpenseStatus.APPROVED),
    (ExpenseStatus.SUBMITTED, ExpenseStatus.REJECTED),
    (ExpenseStatus.APPROVED, ExpenseStatus.PAID),
})

FINALIZED_EXPENSE_STATUSES: frozenset[ExpenseStatus] = frozenset({
    ExpenseStatus.APPROVED,
    ExpenseStatus.REJECTED,
    ExpenseStatus.PAID,
})

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.REJECTED}),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

# Expense status mirrored from an approval decision
DECISION_TO_EXPENSE_STATUS: dict[ApprovalStatus, ExpenseStatus] = {
    ApprovalStatus.APPROVED: ExpenseStatus.APPROVED,
    ApprovalStatus.REJECTED: ExpenseStatus.REJECTED,
}


def check_expense_transition(current, target, message: Optional[str] = None) -> ExpenseStatus:
    """Validate an expense status change and return the target status."""
    current = ExpenseStatus(current)
    target = ExpenseStatus(target)
    if target not in EXPENSE_TRANSITIONS[current]:
        raise InvalidStateError(
            message or f"Cannot change expense status from {current.value} to {target.value}.",
            current_status=current.value,
        )
    return target


def check_expense_override(current, target) -> ExpenseStatus:
    """Like check_expense_transition, restricted to manual overrides."""
    target = check_expense_transition(current, target)
    if (ExpenseStatus(current), target) not in EXPENSE_OVERRIDES:
        raise InvalidStateError(
            f"Status {target.value} can only be reached through the submit action.",
            current_status=ExpenseStatus(current).value,
        )
    return target


def check_approval_transition(current, target) -> ApprovalStatus:
    """Validate an approval status change and return the target status."""
    current = ApprovalStatus(current)
    target = ApprovalStatus(target)
    if target not in APPROVAL_TRANSITIONS[current]:
        raise InvalidStateError(
            "Approval has already been processed.",
            current_status=current.value,
        )
    return target


def is_finalized(status) -> bool:
    return ExpenseStatus(status) in FINALIZED_EXPENSE_STATUSES


def is_open(status) -> bool:
    """True while an approval still accepts decisions, delegation or escalation."""
    return ApprovalStatus(status) == ApprovalStatus.PENDING
