"""
Expense ledger routes for ClaimFlow.

This module handles the expense claim lifecycle:
- Creating, editing and deleting draft claims
- Submitting a draft for approval (creates the approval record)
- Admin/editor status overrides (approve, reject, mark paid)
- Per-user statistics

Every list and statistic is scoped to the calling user's own expenses.

Routes:
    GET    /expenses               - Caller's expenses, filtered and paginated
    GET    /expenses/stats         - Caller's totals and status breakdown
    GET    /expenses/{id}          - One expense (owner or admin)
    POST   /expenses               - Create a draft expense
    PUT    /expenses/{id}          - Update an expense (owner or admin)
    DELETE /expenses/{id}          - Delete an expense
    POST   /expenses/{id}/submit   - Submit a draft for approval
"""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from claimflow import config
from claimflow.db import get_db
from claimflow.dependencies import ensure_owner_or_admin, get_current_user
from claimflow.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from claimflow.logging_config import get_logger
from claimflow.models import utcnow
from claimflow.models.approval import Approval
from claimflow.models.expense import Category, Expense, RecurringFrequency
from claimflow.models.user import APPROVER_ROLES, User
from claimflow.schemas import ExpensePagination, MessageResponse
from claimflow.schemas.approval import ApprovalOut, SubmitRequest, SubmitResponse
from claimflow.schemas.expense import (
    ExpenseCreate,
    ExpenseListResponse,
    ExpenseOut,
    ExpenseResponse,
    ExpenseStats,
    ExpenseUpdate,
)
from claimflow.utils.pagination import MAX_PAGE_SIZE, apply_sort, paginate
from claimflow.workflow import (
    ApprovalStatus,
    ExpenseStatus,
    Priority,
    check_expense_override,
    check_expense_transition,
    is_finalized,
)

# Module logger for expense operations
logger = get_logger(__name__)

router = APIRouter()

SORTABLE_COLUMNS = {
    "submittedAt": Expense.submitted_at,
    "submitted_at": Expense.submitted_at,
    "createdAt": Expense.created_at,
    "created_at": Expense.created_at,
    "amount": Expense.amount,
    "subject": Expense.subject,
    "status": Expense.status,
}

# Approval outcome recorded when an override decides a submitted expense
OVERRIDE_DECISIONS = {
    ExpenseStatus.APPROVED: ApprovalStatus.APPROVED,
    ExpenseStatus.REJECTED: ApprovalStatus.REJECTED,
}


def get_expense_or_404(db: Session, expense_id: int) -> Expense:
    expense = db.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError("Expense", expense_id)
    return expense


def get_active_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None or not category.is_active:
        raise ValidationError("Invalid or inactive category.")
    return category


def pick_default_approver(db: Session, owner_id: int) -> Optional[User]:
    """
    Choose who reviews a newly submitted expense.

    Any editor or admin other than the owner is eligible; the one with the
    fewest pending approvals wins, lowest id on ties.
    """
    pending = (
        db.query(Approval.approver_id, func.count(Approval.id).label("pending"))
        .filter(Approval.status == ApprovalStatus.PENDING.value)
        .group_by(Approval.approver_id)
        .subquery()
    )
    return (
        db.query(User)
        .outerjoin(pending, pending.c.approver_id == User.id)
        .filter(User.role.in_(APPROVER_ROLES), User.id != owner_id)
        .order_by(func.coalesce(pending.c.pending, 0), User.id)
        .first()
    )


def resolve_approver(db: Session, expense: Expense, approver_id: Optional[int]) -> User:
    if approver_id is None:
        approver = pick_default_approver(db, expense.owner_id)
        if approver is None:
            raise ValidationError("No approver is available to review this expense.")
        return approver
    approver = db.get(User, approver_id)
    if approver is None:
        raise NotFoundError("Approver", approver_id)
    if approver.role not in APPROVER_ROLES or approver.id == expense.owner_id:
        raise ValidationError("Approver must be an editor or admin other than the expense owner.")
    return approver


def submit_for_approval(
    db: Session,
    expense: Expense,
    approver: User,
    priority: Priority = Priority.MEDIUM,
    due_date=None,
) -> Approval:
    """
    Move a draft to Submitted and open its approval record.

    Both writes commit together; the status change only applies if the
    expense is still a draft when the UPDATE runs.
    """
    check_expense_transition(
        expense.status, ExpenseStatus.SUBMITTED, message="Only draft expenses can be submitted."
    )
    now = utcnow()
    try:
        updated = (
            db.query(Expense)
            .filter(Expense.id == expense.id, Expense.status == ExpenseStatus.DRAFT.value)
            .update(
                {"status": ExpenseStatus.SUBMITTED.value, "submitted_at": now},
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise InvalidStateError("Only draft expenses can be submitted.")
        approval = Approval(
            expense_id=expense.id,
            requested_by_id=expense.owner_id,
            approver_id=approver.id,
            priority=Priority(priority).value,
            due_date=due_date or now + timedelta(days=config.APPROVAL_DUE_DAYS),
        )
        db.add(approval)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(expense)
    db.refresh(approval)
    return approval


def ensure_may_override(db: Session, expense: Expense, actor: User) -> None:
    """
    Only admins may override the status of their own expense, and a pending
    approval can only be closed this way by its approver or an admin.
    """
    if actor.is_admin:
        return
    if expense.owner_id == actor.id:
        logger.warning(f"User {actor.username} tried to override the status of their own expense {expense.id}")
        raise ForbiddenError("You cannot change the status of your own expense.")
    foreign_pending = (
        db.query(Approval.id)
        .filter(
            Approval.expense_id == expense.id,
            Approval.status == ApprovalStatus.PENDING.value,
            Approval.approver_id != actor.id,
        )
        .first()
    )
    if foreign_pending is not None:
        raise ForbiddenError("Only the assigned approver or an admin can decide this expense.")


def apply_status_override(
    db: Session,
    expense: Expense,
    target: ExpenseStatus,
    actor: User,
    rejection_reason: Optional[str] = None,
) -> None:
    """
    Stage an admin/editor status change on an expense.

    Approving or rejecting through an override also decides any pending
    approval records for the expense. Nothing is committed here.
    """
    current = ExpenseStatus(expense.status)
    now = utcnow()
    values = {"status": target.value}
    if target == ExpenseStatus.APPROVED:
        values.update(approved_by_id=actor.id, approved_at=now)
    elif target == ExpenseStatus.REJECTED:
        values["rejection_reason"] = rejection_reason

    updated = (
        db.query(Expense)
        .filter(Expense.id == expense.id, Expense.status == current.value)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        raise InvalidStateError("Expense status changed concurrently; reload and retry.")

    decision = OVERRIDE_DECISIONS.get(target)
    if decision is not None:
        approval_values = {"status": decision.value, "reviewed_at": now, "reviewed_by_id": actor.id}
        if rejection_reason:
            approval_values["comments"] = rejection_reason
        db.query(Approval).filter(
            Approval.expense_id == expense.id,
            Approval.status == ApprovalStatus.PENDING.value,
        ).update(approval_values, synchronize_session=False)


def get_expense_stats(db: Session, owner_id: int) -> dict:
    """Count, sum, average and status/category breakdowns of one user's expenses."""
    count, total, average = (
        db.query(
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.amount), 0.0),
            func.coalesce(func.avg(Expense.amount), 0.0),
        )
        .filter(Expense.owner_id == owner_id)
        .one()
    )
    status_rows = (
        db.query(Expense.status, func.count(Expense.id))
        .filter(Expense.owner_id == owner_id)
        .group_by(Expense.status)
        .all()
    )
    category_rows = (
        db.query(Category.name, func.count(Expense.id), func.sum(Expense.amount))
        .join(Expense, Expense.category_id == Category.id)
        .filter(Expense.owner_id == owner_id)
        .group_by(Category.name)
        .order_by(func.sum(Expense.amount).desc())
        .all()
    )
    return {
        "total_expenses": count,
        "total_amount": float(total),
        "average_amount": float(average),
        "status_breakdown": {status_name: n for status_name, n in status_rows},
        "category_breakdown": [
            {"category": name, "count": n, "total": float(amount or 0)}
            for name, n, amount in category_rows
        ],
    }


@router.get("/expenses", response_model=ExpenseListResponse)
def list_expenses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    status: Optional[ExpenseStatus] = None,
    category: Optional[int] = None,
    sort_by: str = Query("submittedAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Expense).filter(Expense.owner_id == current_user.id)
    if status is not None:
        query = query.filter(Expense.status == status.value)
    if category is not None:
        query = query.filter(Expense.category_id == category)
    query = apply_sort(query, SORTABLE_COLUMNS, sort_by, sort_order, tiebreaker=Expense.id)
    expenses, total = paginate(query, page, limit)
    return ExpenseListResponse(
        expenses=[ExpenseOut.model_validate(e) for e in expenses],
        pagination=ExpensePagination.build(page, limit, total),
    )


@router.get("/expenses/stats", response_model=ExpenseStats)
def expense_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ExpenseStats.model_validate(get_expense_stats(db, current_user.id))


@router.get("/expenses/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = get_expense_or_404(db, expense_id)
    ensure_owner_or_admin(current_user, expense.owner_id)
    return ExpenseResponse(expense=ExpenseOut.model_validate(expense))


@router.post("/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    body: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    category = get_active_category(db, body.category)
    expense = Expense(
        owner_id=current_user.id,
        category_id=category.id,
        subject=body.subject,
        description=body.description,
        amount=body.amount,
        currency=body.currency,
        status=ExpenseStatus.DRAFT.value,
        tags=list(body.tags),
        receipt=body.receipt.model_dump() if body.receipt else None,
        is_recurring=body.is_recurring,
        recurring_frequency=body.recurring_frequency.value if body.recurring_frequency else None,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    logger.info(f"Expense {expense.id} created by {current_user.username}: {expense.formatted_amount}")
    return ExpenseResponse(message="Expense created successfully!", expense=ExpenseOut.model_validate(expense))


@router.put("/expenses/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: int,
    body: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = get_expense_or_404(db, expense_id)
    ensure_owner_or_admin(current_user, expense.owner_id)

    changes = body.model_dump(exclude_unset=True)
    target = changes.pop("status", None)
    rejection_reason = changes.pop("rejection_reason", None)
    if target is not None and target == expense.status:
        target = None

    # Validate everything before touching the row
    if target is not None:
        if current_user.role not in APPROVER_ROLES:
            logger.warning(f"User {current_user.username} tried to change status of expense {expense.id}")
            raise ForbiddenError("Insufficient permissions to update status.")
        ensure_may_override(db, expense, current_user)
        check_expense_override(expense.status, target)
        if target == ExpenseStatus.REJECTED and not rejection_reason:
            raise ValidationError("Rejection reason is required.")

    changes = {k: v for k, v in changes.items() if v is not None or k in ("description", "receipt")}
    if changes and is_finalized(expense.status):
        raise InvalidStateError("Finalized expenses cannot be edited.", current_status=expense.status)

    category = get_active_category(db, changes.pop("category")) if "category" in changes else None

    is_recurring = changes.get("is_recurring", expense.is_recurring)
    frequency = changes.get("recurring_frequency", expense.recurring_frequency)
    if frequency is not None:
        frequency = RecurringFrequency(frequency).value
    if is_recurring and frequency is None:
        raise ValidationError("recurringFrequency is required for recurring expenses.")

    # Apply
    if category is not None:
        expense.category_id = category.id
    for field in ("subject", "description", "amount", "currency", "tags", "receipt", "is_recurring"):
        if field in changes:
            setattr(expense, field, changes[field])
    if "recurring_frequency" in changes or "is_recurring" in changes:
        expense.recurring_frequency = frequency if is_recurring else None

    try:
        if target is not None:
            apply_status_override(db, expense, target, current_user, rejection_reason)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(expense)
    logger.info(f"Expense {expense.id} updated by {current_user.username}")
    return ExpenseResponse(message="Expense updated successfully!", expense=ExpenseOut.model_validate(expense))


@router.delete("/expenses/{expense_id}", response_model=MessageResponse)
def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = get_expense_or_404(db, expense_id)
    ensure_owner_or_admin(current_user, expense.owner_id)

    # Owners may only discard drafts; admins may delete someone else's expense in any state
    if expense.owner_id == current_user.id and expense.status != ExpenseStatus.DRAFT.value:
        raise ValidationError("Cannot delete submitted or approved expenses.")

    db.delete(expense)
    db.commit()
    logger.info(f"Expense {expense_id} deleted by {current_user.username}")
    return MessageResponse(message="Expense deleted successfully!")


@router.post("/expenses/{expense_id}/submit", response_model=SubmitResponse)
def submit_expense(
    expense_id: int,
    body: Optional[SubmitRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    body = body or SubmitRequest()
    expense = get_expense_or_404(db, expense_id)
    if expense.owner_id != current_user.id:
        raise ForbiddenError("Access denied.")
    check_expense_transition(
        expense.status, ExpenseStatus.SUBMITTED, message="Only draft expenses can be submitted."
    )

    approver = resolve_approver(db, expense, body.approver_id)
    approval = submit_for_approval(db, expense, approver, body.priority, body.due_date)
    logger.info(
        f"Expense {expense.id} submitted by {current_user.username}; "
        f"approval {approval.id} assigned to {approver.username}"
    )
    return SubmitResponse(
        message="Expense submitted for approval successfully!",
        expense=ExpenseOut.model_validate(expense),
        approval=ApprovalOut.model_validate(approval),
    )
