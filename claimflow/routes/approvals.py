"""
Approval workflow routes for ClaimFlow.

An approval record is opened when an expense is submitted and assigned to a
single approver. The approver (or an admin) decides it; the decision is
mirrored onto the expense in the same transaction.

Routes:
    GET  /approvals/pending               - Caller's pending approvals
    GET  /approvals/stats                 - Caller's approval counts
    GET  /approvals/admin/overdue         - All overdue approvals (admin)
    POST /approvals/admin/send-reminders  - Email approvers of overdue items (admin)
    GET  /approvals/{id}                  - One approval (approver or admin)
    POST /approvals/{id}/approve          - Approve
    POST /approvals/{id}/reject           - Reject (comments required)
    POST /approvals/{id}/delegate         - Record a delegate
    POST /approvals/{id}/escalate         - Flag for escalation
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from claimflow.db import get_db
from claimflow.dependencies import get_current_user, require_roles
from claimflow.exceptions import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from claimflow.logging_config import get_logger
from claimflow.models import utcnow
from claimflow.models.approval import Approval
from claimflow.models.expense import Expense
from claimflow.models.user import Role, User
from claimflow.schemas import ApprovalPagination
from claimflow.schemas.approval import (
    ApprovalListResponse,
    ApprovalOut,
    ApprovalResponse,
    ApprovalStats,
    DecisionRequest,
    DelegateRequest,
    EscalateRequest,
    ReminderResponse,
)
from claimflow.schemas.expense import ExpenseOut
from claimflow.utils import mailer
from claimflow.utils.pagination import MAX_PAGE_SIZE, apply_sort, paginate
from claimflow.workflow import (
    DECISION_TO_EXPENSE_STATUS,
    ApprovalStatus,
    Priority,
    check_approval_transition,
    check_expense_transition,
    is_open,
)

# Module logger for approval operations
logger = get_logger(__name__)

router = APIRouter()

PRIORITY_RANK = case(
    {Priority.LOW.value: 0, Priority.MEDIUM.value: 1, Priority.HIGH.value: 2, Priority.URGENT.value: 3},
    value=Approval.priority,
)

SORTABLE_COLUMNS = {
    "dueDate": Approval.due_date,
    "due_date": Approval.due_date,
    "createdAt": Approval.created_at,
    "created_at": Approval.created_at,
    "priority": PRIORITY_RANK,
}


def get_approval_or_404(db: Session, approval_id: int) -> Approval:
    approval = db.get(Approval, approval_id)
    if approval is None:
        raise NotFoundError("Approval", approval_id)
    return approval


def ensure_approver_or_admin(user: User, approval: Approval) -> None:
    if approval.approver_id != user.id and not user.is_admin:
        logger.warning(f"User {user.username} denied access to approval {approval.id}")
        raise ForbiddenError("Access denied.")


def overdue_query(db: Session):
    """Pending approvals whose due date has passed, earliest first."""
    return (
        db.query(Approval)
        .filter(Approval.status == ApprovalStatus.PENDING.value, Approval.due_date < utcnow())
        .order_by(Approval.due_date.asc(), Approval.id.asc())
    )


def _update_if_pending(db: Session, approval: Approval, values: dict, message: str) -> None:
    """Write ``values`` only if the approval is still pending, then commit."""
    try:
        updated = (
            db.query(Approval)
            .filter(Approval.id == approval.id, Approval.status == ApprovalStatus.PENDING.value)
            .update(values, synchronize_session=False)
        )
        if updated != 1:
            raise InvalidStateError(message)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(approval)


def decide_approval(
    db: Session,
    approval: Approval,
    decision: ApprovalStatus,
    actor: User,
    comments: Optional[str] = None,
) -> Expense:
    """
    Approve or reject an approval and mirror the outcome onto its expense.

    Both rows are updated conditionally on their current status and commit
    together; if either has moved on, nothing is written.

    Returns:
        The refreshed expense
    """
    check_approval_transition(approval.status, decision)
    expense = approval.expense
    expense_target = check_expense_transition(expense.status, DECISION_TO_EXPENSE_STATUS[decision])
    now = utcnow()

    expense_values = {"status": expense_target.value}
    if decision == ApprovalStatus.APPROVED:
        expense_values.update(approved_by_id=actor.id, approved_at=now)
    else:
        expense_values["rejection_reason"] = comments

    try:
        updated = (
            db.query(Approval)
            .filter(Approval.id == approval.id, Approval.status == ApprovalStatus.PENDING.value)
            .update(
                {
                    "status": decision.value,
                    "comments": comments,
                    "reviewed_at": now,
                    "reviewed_by_id": approval.approver_id,
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise InvalidStateError("Approval has already been processed.")

        updated = (
            db.query(Expense)
            .filter(Expense.id == expense.id, Expense.status == expense.status)
            .update(expense_values, synchronize_session=False)
        )
        if updated != 1:
            raise InvalidStateError("Expense status changed concurrently; reload and retry.")
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(approval)
    db.refresh(expense)
    return expense


def get_approval_stats(db: Session, approver_id: int) -> dict:
    """Counts of the approvals assigned to one approver."""
    pending = Approval.status == ApprovalStatus.PENDING.value
    total, pending_count, approved_count, rejected_count, overdue_count = (
        db.query(
            func.count(Approval.id),
            func.sum(case((pending, 1), else_=0)),
            func.sum(case((Approval.status == ApprovalStatus.APPROVED.value, 1), else_=0)),
            func.sum(case((Approval.status == ApprovalStatus.REJECTED.value, 1), else_=0)),
            func.sum(case((pending & (Approval.due_date < utcnow()), 1), else_=0)),
        )
        .filter(Approval.approver_id == approver_id)
        .one()
    )
    return {
        "total_approvals": total or 0,
        "pending_count": pending_count or 0,
        "approved_count": approved_count or 0,
        "rejected_count": rejected_count or 0,
        "overdue_count": overdue_count or 0,
    }


def send_overdue_reminders(db: Session) -> int:
    """
    Email the approver of every overdue approval not yet reminded.

    Each approval is marked as reminded right after its email goes out, so a
    failure part way through never causes duplicate reminders on retry.
    Returns the number of reminders sent.
    """
    sent = 0
    for approval in overdue_query(db).filter(Approval.reminder_sent.is_(False)).all():
        try:
            mailer.send_approval_reminder(approval.approver.email, approval)
        except Exception:
            logger.exception(f"Could not send reminder for approval {approval.id}")
            continue
        approval.reminder_sent = True
        approval.reminder_sent_at = utcnow()
        db.commit()
        sent += 1
    return sent


@router.get("/approvals/pending", response_model=ApprovalListResponse)
def list_pending(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    priority: Optional[Priority] = None,
    sort_by: str = Query("dueDate", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Approval).filter(
        Approval.approver_id == current_user.id,
        Approval.status == ApprovalStatus.PENDING.value,
    )
    if priority is not None:
        query = query.filter(Approval.priority == priority.value)
    query = apply_sort(query, SORTABLE_COLUMNS, sort_by, sort_order, tiebreaker=Approval.id)
    approvals, total = paginate(query, page, limit)
    return ApprovalListResponse(
        approvals=[ApprovalOut.model_validate(a) for a in approvals],
        pagination=ApprovalPagination.build(page, limit, total),
    )


@router.get("/approvals/stats", response_model=ApprovalStats)
def approval_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ApprovalStats(**get_approval_stats(db, current_user.id))


@router.get("/approvals/admin/overdue", response_model=ApprovalListResponse)
def list_overdue(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    approvals = overdue_query(db).all()
    return ApprovalListResponse(approvals=[ApprovalOut.model_validate(a) for a in approvals])


@router.post("/approvals/admin/send-reminders", response_model=ReminderResponse)
def send_reminders(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    sent = send_overdue_reminders(db)
    logger.info(f"{sent} overdue approval reminders sent (requested by {current_user.username})")
    return ReminderResponse(message=f"{sent} reminders sent.", reminders_sent=sent)


@router.get("/approvals/{approval_id}", response_model=ApprovalResponse)
def get_approval(
    approval_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    approval = get_approval_or_404(db, approval_id)
    ensure_approver_or_admin(current_user, approval)
    return ApprovalResponse(approval=ApprovalOut.model_validate(approval))


@router.post("/approvals/{approval_id}/approve", response_model=ApprovalResponse)
def approve(
    approval_id: int,
    body: Optional[DecisionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    comments = body.comments if body else None
    approval = get_approval_or_404(db, approval_id)
    ensure_approver_or_admin(current_user, approval)

    expense = decide_approval(db, approval, ApprovalStatus.APPROVED, current_user, comments or None)
    logger.info(f"Approval {approval.id} approved by {current_user.username} (expense {expense.id})")
    return ApprovalResponse(
        message="Expense approved successfully!",
        approval=ApprovalOut.model_validate(approval),
        expense=ExpenseOut.model_validate(expense),
    )


@router.post("/approvals/{approval_id}/reject", response_model=ApprovalResponse)
def reject(
    approval_id: int,
    body: Optional[DecisionRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    comments = body.comments if body else None
    if not comments:
        raise ValidationError("Rejection reason is required.")
    approval = get_approval_or_404(db, approval_id)
    ensure_approver_or_admin(current_user, approval)

    expense = decide_approval(db, approval, ApprovalStatus.REJECTED, current_user, comments)
    logger.info(f"Approval {approval.id} rejected by {current_user.username} (expense {expense.id})")
    return ApprovalResponse(
        message="Expense rejected successfully!",
        approval=ApprovalOut.model_validate(approval),
        expense=ExpenseOut.model_validate(expense),
    )


@router.post("/approvals/{approval_id}/delegate", response_model=ApprovalResponse)
def delegate(
    approval_id: int,
    body: DelegateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.delegate_to is None:
        raise ValidationError("Delegate user ID is required.")
    if not body.reason:
        raise ValidationError("Delegation reason is required.")
    approval = get_approval_or_404(db, approval_id)
    ensure_approver_or_admin(current_user, approval)
    if not is_open(approval.status):
        raise InvalidStateError("Cannot delegate processed approval.", current_status=approval.status)

    delegate_user = db.get(User, body.delegate_to)
    if delegate_user is None:
        raise NotFoundError("Delegate user", body.delegate_to)
    if delegate_user.id == approval.approver_id:
        raise ValidationError("Cannot delegate an approval to its current approver.")

    _update_if_pending(
        db,
        approval,
        {"delegated_to_id": delegate_user.id, "delegation_reason": body.reason},
        "Cannot delegate processed approval.",
    )
    logger.info(f"Approval {approval.id} delegated to {delegate_user.username} by {current_user.username}")
    return ApprovalResponse(message="Approval delegated successfully!", approval=ApprovalOut.model_validate(approval))


@router.post("/approvals/{approval_id}/escalate", response_model=ApprovalResponse)
def escalate(
    approval_id: int,
    body: EscalateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not body.reason:
        raise ValidationError("Escalation reason is required.")
    approval = get_approval_or_404(db, approval_id)
    if current_user.id not in (approval.approver_id, approval.requested_by_id) and not current_user.is_admin:
        logger.warning(f"User {current_user.username} denied escalation of approval {approval.id}")
        raise ForbiddenError("Access denied.")
    if not is_open(approval.status):
        raise InvalidStateError("Cannot escalate processed approval.", current_status=approval.status)

    _update_if_pending(
        db,
        approval,
        {"escalated_at": utcnow(), "escalated_by_id": current_user.id, "escalation_reason": body.reason},
        "Cannot escalate processed approval.",
    )
    logger.warning(f"Approval {approval.id} escalated by {current_user.username}: {body.reason}")
    return ApprovalResponse(message="Approval escalated successfully!", approval=ApprovalOut.model_validate(approval))
