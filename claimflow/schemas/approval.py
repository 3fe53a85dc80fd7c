from datetime import datetime, timezone
from typing import Optional

from pydantic import field_validator

from claimflow.schemas import APIModel, ApprovalPagination
from claimflow.schemas.expense import ExpenseOut
from claimflow.schemas.user import UserSummary
from claimflow.workflow import ApprovalStatus, Priority


class ApprovalOut(APIModel):
    id: int
    expense: Optional[ExpenseOut] = None
    requested_by: Optional[UserSummary] = None
    approver: Optional[UserSummary] = None
    status: ApprovalStatus
    priority: Priority
    comments: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[UserSummary] = None
    delegated_to: Optional[UserSummary] = None
    delegation_reason: Optional[str] = None
    escalated_at: Optional[datetime] = None
    escalated_by: Optional[UserSummary] = None
    escalation_reason: Optional[str] = None
    due_date: datetime
    reminder_sent: bool = False
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubmitRequest(APIModel):
    """Optional routing details when submitting an expense."""
    approver_id: Optional[int] = None
    priority: Priority = Priority.MEDIUM
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def to_naive_utc(cls, value):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class DecisionRequest(APIModel):
    comments: Optional[str] = None


class DelegateRequest(APIModel):
    delegate_to: Optional[int] = None
    reason: Optional[str] = None


class EscalateRequest(APIModel):
    reason: Optional[str] = None


class ApprovalResponse(APIModel):
    message: Optional[str] = None
    approval: ApprovalOut
    expense: Optional[ExpenseOut] = None


class SubmitResponse(APIModel):
    message: str
    expense: ExpenseOut
    approval: ApprovalOut


class ApprovalListResponse(APIModel):
    approvals: list[ApprovalOut]
    pagination: Optional[ApprovalPagination] = None


class ApprovalStats(APIModel):
    total_approvals: int
    pending_count: int
    approved_count: int
    rejected_count: int
    overdue_count: int


class ReminderResponse(APIModel):
    message: str
    reminders_sent: int
