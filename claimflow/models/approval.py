from sqlalchemy import Column, Integer, String, ForeignKey, Text, DateTime, Boolean
from sqlalchemy.orm import relationship

from claimflow.models import Base, utcnow
from claimflow.workflow import ApprovalStatus, Priority


class Approval(Base):
    """
    One review request for an expense, assigned to a single approver.

    Delegation records an alternate reviewer (delegated_to) but leaves
    approver untouched; decisions are still authorized against approver.
    """
    __tablename__ = "approvals"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    requested_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value, index=True)
    priority = Column(String(20), nullable=False, default=Priority.MEDIUM.value, index=True)
    comments = Column(Text, nullable=True)

    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Delegation
    delegated_to_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    delegation_reason = Column(Text, nullable=True)

    # Escalation
    escalated_at = Column(DateTime, nullable=True)
    escalated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    escalation_reason = Column(Text, nullable=True)

    due_date = Column(DateTime, nullable=False, index=True)

    # Reminders
    reminder_sent = Column(Boolean, nullable=False, default=False)
    reminder_sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    expense = relationship("Expense", back_populates="approvals")
    requested_by = relationship("User", foreign_keys=[requested_by_id])
    approver = relationship("User", foreign_keys=[approver_id])
    reviewed_by = relationship("User", foreign_keys=[reviewed_by_id])
    delegated_to = relationship("User", foreign_keys=[delegated_to_id])
    escalated_by = relationship("User", foreign_keys=[escalated_by_id])
