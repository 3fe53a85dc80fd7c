from enum import Enum

from sqlalchemy import Column, Integer, Float, String, ForeignKey, Text, DateTime, Boolean, JSON
from sqlalchemy.orm import relationship

from claimflow.models import Base, utcnow
from claimflow.workflow import ExpenseStatus


class RecurringFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class Category(Base):
    """Company-wide expense categories, managed by admins and editors."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    created_by = relationship("User")
    expenses = relationship("Expense", back_populates="category")


class Expense(Base):
    """
    An expense claim owned by the submitting user.

    The status column only changes through the transitions in
    ``claimflow.workflow``. For recurring expenses, recurring_frequency
    specifies how often the expense occurs.
    """
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False, index=True)

    subject = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default=ExpenseStatus.DRAFT.value, index=True)

    # {filename, original_name, mime_type, size, url}
    receipt = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    approved_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=True, index=True)

    # Recurring expense fields
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_frequency = Column(String(20), nullable=True)  # weekly, monthly, quarterly, yearly

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    owner = relationship("User", back_populates="expenses", foreign_keys=[owner_id])
    approved_by = relationship("User", foreign_keys=[approved_by_id])
    category = relationship("Category", back_populates="expenses")
    approvals = relationship("Approval", back_populates="expense", cascade="all, delete-orphan")

    @property
    def formatted_amount(self) -> str:
        return f"{self.amount:.2f} {self.currency}"
