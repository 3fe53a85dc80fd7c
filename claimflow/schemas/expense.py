import re
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, Field, model_validator

from claimflow.models.expense import RecurringFrequency
from claimflow.schemas import APIModel, ExpensePagination
from claimflow.schemas.category import CategorySummary
from claimflow.schemas.user import UserSummary
from claimflow.workflow import ExpenseStatus

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def _normalize_currency(value):
    if value is None:
        return value
    value = value.strip().upper()
    if not CURRENCY_PATTERN.match(value):
        raise ValueError("Currency must be a 3-letter code such as USD")
    return value


def _clean_tags(value):
    # Order and duplicates are kept; blank entries are dropped.
    if value is None:
        return value
    return [tag.strip() for tag in value if tag and tag.strip()]


Currency = Annotated[str, AfterValidator(_normalize_currency)]
Tags = Annotated[list[str], AfterValidator(_clean_tags)]


class Receipt(APIModel):
    filename: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = Field(default=None, ge=0)
    url: Optional[str] = None


class ExpenseOut(APIModel):
    id: int
    subject: str
    description: Optional[str] = None
    amount: float
    currency: str
    formatted_amount: str
    category: Optional[CategorySummary] = None
    owner: Optional[UserSummary] = None
    status: ExpenseStatus
    receipt: Optional[Receipt] = None
    approved_by: Optional[UserSummary] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    tags: list[str] = []
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExpenseCreate(APIModel):
    subject: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    amount: float = Field(ge=0)
    currency: Currency = "USD"
    category: int
    tags: Tags = []
    receipt: Optional[Receipt] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None

    @model_validator(mode="after")
    def check_recurrence(self):
        if self.is_recurring and self.recurring_frequency is None:
            raise ValueError("recurringFrequency is required for recurring expenses")
        if not self.is_recurring:
            self.recurring_frequency = None
        return self


class ExpenseUpdate(APIModel):
    """Partial update; only fields present in the request are applied."""
    subject: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)
    currency: Optional[Currency] = None
    category: Optional[int] = None
    tags: Optional[Tags] = None
    receipt: Optional[Receipt] = None
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[RecurringFrequency] = None
    status: Optional[ExpenseStatus] = None
    rejection_reason: Optional[str] = None


class ExpenseResponse(APIModel):
    message: Optional[str] = None
    expense: ExpenseOut


class ExpenseListResponse(APIModel):
    expenses: list[ExpenseOut]
    pagination: ExpensePagination


class CategoryTotal(APIModel):
    category: str
    count: int
    total: float


class ExpenseStats(APIModel):
    total_expenses: int
    total_amount: float
    average_amount: float
    status_breakdown: dict[str, int]
    category_breakdown: list[CategoryTotal]
