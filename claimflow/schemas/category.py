from datetime import datetime
from typing import Optional

from pydantic import Field

from claimflow.schemas import APIModel
from claimflow.schemas.user import UserSummary


class CategorySummary(APIModel):
    id: int
    name: str
    description: Optional[str] = None


class CategoryOut(CategorySummary):
    is_active: bool
    created_by: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryCreate(APIModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = ""


class CategoryUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryResponse(APIModel):
    message: Optional[str] = None
    category: CategoryOut


class CategoryListResponse(APIModel):
    categories: list[CategoryOut]
