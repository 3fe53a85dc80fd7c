"""
Request and response schemas.

JSON payloads use camelCase keys; requests also accept the snake_case field
names. Response models read straight from ORM objects.
"""

from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from claimflow.utils.pagination import page_meta


class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class MessageResponse(APIModel):
    message: str


class Pagination(APIModel):
    total_field: ClassVar[str] = "total"

    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int):
        meta = page_meta(page, limit, total)
        meta[cls.total_field] = meta.pop("total")
        return cls(**meta)


class ExpensePagination(Pagination):
    total_field: ClassVar[str] = "total_expenses"
    total_expenses: int


class ApprovalPagination(Pagination):
    total_field: ClassVar[str] = "total_approvals"
    total_approvals: int


class UserPagination(Pagination):
    total_field: ClassVar[str] = "total_users"
    total_users: int
