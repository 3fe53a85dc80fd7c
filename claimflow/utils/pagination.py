"""Paging and sorting helpers shared by the list endpoints."""

import math

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from claimflow.exceptions import ValidationError

MAX_PAGE_SIZE = 100


def apply_sort(query: Query, sortable: dict, sort_by: str, sort_order: str, tiebreaker=None) -> Query:
    """
    Order a query by a whitelisted column.

    Args:
        sortable: Map of accepted sortBy values to columns
        sort_by: Requested key (camelCase or snake_case)
        sort_order: "asc" or "desc"
        tiebreaker: Column appended to keep page boundaries stable
    """
    column = sortable.get(sort_by)
    if column is None:
        allowed = ", ".join(sorted(k for k in sortable if "_" not in k))
        raise ValidationError(f"Cannot sort by '{sort_by}'. Use one of: {allowed}.")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sortOrder must be 'asc' or 'desc'.")
    direction = desc if sort_order == "desc" else asc
    query = query.order_by(direction(column))
    if tiebreaker is not None:
        query = query.order_by(direction(tiebreaker))
    return query


def paginate(query: Query, page: int, limit: int):
    """Return (items, total) for one page of a query."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, total


def page_meta(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total": total,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }
