"""
User administration routes for ClaimFlow.

Routes:
    GET    /users                        - List users (admin)
    GET    /users/admin/stats            - User counts by role (admin)
    GET    /users/profile/{id}           - One user's profile (self or admin)
    PUT    /users/{id}                   - Edit username/email/role (admin)
    DELETE /users/{id}                   - Delete a user (admin, not yourself)
    PUT    /users/profile/{id}/password  - Change password (self or admin)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from claimflow.db import get_db
from claimflow.dependencies import ensure_owner_or_admin, get_current_user, require_roles
from claimflow.exceptions import ConflictError, NotFoundError, ValidationError
from claimflow.logging_config import get_logger
from claimflow.models.approval import Approval
from claimflow.models.expense import Category, Expense
from claimflow.models.user import Role, User
from claimflow.routes.auth import apply_profile_changes, check_password_length
from claimflow.schemas import MessageResponse, UserPagination
from claimflow.schemas.user import (
    ChangePasswordRequest,
    UserListResponse,
    UserOut,
    UserResponse,
    UserStats,
    UserUpdate,
)
from claimflow.utils.auth import hash_password, verify_password
from claimflow.utils.pagination import MAX_PAGE_SIZE, apply_sort, paginate

# Module logger for user administration
logger = get_logger(__name__)

router = APIRouter()

SORTABLE_COLUMNS = {
    "createdAt": User.created_at,
    "created_at": User.created_at,
    "username": User.username,
    "email": User.email,
    "role": User.role,
    "lastLogin": User.last_login,
    "last_login": User.last_login,
}

RECENT_USERS_LIMIT = 10


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def get_user_stats(db: Session) -> dict:
    """Total users, counts per role and the most recently created accounts."""
    total = db.query(func.count(User.id)).scalar() or 0
    role_rows = db.query(User.role, func.count(User.id)).group_by(User.role).all()
    recent = (
        db.query(User)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(RECENT_USERS_LIMIT)
        .all()
    )
    return {
        "total_users": total,
        "role_breakdown": {role: count for role, count in role_rows},
        "recent_users": recent,
    }


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    role: Optional[Role] = None,
    search: Optional[str] = None,
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    query = db.query(User)
    if role is not None:
        query = query.filter(User.role == role.value)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(User.username.ilike(pattern), User.email.ilike(pattern)))
    query = apply_sort(query, SORTABLE_COLUMNS, sort_by, sort_order, tiebreaker=User.id)
    users, total = paginate(query, page, limit)
    return UserListResponse(
        users=[UserOut.model_validate(u) for u in users],
        pagination=UserPagination.build(page, limit, total),
    )


@router.get("/users/admin/stats", response_model=UserStats)
def user_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    stats = get_user_stats(db)
    return UserStats(
        total_users=stats["total_users"],
        role_breakdown=stats["role_breakdown"],
        recent_users=[UserOut.model_validate(u) for u in stats["recent_users"]],
    )


@router.get("/users/profile/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = get_user_or_404(db, user_id)
    ensure_owner_or_admin(current_user, user.id)
    return UserResponse(user=UserOut.model_validate(user))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    body: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    user = get_user_or_404(db, user_id)
    changes = body.model_dump(exclude_unset=True)
    role = changes.pop("role", None)
    apply_profile_changes(db, user, changes)
    if role is not None:
        if user.id == current_user.id and role != Role.ADMIN:
            raise ValidationError("You cannot remove your own admin role.")
        user.role = Role(role).value
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.username} updated by {current_user.username}")
    return UserResponse(message="User updated successfully!", user=UserOut.model_validate(user))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    user = get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise ValidationError("Cannot delete your own account.")

    owns_expenses = (
        db.query(Expense.id)
        .filter(or_(Expense.owner_id == user.id, Expense.approved_by_id == user.id))
        .first()
        is not None
    )
    in_approvals = (
        db.query(Approval.id)
        .filter(
            or_(
                Approval.approver_id == user.id,
                Approval.requested_by_id == user.id,
                Approval.reviewed_by_id == user.id,
                Approval.delegated_to_id == user.id,
                Approval.escalated_by_id == user.id,
            )
        )
        .first()
        is not None
    )
    if owns_expenses or in_approvals:
        logger.warning(f"Refusing to delete user {user.username}: referenced by expenses or approvals")
        raise ConflictError("User still has expenses or approvals and cannot be deleted.")

    db.query(Category).filter(Category.created_by_id == user.id).update(
        {"created_by_id": None}, synchronize_session=False
    )
    username = user.username
    db.delete(user)
    db.commit()
    logger.info(f"User {username} deleted by {current_user.username}")
    return MessageResponse(message="User deleted successfully!")


@router.put("/users/profile/{user_id}/password", response_model=MessageResponse)
def change_password(
    user_id: int,
    body: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = get_user_or_404(db, user_id)
    ensure_owner_or_admin(current_user, user.id)
    check_password_length(body.new_password)

    # Admins resetting someone else's password skip the current-password check
    if user.id == current_user.id:
        if not body.current_password or not verify_password(body.current_password, user.password_hash):
            logger.warning(f"Password change refused for {user.username}: wrong current password")
            raise ValidationError("Current password is incorrect.")

    user.password_hash = hash_password(body.new_password)
    db.commit()
    logger.info(f"Password changed for {user.username} by {current_user.username}")
    return MessageResponse(message="Password changed successfully!")
