"""
Expense category routes for ClaimFlow.

Categories are shared across the company. Anyone signed in can read them;
admins and editors maintain them; only admins delete or seed defaults.

Routes:
    GET    /categories                - List categories (active only by default)
    GET    /categories/{id}           - One category
    POST   /categories                - Create (admin/editor)
    PUT    /categories/{id}           - Rename, describe, (de)activate (admin/editor)
    DELETE /categories/{id}           - Delete an unused category (admin)
    POST   /categories/seed-defaults  - Create any missing default categories (admin)
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from claimflow.db import get_db
from claimflow.dependencies import get_current_user, require_roles
from claimflow.exceptions import CategoryInUseError, ConflictError, NotFoundError
from claimflow.logging_config import get_logger
from claimflow.models.expense import Category, Expense
from claimflow.models.user import Role, User
from claimflow.schemas import MessageResponse
from claimflow.schemas.category import (
    CategoryCreate,
    CategoryListResponse,
    CategoryOut,
    CategoryResponse,
    CategoryUpdate,
)

# Module logger for category management
logger = get_logger(__name__)

router = APIRouter()

DEFAULT_CATEGORIES = [
    ("Office Supplies", "Office supplies and materials"),
    ("Marketing", "Marketing and advertising expenses"),
    ("Food", "Food and beverage expenses"),
    ("IT", "Information technology expenses"),
    ("Team Building", "Team building and events"),
    ("Travel", "Travel and accommodation expenses"),
    ("Training", "Training and development expenses"),
    ("Equipment", "Equipment and hardware purchases"),
]


def category_name_taken(db: Session, name: str) -> bool:
    return db.query(Category.id).filter(Category.name == name).first() is not None


def commit_category(db: Session, message: str) -> None:
    """Commit, turning a lost race on the unique name index into a conflict."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Category write rejected by unique index: {message}")
        raise ConflictError(message)


def get_category_or_404(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category", category_id)
    return category


def seed_default_categories(db: Session, created_by: User) -> int:
    """Create the default categories that don't exist yet. Returns how many were added."""
    existing = {name for (name,) in db.query(Category.name).all()}
    created = 0
    for name, description in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        db.add(Category(name=name, description=description, created_by_id=created_by.id))
        created += 1
    db.commit()
    return created


@router.get("/categories", response_model=CategoryListResponse)
def list_categories(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    categories = query.order_by(Category.name).all()
    return CategoryListResponse(categories=[CategoryOut.model_validate(c) for c in categories])


@router.get("/categories/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return CategoryResponse(category=CategoryOut.model_validate(get_category_or_404(db, category_id)))


@router.post("/categories/seed-defaults", response_model=MessageResponse)
def seed_defaults(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    created = seed_default_categories(db, current_user)
    logger.info(f"Seeded {created} default categories (requested by {current_user.username})")
    return MessageResponse(message=f"{created} default categories created successfully!")


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    body: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN, Role.EDITOR)),
):
    if category_name_taken(db, body.name):
        raise ConflictError("Category already exists.")
    category = Category(name=body.name, description=body.description, created_by_id=current_user.id)
    db.add(category)
    commit_category(db, "Category already exists.")
    db.refresh(category)
    logger.info(f"Category '{category.name}' created by {current_user.username}")
    return CategoryResponse(message="Category created successfully!", category=CategoryOut.model_validate(category))


@router.put("/categories/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    body: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN, Role.EDITOR)),
):
    category = get_category_or_404(db, category_id)
    if body.name and body.name != category.name:
        if category_name_taken(db, body.name):
            raise ConflictError("Category name already exists.")
        category.name = body.name
    if body.description is not None:
        category.description = body.description
    if body.is_active is not None:
        category.is_active = body.is_active
    commit_category(db, "Category name already exists.")
    db.refresh(category)
    logger.info(f"Category {category.id} updated by {current_user.username}")
    return CategoryResponse(message="Category updated successfully!", category=CategoryOut.model_validate(category))


@router.delete("/categories/{category_id}", response_model=MessageResponse)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    category = get_category_or_404(db, category_id)
    in_use = db.query(func.count(Expense.id)).filter(Expense.category_id == category.id).scalar()
    if in_use:
        logger.warning(f"Refusing to delete category {category.name}: used by {in_use} expenses")
        raise CategoryInUseError(category.id, in_use)
    name = category.name
    db.delete(category)
    db.commit()
    logger.info(f"Category '{name}' deleted by {current_user.username}")
    return MessageResponse(message="Category deleted successfully!")
