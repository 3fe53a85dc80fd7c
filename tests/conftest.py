"""
Pytest fixtures and configuration for ClaimFlow tests.

This module provides common fixtures used across all test modules,
including database setup, test client, users for every role and a
captured mail outbox.
"""

import os
import tempfile

# Settings must be in place before claimflow is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_HOST"] = ""
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="claimflow-logs-"))

import pytest
from datetime import timedelta
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from claimflow.main import app
from claimflow.db import get_db
from claimflow.models import Base, utcnow
from claimflow.models.approval import Approval
from claimflow.models.expense import Category, Expense
from claimflow.models.user import Role, User
from claimflow.utils import mailer
from claimflow.utils.auth import create_access_token, hash_password

# Password given to every fixture user
TEST_PASSWORD = "testpassword123"

# Create in-memory SQLite database for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    """
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """
    Create a test client with overridden database dependency.
    """
    app.dependency_overrides[get_db] = lambda: db_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def outbox(monkeypatch) -> list:
    """Capture outgoing email messages instead of delivering them."""
    sent = []
    monkeypatch.setattr(mailer, "deliver", sent.append)
    return sent


def make_user(db_session: Session, username: str, role: Role) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        first_name=username.capitalize(),
        last_name="Tester",
        password_hash=hash_password(TEST_PASSWORD),
        role=role.value,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def admin_user(db_session: Session) -> User:
    return make_user(db_session, "admin", Role.ADMIN)


@pytest.fixture
def editor_user(db_session: Session) -> User:
    return make_user(db_session, "editor", Role.EDITOR)


@pytest.fixture
def employee(db_session: Session) -> User:
    """A regular user who files expenses."""
    return make_user(db_session, "employee", Role.USER)


@pytest.fixture
def other_employee(db_session: Session) -> User:
    return make_user(db_session, "other", Role.USER)


@pytest.fixture
def auth_headers() -> Callable[[User], dict]:
    """Build an Authorization header for a user."""
    def build(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user)}"}
    return build


@pytest.fixture
def travel_category(db_session: Session, admin_user: User) -> Category:
    category = Category(
        name="Travel",
        description="Travel and accommodation expenses",
        created_by_id=admin_user.id,
    )
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def inactive_category(db_session: Session, admin_user: User) -> Category:
    category = Category(name="Retired", description="No longer used", is_active=False, created_by_id=admin_user.id)
    db_session.add(category)
    db_session.commit()
    db_session.refresh(category)
    return category


@pytest.fixture
def draft_expense(db_session: Session, employee: User, travel_category: Category) -> Expense:
    """A 450.00 USD flight in Draft, owned by the employee."""
    expense = Expense(
        owner_id=employee.id,
        category_id=travel_category.id,
        subject="Flight",
        description="Conference flight",
        amount=450.0,
        currency="USD",
        tags=["conference"],
    )
    db_session.add(expense)
    db_session.commit()
    db_session.refresh(expense)
    return expense


def make_pending_approval(db_session: Session, expense: Expense, approver: User, due_in: timedelta) -> Approval:
    now = utcnow()
    expense.status = "Submitted"
    expense.submitted_at = now
    approval = Approval(
        expense_id=expense.id,
        requested_by_id=expense.owner_id,
        approver_id=approver.id,
        priority="Medium",
        due_date=now + due_in,
    )
    db_session.add(approval)
    db_session.commit()
    db_session.refresh(approval)
    return approval


@pytest.fixture
def pending_approval(db_session: Session, draft_expense: Expense, editor_user: User) -> Approval:
    """The draft expense submitted and assigned to the editor, due in 3 days."""
    return make_pending_approval(db_session, draft_expense, editor_user, timedelta(days=3))


@pytest.fixture
def overdue_approval(db_session: Session, draft_expense: Expense, editor_user: User) -> Approval:
    """Like pending_approval, but the due date passed a day ago."""
    return make_pending_approval(db_session, draft_expense, editor_user, timedelta(days=-1))
