"""
Authentication routes for ClaimFlow.

Routes:
    POST /auth/register         - Create an account and email a temporary password
    POST /auth/login            - Exchange email + password for a bearer token
    POST /auth/forgot-password  - Email a password reset link
    POST /auth/reset-password   - Set a new password with a reset token
    GET  /auth/profile          - Current user's profile
    PUT  /auth/profile          - Update the current user's profile
"""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from claimflow import config
from claimflow.db import get_db
from claimflow.dependencies import get_current_user, get_optional_user
from claimflow.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTokenError,
    ServerError,
    UnauthorizedError,
    ValidationError,
)
from claimflow.logging_config import get_logger
from claimflow.models import utcnow
from claimflow.models.user import Role, User
from claimflow.schemas import MessageResponse
from claimflow.schemas.user import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ProfileUpdate,
    RegisterRequest,
    ResetPasswordRequest,
    UserOut,
    UserResponse,
)
from claimflow.utils import mailer
from claimflow.utils.auth import (
    create_access_token,
    digest_token,
    generate_reset_token,
    generate_temporary_password,
    hash_password,
    verify_password,
)

# Module logger for authentication operations
logger = get_logger(__name__)

router = APIRouter()

RESET_REQUESTED_MESSAGE = "If the email exists, a password reset link has been sent."


def unique_username(db: Session, username: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is None


def unique_email(db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User).filter(User.email == email.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is None


def check_password_length(password: str) -> None:
    if len(password) < config.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters long."
        )


def apply_profile_changes(db: Session, user: User, changes: dict) -> None:
    """Apply username/email/name changes, re-checking uniqueness."""
    username = changes.pop("username", None)
    email = changes.pop("email", None)
    if username and username != user.username:
        if not unique_username(db, username, exclude_id=user.id):
            raise ConflictError("Username already exists.")
        user.username = username
    if email and email != user.email:
        if not unique_email(db, email, exclude_id=user.id):
            raise ConflictError("Email already exists.")
        user.email = email.lower()
    for field in ("first_name", "last_name", "phone", "location"):
        if field in changes:
            setattr(user, field, changes[field])


@router.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    logger.info(f"Registration attempt for username: {body.username}")
    role = body.role or Role.USER
    if role != Role.USER and (current_user is None or not current_user.is_admin):
        logger.warning(f"Registration refused - role {role.value} requested without admin rights")
        raise ForbiddenError("Only admins can assign elevated roles.")
    if not unique_username(db, body.username) or not unique_email(db, body.email):
        logger.warning(f"Registration failed - username or email already taken: {body.username}")
        raise ConflictError("Email or username already exists.")

    temporary_password = generate_temporary_password()
    user = User(
        username=body.username,
        email=body.email,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        location=body.location,
        role=role.value,
        password_hash=hash_password(temporary_password),
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Registration lost a race for username or email: {body.username}")
        raise ConflictError("Email or username already exists.")
    try:
        mailer.send_temporary_password(user.email, temporary_password)
    except Exception:
        db.rollback()
        logger.exception(f"Could not deliver temporary password to {body.email}")
        raise ServerError("Server error while creating user.")
    db.commit()
    db.refresh(user)
    logger.info(f"New user registered successfully: {user.username} ({user.role})")
    return UserResponse(
        message="User created successfully! A temporary password has been sent to the email.",
        user=UserOut.model_validate(user),
    )


@router.post("/auth/login", response_model=LoginResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    email = body.email.lower()
    logger.info(f"Login attempt for email: {email}")
    user = db.query(User).filter(User.email == email).first()
    if user is None or not verify_password(body.password, user.password_hash):
        logger.warning(f"Login failed for email: {email} - invalid credentials")
        raise UnauthorizedError("Invalid email or password.")

    token = create_access_token(user)
    user.last_login = utcnow()
    db.commit()
    db.refresh(user)
    logger.info(f"Login successful for user: {user.username}")
    return LoginResponse(message="Login successful!", token=token, user=UserOut.model_validate(user))


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(body: ForgotPasswordRequest, db: Session = Depends(get_db)):
    email = body.email.lower()
    user = db.query(User).filter(User.email == email).first()
    if user is None:
        # Same answer either way; callers can't probe for accounts
        logger.info(f"Password reset requested for unknown email: {email}")
        return MessageResponse(message=RESET_REQUESTED_MESSAGE)

    token = generate_reset_token()
    user.reset_password_token = digest_token(token)
    user.reset_password_expires = utcnow() + timedelta(minutes=config.RESET_TOKEN_EXPIRE_MINUTES)
    db.flush()
    try:
        mailer.send_password_reset(user.email, token)
    except Exception:
        db.rollback()
        logger.exception(f"Could not deliver password reset email to {email}")
        raise ServerError("Server error during password reset request.")
    db.commit()
    logger.info(f"Password reset token issued for user: {user.username}")
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)):
    check_password_length(body.new_password)
    user = (
        db.query(User)
        .filter(
            User.reset_password_token == digest_token(body.token),
            User.reset_password_expires > utcnow(),
        )
        .first()
    )
    if user is None:
        logger.warning("Password reset attempted with invalid or expired token")
        raise InvalidTokenError()

    user.password_hash = hash_password(body.new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    db.commit()
    logger.info(f"Password reset completed for user: {user.username}")
    return MessageResponse(message="Password reset successful!")


@router.get("/auth/profile", response_model=UserResponse)
def get_profile(current_user: User = Depends(get_current_user)):
    return UserResponse(user=UserOut.model_validate(current_user))


@router.put("/auth/profile", response_model=UserResponse)
def update_profile(
    body: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    apply_profile_changes(db, current_user, body.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(current_user)
    logger.info(f"Profile updated for user: {current_user.username}")
    return UserResponse(message="Profile updated successfully!", user=UserOut.model_validate(current_user))
