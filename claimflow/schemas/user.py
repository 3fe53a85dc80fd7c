from datetime import datetime
from typing import Annotated, Optional

from pydantic import EmailStr, Field, StringConstraints, field_validator

from claimflow.models.user import Role
from claimflow.schemas import APIModel, UserPagination

# Passwords are taken exactly as typed
Password = Annotated[str, StringConstraints(strip_whitespace=False, min_length=1)]


class UserSummary(APIModel):
    id: int
    username: str
    email: str


class UserOut(UserSummary):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    role: Role
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class _EmailLowercase(APIModel):
    @field_validator("email", mode="after", check_fields=False)
    @classmethod
    def lowercase_email(cls, value):
        return value.lower() if value is not None else value


class RegisterRequest(_EmailLowercase):
    username: str = Field(min_length=1, max_length=150)
    email: EmailStr
    role: Optional[Role] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(APIModel):
    email: str = Field(min_length=1)
    password: Password


class LoginResponse(APIModel):
    message: str
    token: str
    user: UserOut


class ForgotPasswordRequest(APIModel):
    email: str = Field(min_length=1)


class ResetPasswordRequest(APIModel):
    token: str = Field(min_length=1)
    new_password: Password


class ProfileUpdate(_EmailLowercase):
    username: Optional[str] = Field(default=None, min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=255)


class UserUpdate(_EmailLowercase):
    """Admin edit of another account."""
    username: Optional[str] = Field(default=None, min_length=1, max_length=150)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None


class ChangePasswordRequest(APIModel):
    current_password: Optional[Annotated[str, StringConstraints(strip_whitespace=False)]] = None
    new_password: Password


class UserResponse(APIModel):
    message: Optional[str] = None
    user: UserOut


class UserListResponse(APIModel):
    users: list[UserOut]
    pagination: UserPagination


class UserStats(APIModel):
    total_users: int
    role_breakdown: dict[str, int]
    recent_users: list[UserOut]
