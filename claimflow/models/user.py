from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from claimflow.models import Base, utcnow


class Role(str, Enum):
    USER = "user"
    EDITOR = "editor"
    ADMIN = "admin"


# Roles allowed to review expenses and manage categories
APPROVER_ROLES = (Role.EDITOR.value, Role.ADMIN.value)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)  # always lowercase
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    location = Column(String(255), nullable=True)
    password_hash = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=Role.USER.value)
    # SHA-256 digest of the emailed reset token, never the token itself
    reset_password_token = Column(String(64), nullable=True, index=True)
    reset_password_expires = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    expenses = relationship("Expense", back_populates="owner", foreign_keys="Expense.owner_id")

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value
