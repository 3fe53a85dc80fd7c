"""
Authentication and authorization dependencies.

Every protected route depends on ``get_current_user``, which verifies the
bearer token and loads the account it names. Role allow-lists are expressed
with ``require_roles``; per-resource checks use ``ensure_owner_or_admin``.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from claimflow.db import get_db
from claimflow.exceptions import ForbiddenError, UnauthorizedError
from claimflow.logging_config import get_logger
from claimflow.models.user import Role, User
from claimflow.utils.auth import decode_access_token

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _user_from_credentials(credentials: HTTPAuthorizationCredentials, db: Session) -> User:
    payload = decode_access_token(credentials.credentials)
    user = db.get(User, payload["user_id"])
    if user is None:
        logger.warning(f"Token presented for missing user id {payload['user_id']}")
        raise UnauthorizedError("Invalid token.")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the authenticated user from the Authorization header."""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Access token required.")
    return _user_from_credentials(credentials, db)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous requests resolve to None."""
    if credentials is None or not credentials.credentials:
        return None
    return _user_from_credentials(credentials, db)


def require_roles(*roles: Role):
    """Build a dependency that admits only users holding one of ``roles``."""
    allowed = {Role(role).value for role in roles}

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(
                f"User {current_user.username} ({current_user.role}) denied; requires {sorted(allowed)}"
            )
            raise ForbiddenError("Insufficient permissions.")
        return current_user

    return dependency


def ensure_owner_or_admin(user: User, owner_id: int) -> None:
    if user.id != owner_id and not user.is_admin:
        raise ForbiddenError("Access denied.")
