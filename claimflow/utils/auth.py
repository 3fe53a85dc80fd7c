"""
Password hashing and token helpers.

Passwords are hashed with bcrypt through passlib; bearer tokens are HS256
JWTs signed with python-jose.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from claimflow import config
from claimflow.exceptions import UnauthorizedError

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=config.BCRYPT_ROUNDS,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def generate_temporary_password() -> str:
    """16 hex characters."""
    return secrets.token_hex(8)


def generate_reset_token() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token carrying the user's id, email and role."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=config.ACCESS_TOKEN_EXPIRE_DAYS)
    )
    payload = {
        "sub": str(user.id),
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "exp": expire,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify a bearer token and return its claims.

    Raises:
        UnauthorizedError: expired, badly signed or malformed token
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise UnauthorizedError("Token expired.")
    except JWTError:
        raise UnauthorizedError("Invalid token.")
    if not isinstance(payload.get("user_id"), int):
        raise UnauthorizedError("Invalid token.")
    return payload
