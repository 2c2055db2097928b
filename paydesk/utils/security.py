"""
PayDesk - Security Utilities

Password hashing and JWT token management.
"""

from datetime import datetime, timedelta
from functools import lru_cache
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from paydesk.config import get_settings
from paydesk.utils.error_handling import TokenExpiredException, TokenInvalidException


@lru_cache()
def get_password_context() -> CryptContext:
    """Password hashing context (bcrypt, cost factor from settings)."""
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=get_settings().bcrypt_rounds,
    )


@lru_cache()
def _dummy_hash() -> str:
    # Verified against when an account does not exist so that a lookup miss
    # costs the same bcrypt work as a wrong password.
    return get_password_context().hash("paydesk-dummy-password")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plain password against a hashed password."""
    if hashed_password is None:
        get_password_context().verify(plain_password, _dummy_hash())
        return False
    return get_password_context().verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storing."""
    return get_password_context().hash(password)


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary containing token payload; ``sub`` is the account id
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    to_encode = data.copy()

    if expires_delta is not None:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(
            minutes=settings.access_token_expire_minutes
        )

    to_encode.update({"exp": expire, "iat": datetime.utcnow(), "type": "access"})

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def verify_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Raises:
        TokenExpiredException: signature valid but ``exp`` has passed
        TokenInvalidException: malformed, bad signature, wrong type or no subject
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
    except ExpiredSignatureError:
        raise TokenExpiredException()
    except JWTError:
        raise TokenInvalidException()

    if payload.get("type") != "access":
        raise TokenInvalidException("Invalid token type")
    if not payload.get("sub"):
        raise TokenInvalidException("Invalid token payload")

    return payload
