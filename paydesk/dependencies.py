"""
PayDesk - FastAPI Dependencies

Shared dependencies for authentication, database sessions and role checks.

This module provides dependency injection for:
1. Database sessions
2. Current user authentication
3. Role-based access control (admin / employee)
4. Shared services (file storage, email)
"""

import uuid
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.models.user import User, UserRole
from paydesk.services.email_service import EmailService
from paydesk.services.file_storage_service import FileStorageService
from paydesk.utils.error_handling import (
    AppException,
    AuthenticationException,
    AuthorizationException,
    ErrorCode,
    InsufficientPermissionsException,
    TokenInvalidException,
)
from paydesk.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer header first, then the access_token cookie."""
    if credentials:
        return credentials.credentials
    token = request.cookies.get("access_token")
    if token and token.startswith("Bearer "):
        token = token[7:]
    return token


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> User:
    """
    Get the current authenticated user from JWT token.

    Token can be provided via:
    1. Authorization: Bearer <token> header
    2. access_token cookie

    Raises:
        AuthenticationException: missing token, unknown user (401)
        TokenExpiredException / TokenInvalidException: bad token (401)
        AuthorizationException: account deactivated (403)
    """
    token = _extract_token(request, credentials)
    if not token:
        raise AuthenticationException("Not authenticated")

    payload = verify_access_token(token)

    try:
        user_uuid = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise TokenInvalidException("Invalid user ID in token")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationException("User not found", code=ErrorCode.USER_NOT_FOUND)

    if not user.is_active:
        raise AuthorizationException(
            "User account is deactivated",
            code=ErrorCode.ACCOUNT_DISABLED,
        )

    return user


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> Optional[User]:
    """
    Get current user if authenticated, otherwise return None.
    Useful for endpoints that work differently for authenticated vs anonymous users.
    """
    if not _extract_token(request, credentials):
        return None

    try:
        return await get_current_user(request, credentials, db)
    except AppException:
        return None


def require_role(*allowed_roles: UserRole):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(user: User = Depends(require_role(UserRole.ADMIN))):
            ...
    """
    async def role_checker(
        current_user: User = Depends(get_current_user),
    ) -> User:
        if current_user.role not in allowed_roles:
            raise InsufficientPermissionsException(
                required_permission=" or ".join(r.value for r in allowed_roles),
                user_role=current_user.role.value,
            )
        return current_user

    return role_checker


require_admin = require_role(UserRole.ADMIN)
require_employee = require_role(UserRole.EMPLOYEE)


def ensure_owner_or_admin(user: User, owner_id: uuid.UUID, resource: str = "resource") -> None:
    """Raise unless the user owns the resource or is an admin."""
    if user.role != UserRole.ADMIN and user.id != owner_id:
        raise AuthorizationException(f"Access denied to this {resource}")


# ===========================================
# SHARED SERVICES
# ===========================================

def get_file_storage(request: Request) -> FileStorageService:
    return FileStorageService(request.app.state.settings)


def get_email_service(request: Request) -> EmailService:
    return EmailService(request.app.state.settings)
