"""
PayDesk - Authentication Router

API endpoints for registration, login and the current account.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.config import get_settings
from paydesk.database import get_async_session
from paydesk.dependencies import get_current_user, get_email_service, get_optional_user
from paydesk.models.user import User, UserRole
from paydesk.schemas.auth import (
    PasswordChangeRequest,
    TokenResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
    UserWithTokenResponse,
    user_to_response,
)
from paydesk.schemas.common import MessageResponse
from paydesk.services.auth_service import AuthService
from paydesk.services.email_service import EmailService
from paydesk.utils.error_handling import InsufficientPermissionsException
from paydesk.utils.security import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _issue_token(user: User, response: Response) -> TokenResponse:
    """Create an access token and mirror it into the access_token cookie."""
    settings = get_settings()
    token = create_access_token({"sub": str(user.id), "role": user.role.value})
    expires_in = settings.access_token_expire_minutes * 60
    response.set_cookie(
        key="access_token",
        value=f"Bearer {token}",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=expires_in,
    )
    return TokenResponse(access_token=token, expires_in=expires_in)


@router.post(
    "/register",
    response_model=UserWithTokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
    description="Anonymous registrations are always employees. Only an authenticated admin may create admins.",
)
async def register(
    request: UserRegisterRequest,
    response: Response,
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_session),
    email_service: EmailService = Depends(get_email_service),
):
    if request.role == UserRole.ADMIN and (current_user is None or current_user.role != UserRole.ADMIN):
        raise InsufficientPermissionsException(
            required_permission=UserRole.ADMIN.value,
            user_role=current_user.role.value if current_user else None,
        )

    auth_service = AuthService(db)
    user = await auth_service.register_user(
        name=request.name,
        email=request.email,
        password=request.password,
        role=request.role,
        department=request.department,
        position=request.position,
        joining_date=request.joining_date,
        basic_salary=request.basic_salary,
        salary_allowances=request.salary_allowances,
        bank_account_number=request.bank_account_number,
        bank_name=request.bank_name,
        bank_ifsc_code=request.bank_ifsc_code,
    )

    await email_service.send_welcome_email(user.email, user.name, user.employee_code)

    return UserWithTokenResponse(
        user=user_to_response(user),
        tokens=_issue_token(user, response),
    )


@router.post(
    "/login",
    response_model=UserWithTokenResponse,
    summary="Login",
)
async def login(
    request: UserLoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
):
    """Authenticate with email and password."""
    user = await AuthService(db).authenticate_user(request.email, request.password)
    return UserWithTokenResponse(
        user=user_to_response(user),
        tokens=_issue_token(user, response),
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
)
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user),
):
    """Clear the auth cookie. Tokens are stateless and expire on their own."""
    response.delete_cookie("access_token")
    logger.info(f"User {current_user.id} logged out")
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Current account",
)
async def me(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)


@router.put(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
)
async def change_password(
    request: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    await AuthService(db).change_password(
        current_user,
        request.current_password,
        request.new_password,
        request.confirm_password,
    )
    return MessageResponse(message="Password changed successfully")


@router.post(
    "/refresh-token",
    response_model=TokenResponse,
    summary="Refresh access token",
)
async def refresh_token(
    response: Response,
    current_user: User = Depends(get_current_user),
):
    """Issue a fresh token for the current account."""
    return _issue_token(current_user, response)
