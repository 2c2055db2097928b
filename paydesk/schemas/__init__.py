"""
PayDesk - Schemas Package

Pydantic schemas shared by several routers.
"""

from paydesk.schemas.common import MessageResponse, PaginationMeta
from paydesk.schemas.auth import (
    UserRegisterRequest,
    UserLoginRequest,
    PasswordChangeRequest,
    TokenResponse,
    UserResponse,
    UserWithTokenResponse,
    user_to_response,
)

__all__ = [
    "MessageResponse",
    "PaginationMeta",
    "UserRegisterRequest",
    "UserLoginRequest",
    "PasswordChangeRequest",
    "TokenResponse",
    "UserResponse",
    "UserWithTokenResponse",
    "user_to_response",
]
