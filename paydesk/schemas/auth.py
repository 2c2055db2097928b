"""
PayDesk - Authentication Schemas

Pydantic schemas for authentication requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from paydesk.models.user import User, UserRole


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class UserRegisterRequest(BaseModel):
    """
    Schema for account registration.

    ``role`` is honoured only when an administrator registers the account.
    """
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole = UserRole.EMPLOYEE

    department: Optional[str] = Field(None, max_length=30)
    position: Optional[str] = Field(None, max_length=50)
    joining_date: Optional[date] = None
    basic_salary: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    salary_allowances: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)

    bank_account_number: Optional[str] = Field(None, max_length=30)
    bank_name: Optional[str] = Field(None, max_length=100)
    bank_ifsc_code: Optional[str] = Field(None, max_length=20)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class UserLoginRequest(BaseModel):
    """Schema for login request."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class PasswordChangeRequest(BaseModel):
    """Schema for password change."""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class TokenResponse(BaseModel):
    """Schema for token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    """Schema for user response. Never carries the password hash."""
    id: UUID
    name: str
    email: str
    role: str
    employee_code: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    joining_date: Optional[date] = None
    basic_salary: Decimal
    salary_allowances: Decimal
    bank_account_number: Optional[str] = None
    bank_name: Optional[str] = None
    bank_ifsc_code: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserWithTokenResponse(BaseModel):
    """Schema for user response with token."""
    user: UserResponse
    tokens: TokenResponse


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role.value,
        employee_code=user.employee_code,
        department=user.department,
        position=user.position,
        joining_date=user.joining_date,
        basic_salary=user.basic_salary or Decimal("0"),
        salary_allowances=user.salary_allowances or Decimal("0"),
        bank_account_number=user.bank_account_number,
        bank_name=user.bank_name,
        bank_ifsc_code=user.bank_ifsc_code,
        is_active=user.is_active,
        last_login=user.last_login,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )
