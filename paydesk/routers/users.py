"""
PayDesk - Users Router

API endpoints for account management.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import ensure_owner_or_admin, get_current_user, require_admin
from paydesk.models.user import User, UserRole
from paydesk.schemas.auth import UserResponse, user_to_response
from paydesk.schemas.common import MessageResponse, PaginationMeta
from paydesk.services.user_service import UserService
from paydesk.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, pagination_meta


router = APIRouter(prefix="/users", tags=["Users"])


# ===========================================
# REQUEST/RESPONSE SCHEMAS
# ===========================================

class UserUpdateRequest(BaseModel):
    """Profile update. Salary fields are admin only."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    department: Optional[str] = Field(None, max_length=30)
    position: Optional[str] = Field(None, max_length=50)
    joining_date: Optional[date] = None
    basic_salary: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    salary_allowances: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    bank_account_number: Optional[str] = Field(None, max_length=30)
    bank_name: Optional[str] = Field(None, max_length=100)
    bank_ifsc_code: Optional[str] = Field(None, max_length=20)


class RoleChangeRequest(BaseModel):
    role: UserRole


class UserListResponse(BaseModel):
    items: List[UserResponse]
    pagination: PaginationMeta


class DepartmentCount(BaseModel):
    department: str
    count: int


class UserStatsResponse(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    admins: int
    employees: int
    recent_registrations: int
    departments: List[DepartmentCount]


# ===========================================
# ENDPOINTS
# ===========================================

@router.get(
    "",
    response_model=UserListResponse,
    summary="List accounts",
)
async def list_users(
    search: Optional[str] = Query(None, description="Name, email or employee code"),
    role: Optional[UserRole] = Query(None),
    department: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    users, total = await UserService(db).get_users(
        search=search,
        role=role,
        department=department,
        is_active=is_active,
        page=page,
        limit=limit,
    )
    return UserListResponse(
        items=[user_to_response(u) for u in users],
        pagination=PaginationMeta(**pagination_meta(page, limit, total)),
    )


@router.get(
    "/employees",
    response_model=List[UserResponse],
    summary="Active employees",
)
async def list_employees(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    employees = await UserService(db).get_active_employees()
    return [user_to_response(u) for u in employees]


@router.get(
    "/stats",
    response_model=UserStatsResponse,
    summary="Headcount statistics",
)
async def user_stats(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    return UserStatsResponse(**await UserService(db).get_stats())


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get account",
)
async def get_user(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    """Owners may read their own account; admins any."""
    ensure_owner_or_admin(current_user, user_id, "user")
    return user_to_response(await UserService(db).get_user(user_id))


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update account",
)
async def update_user(
    user_id: uuid.UUID,
    request: UserUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    user = await UserService(db).update_user(
        current_user, user_id, request.model_dump(exclude_unset=True, exclude_none=True)
    )
    return user_to_response(user)


@router.delete(
    "/{user_id}",
    response_model=MessageResponse,
    summary="Deactivate account",
    description="Soft delete: the account is deactivated, never removed.",
)
async def deactivate_user(
    user_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    await UserService(db).set_active(current_user, user_id, False)
    return MessageResponse(message="User deactivated successfully")


@router.put(
    "/{user_id}/activate",
    response_model=UserResponse,
    summary="Reactivate account",
)
async def activate_user(
    user_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    user = await UserService(db).set_active(current_user, user_id, True)
    return user_to_response(user)


@router.put(
    "/{user_id}/role",
    response_model=UserResponse,
    summary="Change account role",
)
async def change_role(
    user_id: uuid.UUID,
    request: RoleChangeRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    user = await UserService(db).change_role(current_user, user_id, request.role)
    return user_to_response(user)
