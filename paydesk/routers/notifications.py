"""
PayDesk - Notifications Router

API endpoints for the per-account notification feed.

Features:
- List notifications with filtering
- Mark as read / unread (single or all)
- Delete notifications, clear read ones
- Admin: create, broadcast and statistics
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import get_current_user, require_admin
from paydesk.models.notification import (
    Notification,
    NotificationCategory,
    NotificationPriority,
    NotificationType,
    RelatedModel,
)
from paydesk.models.user import User, UserRole
from paydesk.schemas.common import MessageResponse, PaginationMeta
from paydesk.services.notification_service import NotificationService
from paydesk.services.user_service import UserService
from paydesk.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, pagination_meta


router = APIRouter(prefix="/notifications", tags=["Notifications"])


# ===========================================
# REQUEST/RESPONSE SCHEMAS
# ===========================================

class NotificationResponse(BaseModel):
    """Schema for notification response."""
    id: uuid.UUID
    title: str
    message: str
    notification_type: str
    category: str
    priority: str
    is_read: bool
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None
    action_label: Optional[str] = None
    related_model: Optional[str] = None
    related_id: Optional[uuid.UUID] = None
    extra_data: Optional[Dict[str, Any]] = None
    created_at: datetime
    expires_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    """Schema for notification list response."""
    items: List[NotificationResponse]
    pagination: PaginationMeta
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class NotificationCreate(BaseModel):
    """Admin-created notification for one account."""
    user_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    notification_type: NotificationType = NotificationType.INFO
    category: NotificationCategory = NotificationCategory.OTHER
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_url: Optional[str] = Field(None, max_length=500)
    action_label: Optional[str] = Field(None, max_length=50)
    related_model: Optional[RelatedModel] = None
    related_id: Optional[uuid.UUID] = None
    extra_data: Optional[Dict[str, Any]] = None
    expires_at: Optional[datetime] = None


class BroadcastRequest(BaseModel):
    """Same notification to every active account, optionally one role."""
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    target_role: Optional[UserRole] = None
    notification_type: NotificationType = NotificationType.SYSTEM
    category: NotificationCategory = NotificationCategory.SYSTEM_UPDATE
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_url: Optional[str] = Field(None, max_length=500)
    action_label: Optional[str] = Field(None, max_length=50)
    expires_at: Optional[datetime] = None


class CountResponse(MessageResponse):
    count: int


# ===========================================
# HELPER FUNCTIONS
# ===========================================

def notification_to_response(notification: Notification) -> NotificationResponse:
    """Convert notification model to response."""
    return NotificationResponse(
        id=notification.id,
        title=notification.title,
        message=notification.message,
        notification_type=notification.notification_type.value,
        category=notification.category.value,
        priority=notification.priority.value,
        is_read=notification.is_read,
        read_at=notification.read_at,
        action_url=notification.action_url,
        action_label=notification.action_label,
        related_model=notification.related_model.value if notification.related_model else None,
        related_id=notification.related_id,
        extra_data=notification.extra_data,
        created_at=notification.created_at,
        expires_at=notification.expires_at,
    )


# ===========================================
# ENDPOINTS
# ===========================================

@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List notifications",
    description="Notifications of the current account, newest first. Expired ones are excluded.",
)
async def list_notifications(
    is_read: Optional[bool] = Query(None, description="Filter by read status"),
    category: Optional[NotificationCategory] = Query(None),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    service = NotificationService(db)
    notifications, total = await service.get_user_notifications(
        user_id=current_user.id,
        is_read=is_read,
        category=category,
        notification_type=notification_type,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return NotificationListResponse(
        items=[notification_to_response(n) for n in notifications],
        pagination=PaginationMeta(**pagination_meta(page, limit, total)),
        unread_count=await service.get_unread_count(current_user.id),
    )


@router.get(
    "/unread-count",
    response_model=UnreadCountResponse,
    summary="Get unread notification count",
)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    count = await NotificationService(db).get_unread_count(current_user.id)
    return UnreadCountResponse(unread_count=count)


@router.get(
    "/stats",
    summary="Notification statistics",
)
async def notification_stats(
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    return await NotificationService(db).get_stats()


@router.post(
    "",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create notification",
)
async def create_notification(
    request: NotificationCreate,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    await UserService(db).get_user(request.user_id)
    notification = await NotificationService(db).create_notification(**request.model_dump())
    return notification_to_response(notification)


@router.post(
    "/broadcast",
    response_model=CountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Broadcast notification",
)
async def broadcast_notification(
    request: BroadcastRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_async_session),
):
    count = await NotificationService(db).broadcast(**request.model_dump())
    return CountResponse(message=f"Notification sent to {count} users", count=count)


@router.put(
    "/mark-all-read",
    response_model=CountResponse,
    summary="Mark all notifications as read",
)
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    count = await NotificationService(db).mark_all_as_read(current_user.id)
    return CountResponse(message=f"{count} notifications marked as read", count=count)


@router.delete(
    "/clear-read",
    response_model=CountResponse,
    summary="Delete read notifications",
)
async def clear_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    count = await NotificationService(db).clear_read(current_user.id)
    return CountResponse(message=f"{count} read notifications deleted", count=count)


@router.get(
    "/{notification_id}",
    response_model=NotificationResponse,
    summary="Get notification",
)
async def get_notification(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    notification = await NotificationService(db).get_notification(notification_id, current_user.id)
    return notification_to_response(notification)


@router.put(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark notification as read",
)
async def mark_as_read(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    notification = await NotificationService(db).mark_as_read(notification_id, current_user.id)
    return notification_to_response(notification)


@router.put(
    "/{notification_id}/unread",
    response_model=NotificationResponse,
    summary="Mark notification as unread",
)
async def mark_as_unread(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    notification = await NotificationService(db).mark_as_unread(notification_id, current_user.id)
    return notification_to_response(notification)


@router.delete(
    "/{notification_id}",
    response_model=MessageResponse,
    summary="Delete notification",
)
async def delete_notification(
    notification_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
):
    await NotificationService(db).delete_notification(notification_id, current_user.id)
    return MessageResponse(message="Notification deleted successfully")
