"""
PayDesk - Notification Model

In-app notifications for expense and salary slip events.
After creation only the read state changes.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, String, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from paydesk.models.base import BaseModel, utcnow


class NotificationType(str, Enum):
    """Presentation type of a notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    EXPENSE = "expense"
    SALARY = "salary"
    SYSTEM = "system"


class NotificationCategory(str, Enum):
    """Event that produced the notification."""
    EXPENSE_SUBMITTED = "expense_submitted"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"
    SALARY_GENERATED = "salary_generated"
    SALARY_SENT = "salary_sent"
    SYSTEM_UPDATE = "system_update"
    REMINDER = "reminder"
    OTHER = "other"


class NotificationPriority(str, Enum):
    """Priority levels for notifications."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RelatedModel(str, Enum):
    """Kind of entity a notification points at."""
    EXPENSE = "expense"
    SALARY_SLIP = "salary_slip"
    USER = "user"


class Notification(BaseModel):
    """Notification addressed to one account."""

    __tablename__ = "notifications"

    # Recipient
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Notification content
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)

    # Classification
    notification_type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType),
        default=NotificationType.INFO,
        nullable=False,
    )
    category: Mapped[NotificationCategory] = mapped_column(
        SQLEnum(NotificationCategory),
        default=NotificationCategory.OTHER,
        nullable=False,
        index=True,
    )
    priority: Mapped[NotificationPriority] = mapped_column(
        SQLEnum(NotificationPriority),
        default=NotificationPriority.MEDIUM,
        nullable=False,
    )

    # Read state
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Action link (optional)
    action_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    action_label: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Related entity (optional)
    related_model: Mapped[Optional[RelatedModel]] = mapped_column(SQLEnum(RelatedModel), nullable=True)
    related_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    extra_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, category={self.category}, user={self.user_id})>"

    def mark_as_read(self) -> None:
        """Mark notification as read."""
        if not self.is_read:
            self.is_read = True
            self.read_at = utcnow()

    def mark_as_unread(self) -> None:
        self.is_read = False
        self.read_at = None
