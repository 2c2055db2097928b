"""
PayDesk - Notification Service

Per-account notification feed. Workflow events (expense submitted / approved /
rejected, salary slip generated / sent) go through ``notify_safely`` so a
failure to record a notification never undoes the transition that caused it.
"""

import uuid
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func, delete, or_
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.expense import ExpenseClaim
from paydesk.models.notification import (
    Notification,
    NotificationType,
    NotificationCategory,
    NotificationPriority,
    RelatedModel,
)
from paydesk.models.salary_slip import SalarySlip
from paydesk.models.user import User, UserRole
from paydesk.utils.error_handling import NotificationNotFoundException
from paydesk.utils.formatting import month_name

logger = logging.getLogger(__name__)


class NotificationService:
    """Service for managing notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _not_expired(self):
        return or_(
            Notification.expires_at.is_(None),
            Notification.expires_at > datetime.utcnow(),
        )

    async def create_notification(
        self,
        user_id: uuid.UUID,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
        category: NotificationCategory = NotificationCategory.OTHER,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        action_url: Optional[str] = None,
        action_label: Optional[str] = None,
        related_model: Optional[RelatedModel] = None,
        related_id: Optional[uuid.UUID] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> Notification:
        """Create a new notification for a user."""
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            category=category,
            priority=priority,
            action_url=action_url,
            action_label=action_label,
            related_model=related_model,
            related_id=related_id,
            extra_data=extra_data,
            expires_at=expires_at,
            is_read=False,
        )

        self.db.add(notification)
        if commit:
            await self.db.commit()
        else:
            await self.db.flush()

        logger.info(f"Notification created for user {user_id}: {title}")
        return notification

    async def notify_safely(self, notifications: List[Dict[str, Any]]) -> int:
        """
        Record workflow notifications best-effort.

        Called after the triggering transition has been committed. On failure
        the pending notifications are rolled back and the error is logged.

        Returns:
            Number of notifications recorded
        """
        if not notifications:
            return 0
        try:
            for kwargs in notifications:
                await self.create_notification(commit=False, **kwargs)
            await self.db.commit()
            return len(notifications)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to record {len(notifications)} notification(s): {e}", exc_info=True)
            return 0

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_notification(
        self,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Get a notification owned by a user."""
        result = await self.db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotificationNotFoundException(notification_id)
        return notification

    async def get_user_notifications(
        self,
        user_id: uuid.UUID,
        is_read: Optional[bool] = None,
        category: Optional[NotificationCategory] = None,
        notification_type: Optional[NotificationType] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Notification], int]:
        """
        Get notifications for a user with optional filters.
        Expired notifications are excluded.

        Returns:
            Tuple of (notifications, total_count)
        """
        conditions = [Notification.user_id == user_id, self._not_expired()]

        if is_read is not None:
            conditions.append(Notification.is_read == is_read)
        if category:
            conditions.append(Notification.category == category)
        if notification_type:
            conditions.append(Notification.notification_type == notification_type)

        count_result = await self.db.execute(
            select(func.count(Notification.id)).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_unread_count(self, user_id: uuid.UUID) -> int:
        """Get count of unread, unexpired notifications for a user."""
        result = await self.db.execute(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.is_read.is_(False))
            .where(self._not_expired())
        )
        return result.scalar() or 0

    # ===========================================
    # READ STATE
    # ===========================================

    async def mark_as_read(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        """Mark a notification as read."""
        notification = await self.get_notification(notification_id, user_id)
        notification.mark_as_read()
        await self.db.commit()
        return notification

    async def mark_as_unread(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
        notification = await self.get_notification(notification_id, user_id)
        notification.mark_as_unread()
        await self.db.commit()
        return notification

    async def mark_all_as_read(self, user_id: uuid.UUID) -> int:
        """Mark all notifications as read for a user."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.utcnow())
        )
        await self.db.commit()

        count = result.rowcount
        logger.info(f"Marked {count} notifications as read for user {user_id}")
        return count

    async def delete_notification(self, notification_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Delete a notification."""
        result = await self.db.execute(
            delete(Notification)
            .where(Notification.id == notification_id)
            .where(Notification.user_id == user_id)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            raise NotificationNotFoundException(notification_id)
        await self.db.commit()

    async def clear_read(self, user_id: uuid.UUID) -> int:
        """Delete every read notification of a user."""
        result = await self.db.execute(
            delete(Notification)
            .where(Notification.user_id == user_id)
            .where(Notification.is_read.is_(True))
        )
        await self.db.commit()
        return result.rowcount

    # ===========================================
    # ADMIN OPERATIONS
    # ===========================================

    async def broadcast(
        self,
        title: str,
        message: str,
        target_role: Optional[UserRole] = None,
        notification_type: NotificationType = NotificationType.SYSTEM,
        category: NotificationCategory = NotificationCategory.SYSTEM_UPDATE,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        action_url: Optional[str] = None,
        action_label: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> int:
        """Send the same notification to every active account (optionally one role)."""
        query = select(User.id).where(User.is_active.is_(True))
        if target_role:
            query = query.where(User.role == target_role)
        user_ids = list((await self.db.execute(query)).scalars().all())

        for user_id in user_ids:
            await self.create_notification(
                user_id=user_id,
                title=title,
                message=message,
                notification_type=notification_type,
                category=category,
                priority=priority,
                action_url=action_url,
                action_label=action_label,
                expires_at=expires_at,
                commit=False,
            )
        await self.db.commit()

        logger.info(f"Broadcast '{title}' sent to {len(user_ids)} users")
        return len(user_ids)

    async def get_stats(self) -> Dict[str, Any]:
        """Feed-wide counts for administrators."""
        total = (await self.db.execute(select(func.count(Notification.id)))).scalar() or 0
        unread = (await self.db.execute(
            select(func.count(Notification.id)).where(Notification.is_read.is_(False))
        )).scalar() or 0

        by_category = await self.db.execute(
            select(Notification.category, func.count(Notification.id))
            .group_by(Notification.category)
        )
        by_type = await self.db.execute(
            select(Notification.notification_type, func.count(Notification.id))
            .group_by(Notification.notification_type)
        )
        recent = (await self.db.execute(
            select(func.count(Notification.id))
            .where(Notification.created_at >= datetime.utcnow() - timedelta(days=7))
        )).scalar() or 0

        return {
            "total": total,
            "unread": unread,
            "read": total - unread,
            "last_7_days": recent,
            "by_category": {c.value: n for c, n in by_category.all()},
            "by_type": {t.value: n for t, n in by_type.all()},
        }

    # ===========================================
    # WORKFLOW EVENT TEMPLATES
    # ===========================================

    @staticmethod
    def expense_submitted(expense: ExpenseClaim, owner_name: str, admin_ids: List[uuid.UUID]) -> List[Dict[str, Any]]:
        return [
            {
                "user_id": admin_id,
                "title": "New Expense Submitted",
                "message": f'{owner_name} submitted expense "{expense.title}" for approval.',
                "notification_type": NotificationType.INFO,
                "category": NotificationCategory.EXPENSE_SUBMITTED,
                "priority": NotificationPriority.MEDIUM,
                "action_url": f"/expenses/{expense.id}",
                "action_label": "View Expense",
                "related_model": RelatedModel.EXPENSE,
                "related_id": expense.id,
                "extra_data": {"amount": str(expense.amount), "category": expense.category.value},
            }
            for admin_id in admin_ids
        ]

    @staticmethod
    def expense_decided(expense: ExpenseClaim, approved: bool, admin_name: str) -> Dict[str, Any]:
        if approved:
            title = "Expense Approved"
            message = f'Your expense "{expense.title}" has been approved by {admin_name}.'
            notification_type = NotificationType.SUCCESS
            category = NotificationCategory.EXPENSE_APPROVED
        else:
            title = "Expense Rejected"
            message = f'Your expense "{expense.title}" has been rejected. Reason: {expense.rejection_reason}'
            notification_type = NotificationType.ERROR
            category = NotificationCategory.EXPENSE_REJECTED
        return {
            "user_id": expense.owner_id,
            "title": title,
            "message": message[:500],
            "notification_type": notification_type,
            "category": category,
            "priority": NotificationPriority.MEDIUM,
            "action_url": f"/expenses/{expense.id}",
            "action_label": "View Expense",
            "related_model": RelatedModel.EXPENSE,
            "related_id": expense.id,
        }

    @staticmethod
    def salary_event(slip: SalarySlip, category: NotificationCategory) -> Dict[str, Any]:
        period = f"{month_name(slip.month)} {slip.year}"
        if category == NotificationCategory.SALARY_SENT:
            title = "Salary Slip Sent"
            message = f"Your salary slip for {period} has been sent to your email."
            notification_type = NotificationType.INFO
        else:
            title = "Salary Slip Generated"
            message = f"Your salary slip for {period} has been generated."
            notification_type = NotificationType.SUCCESS
        return {
            "user_id": slip.employee_id,
            "title": title,
            "message": message,
            "notification_type": notification_type,
            "category": category,
            "priority": NotificationPriority.MEDIUM,
            "action_url": f"/salary-slips/{slip.id}",
            "action_label": "View Salary Slip",
            "related_model": RelatedModel.SALARY_SLIP,
            "related_id": slip.id,
        }
