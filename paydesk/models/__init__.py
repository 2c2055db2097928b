"""
PayDesk - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from paydesk.models.base import BaseModel, TimestampMixin
from paydesk.models.user import User, UserRole
from paydesk.models.expense import (
    ExpenseClaim,
    ExpenseComment,
    ExpenseCategory,
    ExpenseStatus,
)
from paydesk.models.salary_slip import (
    SalarySlip,
    SalarySlipStatus,
    ALLOWANCE_COMPONENTS,
    DEDUCTION_COMPONENTS,
)
from paydesk.models.notification import (
    Notification,
    NotificationType,
    NotificationCategory,
    NotificationPriority,
    RelatedModel,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "User",
    "UserRole",
    "ExpenseClaim",
    "ExpenseComment",
    "ExpenseCategory",
    "ExpenseStatus",
    "SalarySlip",
    "SalarySlipStatus",
    "ALLOWANCE_COMPONENTS",
    "DEDUCTION_COMPONENTS",
    "Notification",
    "NotificationType",
    "NotificationCategory",
    "NotificationPriority",
    "RelatedModel",
]
