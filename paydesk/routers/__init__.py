"""
PayDesk - Routers Package

FastAPI route handlers.

Routers:
- auth: Registration, login, current account
- users: Account management
- expenses: Expense claims and approvals
- salary_slips: Salary slips, PDFs and delivery
- notifications: Notification feed
"""

from paydesk.routers import (
    auth,
    users,
    expenses,
    salary_slips,
    notifications,
)

__all__ = [
    "auth",
    "users",
    "expenses",
    "salary_slips",
    "notifications",
]
