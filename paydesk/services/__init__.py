"""
PayDesk - Services Package

Business logic services.
"""

from paydesk.services.auth_service import AuthService
from paydesk.services.user_service import UserService
from paydesk.services.expense_service import ExpenseService
from paydesk.services.salary_slip_service import SalarySlipService
from paydesk.services.salary_slip_pdf_service import SalarySlipPDFService
from paydesk.services.notification_service import NotificationService
from paydesk.services.email_service import EmailService
from paydesk.services.file_storage_service import FileStorageService
from paydesk.services.salary_calculator import SalaryBreakdown, calculate_salary_breakdown

__all__ = [
    "AuthService",
    "UserService",
    "ExpenseService",
    "SalarySlipService",
    "SalarySlipPDFService",
    "NotificationService",
    "EmailService",
    "FileStorageService",
    "SalaryBreakdown",
    "calculate_salary_breakdown",
]
