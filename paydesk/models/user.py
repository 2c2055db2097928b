"""
PayDesk - User Model

Accounts for administrators and employees. Employees carry a sequential
employee code, a salary base and bank details used on salary slips.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Numeric, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from paydesk.models.base import BaseModel


class UserRole(str, Enum):
    """Account roles."""
    ADMIN = "admin"
    EMPLOYEE = "employee"


class User(BaseModel):
    """User account. Never hard-deleted; deactivation clears ``is_active``."""

    __tablename__ = "users"

    # Identity
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.EMPLOYEE,
        nullable=False,
        index=True,
    )

    # Employment
    employee_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        unique=True,
        nullable=True,
        comment="Sequential EMPxxxx code, employees only",
    )
    department: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, index=True)
    position: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    joining_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Compensation base
    basic_salary: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )
    salary_allowances: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
    )

    # Bank details
    bank_account_number: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    bank_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bank_ifsc_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_employee(self) -> bool:
        return self.role == UserRole.EMPLOYEE
