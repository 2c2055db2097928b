"""
PayDesk - Salary Slip Model

One payroll record per employee per (month, year) period.

Lifecycle: DRAFT -> FINALIZED -> SENT, one direction only.
Figures are editable only while DRAFT.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paydesk.models.base import BaseModel

if TYPE_CHECKING:
    from paydesk.models.user import User


class SalarySlipStatus(str, Enum):
    """Salary slip status."""
    DRAFT = "draft"
    FINALIZED = "finalized"
    SENT = "sent"


# Named components, in the order they are rendered
ALLOWANCE_COMPONENTS = ("hra", "transport", "medical", "special", "other")
DEDUCTION_COMPONENTS = ("tax", "pf", "insurance", "other")


def _money_column() -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)


class SalarySlip(BaseModel):
    """A computed salary slip for one employee and period."""

    __tablename__ = "salary_slips"

    __table_args__ = (
        UniqueConstraint(
            "employee_id", "month", "year",
            name="uq_salary_slips_employee_period",
        ),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    generated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Period
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    # Snapshot of the salary base
    basic_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Allowances
    allowance_hra: Mapped[Decimal] = _money_column()
    allowance_transport: Mapped[Decimal] = _money_column()
    allowance_medical: Mapped[Decimal] = _money_column()
    allowance_special: Mapped[Decimal] = _money_column()
    allowance_other: Mapped[Decimal] = _money_column()

    # Deductions
    deduction_tax: Mapped[Decimal] = _money_column()
    deduction_pf: Mapped[Decimal] = _money_column()
    deduction_insurance: Mapped[Decimal] = _money_column()
    deduction_other: Mapped[Decimal] = _money_column()

    # Attendance
    working_days_total: Mapped[int] = mapped_column(Integer, nullable=False)
    working_days_worked: Mapped[int] = mapped_column(Integer, nullable=False)

    # Derived
    net_salary: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Pro-rated basic + allowances - deductions; may be negative",
    )

    # Workflow
    status: Mapped[SalarySlipStatus] = mapped_column(
        SQLEnum(SalarySlipStatus),
        default=SalarySlipStatus.DRAFT,
        nullable=False,
        index=True,
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    pdf_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    employee: Mapped["User"] = relationship("User", foreign_keys=[employee_id])
    generated_by: Mapped[Optional["User"]] = relationship("User", foreign_keys=[generated_by_id])

    def __repr__(self) -> str:
        return f"<SalarySlip(id={self.id}, period={self.month}/{self.year}, status={self.status})>"

    @property
    def allowances(self) -> dict:
        return {name: getattr(self, f"allowance_{name}") for name in ALLOWANCE_COMPONENTS}

    @property
    def deductions(self) -> dict:
        return {name: getattr(self, f"deduction_{name}") for name in DEDUCTION_COMPONENTS}

    @property
    def is_draft(self) -> bool:
        return self.status == SalarySlipStatus.DRAFT
