"""
PayDesk - Expense Claim Models

Expense claims submitted by employees and decided by administrators.

Lifecycle: PENDING -> APPROVED | REJECTED. Both decisions are terminal.
Field edits and deletion are only allowed while PENDING.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from paydesk.models.base import BaseModel

if TYPE_CHECKING:
    from paydesk.models.user import User


class ExpenseCategory(str, Enum):
    """Closed set of expense categories."""
    TRAVEL = "travel"
    FOOD = "food"
    ACCOMMODATION = "accommodation"
    TRANSPORT = "transport"
    OFFICE_SUPPLIES = "office_supplies"
    TRAINING = "training"
    MEDICAL = "medical"
    OTHER = "other"


class ExpenseStatus(str, Enum):
    """Expense claim status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseClaim(BaseModel):
    """An expense claim owned by one employee account."""

    __tablename__ = "expense_claims"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Claim details
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(
        SQLEnum(ExpenseCategory),
        nullable=False,
        index=True,
    )
    expense_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Workflow
    status: Mapped[ExpenseStatus] = mapped_column(
        SQLEnum(ExpenseStatus),
        default=ExpenseStatus.PENDING,
        nullable=False,
        index=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="Admin who approved or rejected the claim",
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Receipt attachment
    receipt_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    receipt_original_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    receipt_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    receipt_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    receipt_mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Relationships
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id])
    approver: Mapped[Optional["User"]] = relationship("User", foreign_keys=[approved_by_id])
    comments: Mapped[List["ExpenseComment"]] = relationship(
        "ExpenseComment",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ExpenseComment.created_at",
    )

    def __repr__(self) -> str:
        return f"<ExpenseClaim(id={self.id}, amount={self.amount}, status={self.status})>"

    @property
    def is_pending(self) -> bool:
        return self.status == ExpenseStatus.PENDING

    @property
    def has_receipt(self) -> bool:
        return bool(self.receipt_path)


class ExpenseComment(BaseModel):
    """Append-only comment on an expense claim."""

    __tablename__ = "expense_comments"

    claim_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("expense_claims.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    claim: Mapped["ExpenseClaim"] = relationship("ExpenseClaim", back_populates="comments")
    author: Mapped["User"] = relationship("User")
