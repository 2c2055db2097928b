"""
PayDesk - Expense Service

Business logic for expense claims:
- Submission (with optional receipt upload)
- Approval workflow (pending -> approved | rejected)
- Comments
- Statistics

Status changes are single conditional UPDATEs guarded by the current status,
so two concurrent decisions on the same claim cannot both succeed.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, extract, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paydesk.models.base import utcnow
from paydesk.models.expense import (
    ExpenseCategory,
    ExpenseClaim,
    ExpenseComment,
    ExpenseStatus,
)
from paydesk.models.user import User, UserRole
from paydesk.services.email_service import EmailService
from paydesk.services.file_storage_service import FileCategory, FileStorageService
from paydesk.services.notification_service import NotificationService
from paydesk.utils.error_handling import (
    AuthorizationException,
    ErrorCode,
    ExpenseNotFoundException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from paydesk.utils.pagination import paginate

logger = logging.getLogger(__name__)

MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("1000000")
REJECTION_REASON_MIN = 5
REJECTION_REASON_MAX = 200
COMMENT_MAX = 300

EDITABLE_FIELDS = {"title", "description", "amount", "category", "expense_date"}


@dataclass
class ReceiptUpload:
    """An uploaded receipt file, before it is stored."""
    content: bytes
    filename: str
    content_type: str


def validate_expense_fields(fields: Dict[str, Any]) -> None:
    """Business rules on claim fields (length limits are enforced by the API schemas)."""
    amount = fields.get("amount")
    if amount is not None and not (MIN_AMOUNT <= Decimal(str(amount)) <= MAX_AMOUNT):
        raise ValidationException(
            f"Amount must be between {MIN_AMOUNT} and {MAX_AMOUNT:,}",
            field="amount",
            code=ErrorCode.INVALID_AMOUNT,
        )
    expense_date = fields.get("expense_date")
    if expense_date is not None and expense_date > date.today():
        raise ValidationException("Expense date cannot be in the future", field="expense_date")


def validate_rejection_reason(reason: Optional[str]) -> str:
    reason = (reason or "").strip()
    if not (REJECTION_REASON_MIN <= len(reason) <= REJECTION_REASON_MAX):
        raise ValidationException(
            f"Rejection reason must be between {REJECTION_REASON_MIN} and "
            f"{REJECTION_REASON_MAX} characters",
            field="rejection_reason",
        )
    return reason


class ExpenseService:
    """Service for expense claim operations."""

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[FileStorageService] = None,
        email_service: Optional[EmailService] = None,
    ):
        self.db = db
        self.storage = storage or FileStorageService()
        self.email_service = email_service or EmailService()
        self.notifications = NotificationService(db)

    # ===========================================
    # QUERIES
    # ===========================================

    def _claim_query(self):
        return select(ExpenseClaim).options(
            selectinload(ExpenseClaim.owner),
            selectinload(ExpenseClaim.approver),
            selectinload(ExpenseClaim.comments).selectinload(ExpenseComment.author),
        )

    async def get_expense(self, expense_id: uuid.UUID) -> ExpenseClaim:
        """Load a claim with owner, approver and comments; refreshes stale copies."""
        result = await self.db.execute(
            self._claim_query()
            .where(ExpenseClaim.id == expense_id)
            .execution_options(populate_existing=True)
        )
        claim = result.scalar_one_or_none()
        if claim is None:
            raise ExpenseNotFoundException(expense_id)
        return claim

    async def get_expense_for(self, user: User, expense_id: uuid.UUID) -> ExpenseClaim:
        """Load a claim the user owns (or any claim, for admins)."""
        claim = await self.get_expense(expense_id)
        if user.role != UserRole.ADMIN and claim.owner_id != user.id:
            raise AuthorizationException("Access denied to this expense")
        return claim

    async def get_expenses(
        self,
        user: User,
        status: Optional[ExpenseStatus] = None,
        category: Optional[ExpenseCategory] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        owner_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[ExpenseClaim], int]:
        """
        List claims. Employees only ever see their own; admins may filter by owner.
        """
        query = self._claim_query()

        if user.role != UserRole.ADMIN:
            query = query.where(ExpenseClaim.owner_id == user.id)
        elif owner_id:
            query = query.where(ExpenseClaim.owner_id == owner_id)

        if status:
            query = query.where(ExpenseClaim.status == status)
        if category:
            query = query.where(ExpenseClaim.category == category)
        if start_date:
            query = query.where(ExpenseClaim.expense_date >= start_date)
        if end_date:
            query = query.where(ExpenseClaim.expense_date <= end_date)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(ExpenseClaim.title).like(pattern),
                    func.lower(ExpenseClaim.description).like(pattern),
                )
            )

        query = query.order_by(ExpenseClaim.created_at.desc())
        return await paginate(self.db, query, page, limit)

    # ===========================================
    # SUBMISSION
    # ===========================================

    async def create_expense(
        self,
        owner: User,
        title: str,
        description: str,
        amount: Decimal,
        category: ExpenseCategory,
        expense_date: date,
        receipt: Optional[ReceiptUpload] = None,
    ) -> ExpenseClaim:
        """
        Submit a new claim. Status always starts as pending.

        When a receipt is stored but the claim cannot be saved, the stored
        file is removed again.
        """
        if owner.role != UserRole.EMPLOYEE:
            raise AuthorizationException(
                "Only employees can submit expenses",
                required_permission=UserRole.EMPLOYEE.value,
            )
        validate_expense_fields({"amount": amount, "expense_date": expense_date})

        stored: Optional[Dict[str, Any]] = None
        if receipt is not None:
            self.storage.validate_receipt(receipt.content, receipt.content_type)
            stored = await self.storage.save_file(
                receipt.content,
                receipt.filename,
                receipt.content_type,
                FileCategory.RECEIPT,
            )

        claim = ExpenseClaim(
            owner_id=owner.id,
            title=title.strip(),
            description=description.strip(),
            amount=amount,
            category=category,
            expense_date=expense_date,
            status=ExpenseStatus.PENDING,
        )
        if stored:
            claim.receipt_filename = stored["filename"]
            claim.receipt_original_name = stored["original_name"]
            claim.receipt_path = stored["path"]
            claim.receipt_size = stored["size"]
            claim.receipt_mime_type = stored["content_type"]

        try:
            self.db.add(claim)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            if stored:
                logger.warning(f"Expense insert failed; removing orphaned receipt {stored['path']}")
                await self.storage.delete_file(stored["path"])
            raise

        expense_id = claim.id
        logger.info(f"Expense {expense_id} submitted by {owner.id} for {amount}")

        admin_ids = list((await self.db.execute(
            select(User.id)
            .where(User.role == UserRole.ADMIN)
            .where(User.is_active.is_(True))
        )).scalars().all())
        await self.notifications.notify_safely(
            NotificationService.expense_submitted(claim, owner.name, admin_ids)
        )

        return await self.get_expense(expense_id)

    # ===========================================
    # OWNER EDITS
    # ===========================================

    async def _raise_for_state(self, expense_id: uuid.UUID, operation: str) -> None:
        """Explain why a guarded statement matched no row."""
        claim = await self.get_expense(expense_id)
        raise InvalidStateException(
            "Expense",
            current_status=claim.status.value,
            required_status=ExpenseStatus.PENDING.value,
            operation=operation,
        )

    async def update_expense(self, user: User, expense_id: uuid.UUID, changes: Dict[str, Any]) -> ExpenseClaim:
        """Edit a pending claim. Owner only."""
        claim = await self.get_expense(expense_id)
        if claim.owner_id != user.id:
            raise AuthorizationException("You can only update your own expenses")

        values = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}
        validate_expense_fields(values)
        for text_field in ("title", "description"):
            if text_field in values:
                values[text_field] = values[text_field].strip()

        if not values:
            if claim.status != ExpenseStatus.PENDING:
                await self._raise_for_state(expense_id, "update")
            return claim

        result = await self.db.execute(
            update(ExpenseClaim)
            .where(ExpenseClaim.id == expense_id)
            .where(ExpenseClaim.status == ExpenseStatus.PENDING)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(expense_id, "update")
        await self.db.commit()

        logger.info(f"Expense {expense_id} updated by {user.id}: {sorted(values)}")
        return await self.get_expense(expense_id)

    async def delete_expense(self, user: User, expense_id: uuid.UUID) -> None:
        """Delete a pending claim and its receipt. Owner only."""
        claim = await self.get_expense(expense_id)
        if claim.owner_id != user.id:
            raise AuthorizationException("You can only delete your own expenses")
        receipt_path = claim.receipt_path

        await self.db.execute(
            delete(ExpenseComment).where(ExpenseComment.claim_id == expense_id)
        )
        result = await self.db.execute(
            delete(ExpenseClaim)
            .where(ExpenseClaim.id == expense_id)
            .where(ExpenseClaim.status == ExpenseStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(expense_id, "delete")
        await self.db.commit()

        if receipt_path:
            await self.storage.delete_file(receipt_path)
        logger.info(f"Expense {expense_id} deleted by {user.id}")

    # ===========================================
    # DECISIONS (ADMIN)
    # ===========================================

    async def _decide(
        self,
        admin: User,
        expense_id: uuid.UUID,
        new_status: ExpenseStatus,
        rejection_reason: Optional[str],
    ) -> ExpenseClaim:
        if admin.role != UserRole.ADMIN:
            raise AuthorizationException(
                "Only administrators can decide on expenses",
                required_permission=UserRole.ADMIN.value,
            )
        operation = "approve" if new_status == ExpenseStatus.APPROVED else "reject"

        result = await self.db.execute(
            update(ExpenseClaim)
            .where(ExpenseClaim.id == expense_id)
            .where(ExpenseClaim.status == ExpenseStatus.PENDING)
            .values(
                status=new_status,
                approved_by_id=admin.id,
                approved_at=utcnow(),
                rejection_reason=rejection_reason,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(expense_id, operation)
        await self.db.commit()

        logger.info(f"Expense {expense_id} {new_status.value} by admin {admin.id}")

        claim = await self.get_expense(expense_id)
        approved = new_status == ExpenseStatus.APPROVED
        await self.email_service.send_expense_decision_email(
            to_email=claim.owner.email,
            employee_name=claim.owner.name,
            expense_title=claim.title,
            amount=claim.amount,
            approved=approved,
            admin_name=admin.name,
            rejection_reason=rejection_reason,
        )
        await self.notifications.notify_safely(
            [NotificationService.expense_decided(claim, approved, admin.name)]
        )
        return await self.get_expense(expense_id)

    async def approve_expense(self, admin: User, expense_id: uuid.UUID) -> ExpenseClaim:
        """Approve a pending claim; clears any rejection reason."""
        return await self._decide(admin, expense_id, ExpenseStatus.APPROVED, None)

    async def reject_expense(self, admin: User, expense_id: uuid.UUID, reason: Optional[str]) -> ExpenseClaim:
        """Reject a pending claim; the reason is validated before anything changes."""
        reason = validate_rejection_reason(reason)
        return await self._decide(admin, expense_id, ExpenseStatus.REJECTED, reason)

    # ===========================================
    # COMMENTS & RECEIPTS
    # ===========================================

    async def add_comment(self, user: User, expense_id: uuid.UUID, message: str) -> ExpenseClaim:
        """Append a comment. Owner or admin, any status."""
        await self.get_expense_for(user, expense_id)
        message = (message or "").strip()
        if not (1 <= len(message) <= COMMENT_MAX):
            raise ValidationException(
                f"Comment must be between 1 and {COMMENT_MAX} characters",
                field="message",
            )

        self.db.add(ExpenseComment(claim_id=expense_id, author_id=user.id, message=message))
        await self.db.commit()
        return await self.get_expense(expense_id)

    async def get_receipt(self, user: User, expense_id: uuid.UUID) -> Tuple[bytes, str, str]:
        """
        Receipt bytes for download.

        Returns:
            Tuple of (content, original filename, mime type)
        """
        claim = await self.get_expense_for(user, expense_id)
        if not claim.receipt_path:
            raise NotFoundException("Receipt", message="No receipt attached to this expense",
                                    code=ErrorCode.FILE_NOT_FOUND)
        content = await self.storage.read_file(claim.receipt_path)
        return (
            content,
            claim.receipt_original_name or claim.receipt_filename or "receipt",
            claim.receipt_mime_type or "application/octet-stream",
        )

    # ===========================================
    # STATISTICS
    # ===========================================

    async def get_stats(self, user: User) -> Dict[str, Any]:
        """Counts and totals by status, category and month (current year)."""
        scope = []
        if user.role != UserRole.ADMIN:
            scope.append(ExpenseClaim.owner_id == user.id)

        by_status_rows = (await self.db.execute(
            select(ExpenseClaim.status, func.count(ExpenseClaim.id), func.sum(ExpenseClaim.amount))
            .where(*scope)
            .group_by(ExpenseClaim.status)
        )).all()
        by_status = {
            s.value: {"count": 0, "total_amount": Decimal("0.00")} for s in ExpenseStatus
        }
        for status, count, total in by_status_rows:
            by_status[status.value] = {"count": count, "total_amount": Decimal(str(total or 0))}

        by_category_rows = (await self.db.execute(
            select(ExpenseClaim.category, func.count(ExpenseClaim.id), func.sum(ExpenseClaim.amount))
            .where(*scope)
            .group_by(ExpenseClaim.category)
        )).all()

        current_year = datetime.utcnow().year
        month_col = extract("month", ExpenseClaim.expense_date)
        monthly_rows = (await self.db.execute(
            select(month_col, func.count(ExpenseClaim.id), func.sum(ExpenseClaim.amount))
            .where(*scope)
            .where(extract("year", ExpenseClaim.expense_date) == current_year)
            .group_by(month_col)
            .order_by(month_col)
        )).all()

        return {
            "overview": {
                "total_expenses": sum(v["count"] for v in by_status.values()),
                "total_amount": sum((v["total_amount"] for v in by_status.values()), Decimal("0.00")),
                "pending_expenses": by_status["pending"]["count"],
                "approved_expenses": by_status["approved"]["count"],
                "rejected_expenses": by_status["rejected"]["count"],
                "approved_amount": by_status["approved"]["total_amount"],
            },
            "by_status": by_status,
            "by_category": [
                {"category": c.value, "count": n, "total_amount": Decimal(str(t or 0))}
                for c, n, t in by_category_rows
            ],
            "monthly": [
                {"month": int(m), "count": n, "total_amount": Decimal(str(t or 0))}
                for m, n, t in monthly_rows
            ],
        }
