"""
PayDesk - Salary Slip Service

Business logic for salary slips:
- Creation and draft edits (figures recomputed on every change)
- Lifecycle: draft -> finalized -> sent
- PDF generation, download and email delivery
- Statistics

Lifecycle steps are conditional UPDATEs guarded by the current status.
"""

import uuid
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from paydesk.models.base import utcnow
from paydesk.models.notification import NotificationCategory
from paydesk.models.salary_slip import (
    SalarySlip,
    SalarySlipStatus,
)
from paydesk.models.user import User, UserRole
from paydesk.services.email_service import EmailService
from paydesk.services.file_storage_service import FileCategory, FileStorageService
from paydesk.services.notification_service import NotificationService
from paydesk.services.salary_calculator import SalaryBreakdown, calculate_salary_breakdown
from paydesk.services.salary_slip_pdf_service import (
    SalarySlipDocument,
    SalarySlipPDFService,
    salary_slip_filename,
)
from paydesk.utils.error_handling import (
    AuthorizationException,
    ConflictException,
    DuplicateEntryException,
    ErrorCode,
    InvalidStateException,
    NotFoundException,
    SalarySlipNotFoundException,
    UserNotFoundException,
    ValidationException,
)
from paydesk.utils.formatting import financial_year, month_name, working_days_in_month
from paydesk.utils.pagination import paginate

logger = logging.getLogger(__name__)

FIRST_PAYROLL_YEAR = 2020


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationException("Month must be between 1 and 12", field="month",
                                  code=ErrorCode.INVALID_PERIOD)
    last_year = datetime.utcnow().year + 1
    if not FIRST_PAYROLL_YEAR <= year <= last_year:
        raise ValidationException(
            f"Year must be between {FIRST_PAYROLL_YEAR} and {last_year}",
            field="year",
            code=ErrorCode.INVALID_PERIOD,
        )


def breakdown_for(slip: SalarySlip) -> SalaryBreakdown:
    """Recompute the breakdown from a stored slip."""
    return calculate_salary_breakdown(
        slip.basic_salary,
        slip.working_days_total,
        slip.working_days_worked,
        allowances=slip.allowances,
        deductions=slip.deductions,
    )


def _component_columns(breakdown: SalaryBreakdown) -> Dict[str, Decimal]:
    columns = {f"allowance_{k}": v for k, v in breakdown.allowances.items()}
    columns.update({f"deduction_{k}": v for k, v in breakdown.deductions.items()})
    return columns


class SalarySlipService:
    """Service for salary slip operations."""

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[FileStorageService] = None,
        email_service: Optional[EmailService] = None,
        pdf_service: Optional[SalarySlipPDFService] = None,
    ):
        self.db = db
        self.storage = storage or FileStorageService()
        self.email_service = email_service or EmailService()
        self.pdf_service = pdf_service or SalarySlipPDFService()
        self.notifications = NotificationService(db)

    # ===========================================
    # QUERIES
    # ===========================================

    def _slip_query(self):
        return select(SalarySlip).options(
            selectinload(SalarySlip.employee),
            selectinload(SalarySlip.generated_by),
        )

    async def get_slip(self, slip_id: uuid.UUID) -> SalarySlip:
        result = await self.db.execute(
            self._slip_query()
            .where(SalarySlip.id == slip_id)
            .execution_options(populate_existing=True)
        )
        slip = result.scalar_one_or_none()
        if slip is None:
            raise SalarySlipNotFoundException(slip_id)
        return slip

    async def get_slip_for(self, user: User, slip_id: uuid.UUID) -> SalarySlip:
        """Load a slip belonging to the user (or any slip, for admins)."""
        slip = await self.get_slip(slip_id)
        if user.role != UserRole.ADMIN and slip.employee_id != user.id:
            raise AuthorizationException("Access denied to this salary slip")
        return slip

    async def get_slips(
        self,
        user: User,
        employee_id: Optional[uuid.UUID] = None,
        month: Optional[int] = None,
        year: Optional[int] = None,
        status: Optional[SalarySlipStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[SalarySlip], int]:
        """List slips, newest period first. Employees only see their own."""
        query = self._slip_query()

        if user.role != UserRole.ADMIN:
            query = query.where(SalarySlip.employee_id == user.id)
        elif employee_id:
            query = query.where(SalarySlip.employee_id == employee_id)

        if month:
            query = query.where(SalarySlip.month == month)
        if year:
            query = query.where(SalarySlip.year == year)
        if status:
            query = query.where(SalarySlip.status == status)

        query = query.order_by(
            SalarySlip.year.desc(),
            SalarySlip.month.desc(),
            SalarySlip.created_at.desc(),
        )
        return await paginate(self.db, query, page, limit)

    async def get_employee_slips(self, employee_id: uuid.UUID) -> List[SalarySlip]:
        """Every slip of one employee, newest period first."""
        await self._get_employee(employee_id)
        result = await self.db.execute(
            self._slip_query()
            .where(SalarySlip.employee_id == employee_id)
            .order_by(SalarySlip.year.desc(), SalarySlip.month.desc())
        )
        return list(result.scalars().all())

    async def _get_employee(self, employee_id: uuid.UUID) -> User:
        employee = (await self.db.execute(
            select(User)
            .where(User.id == employee_id)
            .where(User.role == UserRole.EMPLOYEE)
        )).scalar_one_or_none()
        if employee is None:
            raise UserNotFoundException(employee_id)
        return employee

    # ===========================================
    # CREATE / EDIT
    # ===========================================

    async def create_slip(
        self,
        admin: User,
        employee_id: uuid.UUID,
        month: int,
        year: int,
        basic_salary: Optional[Decimal] = None,
        allowances: Optional[Mapping[str, Any]] = None,
        deductions: Optional[Mapping[str, Any]] = None,
        working_days_total: Optional[int] = None,
        working_days_worked: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> SalarySlip:
        """
        Create a draft slip for an employee and period.

        Basic salary defaults to the employee's current salary; working days
        default to the weekdays of the month, all worked.

        Raises:
            UserNotFoundException: employee missing or not an employee account
            DuplicateEntryException: slip already exists for the period
        """
        validate_period(month, year)
        employee = await self._get_employee(employee_id)

        if working_days_total is None:
            working_days_total = working_days_in_month(month, year)
        if working_days_worked is None:
            working_days_worked = working_days_total
        if basic_salary is None:
            basic_salary = employee.basic_salary or Decimal("0")

        breakdown = calculate_salary_breakdown(
            basic_salary,
            working_days_total,
            working_days_worked,
            allowances=allowances,
            deductions=deductions,
        )

        period = f"{month_name(month)} {year}"
        existing = (await self.db.execute(
            select(SalarySlip.id)
            .where(SalarySlip.employee_id == employee_id)
            .where(SalarySlip.month == month)
            .where(SalarySlip.year == year)
        )).first()
        if existing:
            raise DuplicateEntryException(
                "SalarySlip", "period", period,
                message=f"Salary slip already exists for {employee.name} for {period}",
            )

        slip = SalarySlip(
            employee_id=employee_id,
            generated_by_id=admin.id,
            month=month,
            year=year,
            basic_salary=breakdown.basic_salary,
            working_days_total=working_days_total,
            working_days_worked=working_days_worked,
            net_salary=breakdown.net,
            status=SalarySlipStatus.DRAFT,
            notes=notes,
            **_component_columns(breakdown),
        )
        self.db.add(slip)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEntryException(
                "SalarySlip", "period", period,
                message=f"Salary slip already exists for {employee.name} for {period}",
            )

        slip_id = slip.id
        logger.info(f"Salary slip {slip_id} created for {employee_id} ({period}) net {breakdown.net}")

        await self.notifications.notify_safely(
            [NotificationService.salary_event(slip, NotificationCategory.SALARY_GENERATED)]
        )
        return await self.get_slip(slip_id)

    async def _raise_for_state(self, slip_id: uuid.UUID, required: SalarySlipStatus, operation: str) -> None:
        slip = await self.get_slip(slip_id)
        raise InvalidStateException(
            "SalarySlip",
            current_status=slip.status.value,
            required_status=required.value,
            operation=operation,
        )

    async def update_slip(self, admin: User, slip_id: uuid.UUID, changes: Dict[str, Any]) -> SalarySlip:
        """
        Edit a draft slip. Components are merged into the stored ones and the
        net salary is recomputed.
        """
        slip = await self.get_slip(slip_id)
        if slip.status != SalarySlipStatus.DRAFT:
            await self._raise_for_state(slip_id, SalarySlipStatus.DRAFT, "update")

        allowances = dict(slip.allowances)
        allowances.update(changes.get("allowances") or {})
        deductions = dict(slip.deductions)
        deductions.update(changes.get("deductions") or {})

        def pick(name):
            value = changes.get(name)
            return getattr(slip, name) if value is None else value

        breakdown = calculate_salary_breakdown(
            pick("basic_salary"),
            pick("working_days_total"),
            pick("working_days_worked"),
            allowances=allowances,
            deductions=deductions,
        )

        values = _component_columns(breakdown)
        values.update(
            basic_salary=breakdown.basic_salary,
            working_days_total=breakdown.working_days_total,
            working_days_worked=breakdown.working_days_worked,
            net_salary=breakdown.net,
            updated_at=utcnow(),
        )
        if "notes" in changes:
            values["notes"] = changes["notes"]

        result = await self.db.execute(
            update(SalarySlip)
            .where(SalarySlip.id == slip_id)
            .where(SalarySlip.status == SalarySlipStatus.DRAFT)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(slip_id, SalarySlipStatus.DRAFT, "update")
        await self.db.commit()

        logger.info(f"Salary slip {slip_id} updated by {admin.id}; net now {breakdown.net}")
        return await self.get_slip(slip_id)

    # ===========================================
    # LIFECYCLE
    # ===========================================

    async def finalize_slip(self, admin: User, slip_id: uuid.UUID) -> SalarySlip:
        """Lock a draft slip against further edits."""
        result = await self.db.execute(
            update(SalarySlip)
            .where(SalarySlip.id == slip_id)
            .where(SalarySlip.status == SalarySlipStatus.DRAFT)
            .values(status=SalarySlipStatus.FINALIZED, finalized_at=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(slip_id, SalarySlipStatus.DRAFT, "finalize")
        await self.db.commit()

        logger.info(f"Salary slip {slip_id} finalized by {admin.id}")
        return await self.get_slip(slip_id)

    def _document(self, slip: SalarySlip, generated_by: User) -> SalarySlipDocument:
        employee = slip.employee
        return SalarySlipDocument(
            employee_name=employee.name,
            employee_code=employee.employee_code,
            employee_email=employee.email,
            department=employee.department,
            position=employee.position,
            month=slip.month,
            year=slip.year,
            breakdown=breakdown_for(slip),
            generated_by_name=generated_by.name,
            bank_account_number=employee.bank_account_number,
            bank_name=employee.bank_name,
            bank_ifsc_code=employee.bank_ifsc_code,
            notes=slip.notes,
            generated_at=utcnow(),
        )

    async def generate_pdf(self, admin: User, slip_id: uuid.UUID) -> SalarySlip:
        """Render the slip and store it; regenerating overwrites the file."""
        slip = await self.get_slip(slip_id)
        pdf_bytes = self.pdf_service.generate_pdf(self._document(slip, slip.generated_by or admin))

        relative_path = f"{FileCategory.SALARY_SLIP.value}/{slip.year}/{slip.month:02d}/{slip.id}.pdf"
        await self.storage.write_file(relative_path, pdf_bytes)

        slip.pdf_path = relative_path
        await self.db.commit()

        logger.info(f"Salary slip {slip_id} PDF generated by {admin.id}: {relative_path}")
        return await self.get_slip(slip_id)

    async def send_slip(self, admin: User, slip_id: uuid.UUID) -> Tuple[SalarySlip, bool]:
        """
        Mark a finalized slip with a generated PDF as sent, then email it.

        Email delivery is best-effort; the status change stands either way.

        Returns:
            Tuple of (slip, email_delivered)
        """
        slip = await self.get_slip(slip_id)
        if slip.status == SalarySlipStatus.FINALIZED and not slip.pdf_path:
            raise ConflictException(
                "Generate the salary slip PDF before sending it",
                resource_type="SalarySlip",
                code=ErrorCode.CANNOT_MODIFY,
            )

        result = await self.db.execute(
            update(SalarySlip)
            .where(SalarySlip.id == slip_id)
            .where(SalarySlip.status == SalarySlipStatus.FINALIZED)
            .where(SalarySlip.pdf_path.is_not(None))
            .values(status=SalarySlipStatus.SENT, sent_at=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(slip_id, SalarySlipStatus.FINALIZED, "send")
        await self.db.commit()
        logger.info(f"Salary slip {slip_id} marked sent by {admin.id}")

        slip = await self.get_slip(slip_id)
        delivered = False
        try:
            pdf_bytes = await self.storage.read_file(slip.pdf_path)
            delivered = await self.email_service.send_salary_slip_email(
                to_email=slip.employee.email,
                employee_name=slip.employee.name,
                period_label=f"{month_name(slip.month)} {slip.year}",
                breakdown=breakdown_for(slip),
                pdf_content=pdf_bytes,
                pdf_filename=salary_slip_filename(slip.employee.employee_code, slip.month, slip.year),
            )
        except NotFoundException:
            logger.error(f"Salary slip {slip_id} PDF missing at {slip.pdf_path}; email not sent")
        if not delivered:
            logger.warning(f"Salary slip {slip_id} email to {slip.employee.email} was not delivered")

        await self.notifications.notify_safely(
            [NotificationService.salary_event(slip, NotificationCategory.SALARY_SENT)]
        )
        return await self.get_slip(slip_id), delivered

    async def get_pdf(self, user: User, slip_id: uuid.UUID) -> Tuple[bytes, str]:
        """
        PDF bytes for download.

        Returns:
            Tuple of (content, download filename)
        """
        slip = await self.get_slip_for(user, slip_id)
        if not slip.pdf_path:
            raise NotFoundException(
                "SalarySlipPDF",
                message="PDF has not been generated for this salary slip",
                code=ErrorCode.FILE_NOT_FOUND,
            )
        content = await self.storage.read_file(slip.pdf_path)
        return content, salary_slip_filename(slip.employee.employee_code, slip.month, slip.year)

    async def delete_slip(self, admin: User, slip_id: uuid.UUID) -> None:
        """Delete a draft slip and its PDF."""
        slip = await self.get_slip(slip_id)
        pdf_path = slip.pdf_path

        result = await self.db.execute(
            delete(SalarySlip)
            .where(SalarySlip.id == slip_id)
            .where(SalarySlip.status == SalarySlipStatus.DRAFT)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self._raise_for_state(slip_id, SalarySlipStatus.DRAFT, "delete")
        await self.db.commit()

        if pdf_path:
            await self.storage.delete_file(pdf_path)
        logger.info(f"Salary slip {slip_id} deleted by {admin.id}")

    # ===========================================
    # STATISTICS
    # ===========================================

    async def get_stats(self, user: User) -> Dict[str, Any]:
        """Counts per status and net totals overall, this year, by month and by year."""
        scope = []
        if user.role != UserRole.ADMIN:
            scope.append(SalarySlip.employee_id == user.id)

        status_rows = (await self.db.execute(
            select(SalarySlip.status, func.count(SalarySlip.id), func.sum(SalarySlip.net_salary))
            .where(*scope)
            .group_by(SalarySlip.status)
        )).all()
        by_status = {s.value: 0 for s in SalarySlipStatus}
        total_net = Decimal("0.00")
        for status, count, total in status_rows:
            by_status[status.value] = count
            total_net += Decimal(str(total or 0))

        today = datetime.utcnow()
        monthly_rows = (await self.db.execute(
            select(SalarySlip.month, func.count(SalarySlip.id), func.sum(SalarySlip.net_salary))
            .where(*scope)
            .where(SalarySlip.year == today.year)
            .group_by(SalarySlip.month)
            .order_by(SalarySlip.month)
        )).all()
        yearly_rows = (await self.db.execute(
            select(SalarySlip.year, func.count(SalarySlip.id), func.sum(SalarySlip.net_salary))
            .where(*scope)
            .group_by(SalarySlip.year)
            .order_by(SalarySlip.year.desc())
        )).all()

        current_year_net = sum(
            (Decimal(str(total or 0)) for _, _, total in monthly_rows), Decimal("0.00")
        )

        return {
            "total_slips": sum(by_status.values()),
            "by_status": by_status,
            "total_net_salary": total_net,
            "current_year": today.year,
            "current_financial_year": financial_year(today.date()),
            "current_year_net_salary": current_year_net,
            "monthly": [
                {"month": m, "month_name": month_name(m), "count": n, "total_net_salary": Decimal(str(t or 0))}
                for m, n, t in monthly_rows
            ],
            "yearly": [
                {"year": y, "count": n, "total_net_salary": Decimal(str(t or 0))}
                for y, n, t in yearly_rows
            ],
        }
