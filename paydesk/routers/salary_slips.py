"""
PayDesk - Salary Slips Router

API endpoints for salary slips: creation, draft edits, the
draft -> finalized -> sent lifecycle, PDF generation and download.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import (
    get_current_user,
    get_email_service,
    get_file_storage,
    require_admin,
)
from paydesk.models.salary_slip import SalarySlip, SalarySlipStatus
from paydesk.models.user import User
from paydesk.schemas.common import MessageResponse, PaginationMeta
from paydesk.services.email_service import EmailService
from paydesk.services.file_storage_service import FileStorageService
from paydesk.services.salary_slip_service import SalarySlipService, breakdown_for
from paydesk.utils.formatting import month_name, number_to_words
from paydesk.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, pagination_meta


router = APIRouter(prefix="/salary-slips", tags=["Salary Slips"])


def get_salary_slip_service(
    db: AsyncSession = Depends(get_async_session),
    storage: FileStorageService = Depends(get_file_storage),
    email_service: EmailService = Depends(get_email_service),
) -> SalarySlipService:
    return SalarySlipService(db, storage=storage, email_service=email_service)


# ===========================================
# REQUEST/RESPONSE SCHEMAS
# ===========================================

def _money():
    return Field(None, ge=0, max_digits=12, decimal_places=2)


class AllowancesIn(BaseModel):
    hra: Optional[Decimal] = _money()
    transport: Optional[Decimal] = _money()
    medical: Optional[Decimal] = _money()
    special: Optional[Decimal] = _money()
    other: Optional[Decimal] = _money()

    class Config:
        extra = "forbid"


class DeductionsIn(BaseModel):
    tax: Optional[Decimal] = _money()
    pf: Optional[Decimal] = _money()
    insurance: Optional[Decimal] = _money()
    other: Optional[Decimal] = _money()

    class Config:
        extra = "forbid"


class SalarySlipCreate(BaseModel):
    """
    Schema for creating a salary slip.

    basic_salary defaults to the employee's salary; working days default to
    the weekdays of the month.
    """
    employee_id: uuid.UUID
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2020)
    basic_salary: Optional[Decimal] = _money()
    allowances: Optional[AllowancesIn] = None
    deductions: Optional[DeductionsIn] = None
    working_days_total: Optional[int] = Field(None, ge=1, le=31)
    working_days_worked: Optional[int] = Field(None, ge=0, le=31)
    notes: Optional[str] = Field(None, max_length=500)


class SalarySlipUpdate(BaseModel):
    """Draft edits; components are merged into the stored ones."""
    basic_salary: Optional[Decimal] = _money()
    allowances: Optional[AllowancesIn] = None
    deductions: Optional[DeductionsIn] = None
    working_days_total: Optional[int] = Field(None, ge=1, le=31)
    working_days_worked: Optional[int] = Field(None, ge=0, le=31)
    notes: Optional[str] = Field(None, max_length=500)


class EmployeeSummary(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    employee_code: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None


class SalarySlipResponse(BaseModel):
    """Response schema for a salary slip, with the computed breakdown."""
    id: uuid.UUID
    employee: EmployeeSummary
    generated_by: Optional[str] = None
    month: int
    year: int
    period: str
    basic_salary: Decimal
    working_days_total: int
    working_days_worked: int
    pro_rated_basic: Decimal
    allowances: Dict[str, Decimal]
    deductions: Dict[str, Decimal]
    total_allowances: Decimal
    total_deductions: Decimal
    gross_salary: Decimal
    net_salary: Decimal
    net_salary_in_words: str
    status: str
    notes: Optional[str] = None
    pdf_generated: bool
    finalized_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class SalarySlipListResponse(BaseModel):
    items: List[SalarySlipResponse]
    pagination: PaginationMeta


class SendSlipResponse(BaseModel):
    slip: SalarySlipResponse
    email_delivered: bool


# ===========================================
# HELPER FUNCTIONS
# ===========================================

def slip_to_response(slip: SalarySlip) -> SalarySlipResponse:
    """Convert salary slip model to response."""
    breakdown = breakdown_for(slip)
    employee = slip.employee
    return SalarySlipResponse(
        id=slip.id,
        employee=EmployeeSummary(
            id=employee.id,
            name=employee.name,
            email=employee.email,
            employee_code=employee.employee_code,
            department=employee.department,
            position=employee.position,
        ),
        generated_by=slip.generated_by.name if slip.generated_by else None,
        month=slip.month,
        year=slip.year,
        period=f"{month_name(slip.month)} {slip.year}",
        basic_salary=slip.basic_salary,
        working_days_total=slip.working_days_total,
        working_days_worked=slip.working_days_worked,
        pro_rated_basic=breakdown.pro_rated_basic,
        allowances=breakdown.allowances,
        deductions=breakdown.deductions,
        total_allowances=breakdown.total_allowances,
        total_deductions=breakdown.total_deductions,
        gross_salary=breakdown.gross,
        net_salary=slip.net_salary,
        net_salary_in_words=number_to_words(slip.net_salary),
        status=slip.status.value,
        notes=slip.notes,
        pdf_generated=bool(slip.pdf_path),
        finalized_at=slip.finalized_at,
        sent_at=slip.sent_at,
        created_at=slip.created_at,
        updated_at=slip.updated_at,
    )


def _components(model: Optional[BaseModel]) -> Optional[Dict[str, Decimal]]:
    if model is None:
        return None
    return model.model_dump(exclude_none=True)


# ===========================================
# ENDPOINTS
# ===========================================

@router.post(
    "",
    response_model=SalarySlipResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create salary slip",
)
async def create_salary_slip(
    request: SalarySlipCreate,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    slip = await service.create_slip(
        current_user,
        employee_id=request.employee_id,
        month=request.month,
        year=request.year,
        basic_salary=request.basic_salary,
        allowances=_components(request.allowances),
        deductions=_components(request.deductions),
        working_days_total=request.working_days_total,
        working_days_worked=request.working_days_worked,
        notes=request.notes,
    )
    return slip_to_response(slip)


@router.get(
    "",
    response_model=SalarySlipListResponse,
    summary="List salary slips",
)
async def list_salary_slips(
    employee_id: Optional[uuid.UUID] = Query(None, description="Admins only"),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None),
    status_filter: Optional[SalarySlipStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    slips, total = await service.get_slips(
        current_user,
        employee_id=employee_id,
        month=month,
        year=year,
        status=status_filter,
        page=page,
        limit=limit,
    )
    return SalarySlipListResponse(
        items=[slip_to_response(s) for s in slips],
        pagination=PaginationMeta(**pagination_meta(page, limit, total)),
    )


@router.get(
    "/stats",
    summary="Salary slip statistics",
)
async def salary_slip_stats(
    current_user: User = Depends(get_current_user),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    return await service.get_stats(current_user)


@router.get(
    "/employee/{employee_id}",
    response_model=List[SalarySlipResponse],
    summary="All slips of an employee",
)
async def employee_salary_slips(
    employee_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    return [slip_to_response(s) for s in await service.get_employee_slips(employee_id)]


@router.get(
    "/{slip_id}",
    response_model=SalarySlipResponse,
    summary="Get salary slip",
)
async def get_salary_slip(
    slip_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    return slip_to_response(await service.get_slip_for(current_user, slip_id))


@router.put(
    "/{slip_id}",
    response_model=SalarySlipResponse,
    summary="Update draft salary slip",
)
async def update_salary_slip(
    slip_id: uuid.UUID,
    request: SalarySlipUpdate,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    changes = request.model_dump(exclude_unset=True, exclude={"allowances", "deductions"})
    changes["allowances"] = _components(request.allowances)
    changes["deductions"] = _components(request.deductions)
    slip = await service.update_slip(current_user, slip_id, changes)
    return slip_to_response(slip)


@router.delete(
    "/{slip_id}",
    response_model=MessageResponse,
    summary="Delete draft salary slip",
)
async def delete_salary_slip(
    slip_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    await service.delete_slip(current_user, slip_id)
    return MessageResponse(message="Salary slip deleted successfully")


@router.post(
    "/{slip_id}/finalize",
    response_model=SalarySlipResponse,
    summary="Finalize salary slip",
)
async def finalize_salary_slip(
    slip_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    return slip_to_response(await service.finalize_slip(current_user, slip_id))


@router.post(
    "/{slip_id}/generate-pdf",
    response_model=SalarySlipResponse,
    summary="Generate salary slip PDF",
)
async def generate_salary_slip_pdf(
    slip_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    return slip_to_response(await service.generate_pdf(current_user, slip_id))


@router.post(
    "/{slip_id}/send-email",
    response_model=SendSlipResponse,
    summary="Send salary slip",
    description="Requires a finalized slip with a generated PDF. The slip is marked sent even if email delivery fails.",
)
async def send_salary_slip(
    slip_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    slip, delivered = await service.send_slip(current_user, slip_id)
    return SendSlipResponse(slip=slip_to_response(slip), email_delivered=delivered)


@router.get(
    "/{slip_id}/download",
    summary="Download salary slip PDF",
    response_class=Response,
)
async def download_salary_slip(
    slip_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: SalarySlipService = Depends(get_salary_slip_service),
):
    content, filename = await service.get_pdf(current_user, slip_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
