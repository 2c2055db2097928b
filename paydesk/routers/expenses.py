"""
PayDesk - Expenses Router

API endpoints for expense claims: submission with receipt upload,
the approval workflow, comments and statistics.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.database import get_async_session
from paydesk.dependencies import (
    get_current_user,
    get_email_service,
    get_file_storage,
    require_admin,
    require_employee,
)
from paydesk.models.expense import ExpenseCategory, ExpenseClaim, ExpenseStatus
from paydesk.models.user import User
from paydesk.schemas.common import MessageResponse, PaginationMeta
from paydesk.services.email_service import EmailService
from paydesk.services.expense_service import ExpenseService, ReceiptUpload
from paydesk.services.file_storage_service import FileStorageService, sanitize_filename
from paydesk.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, pagination_meta


router = APIRouter(prefix="/expenses", tags=["Expenses"])


def get_expense_service(
    db: AsyncSession = Depends(get_async_session),
    storage: FileStorageService = Depends(get_file_storage),
    email_service: EmailService = Depends(get_email_service),
) -> ExpenseService:
    return ExpenseService(db, storage=storage, email_service=email_service)


# ===========================================
# REQUEST/RESPONSE SCHEMAS
# ===========================================

class ExpenseUpdateRequest(BaseModel):
    """Editable fields of a pending claim."""
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=500)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    category: Optional[ExpenseCategory] = None
    expense_date: Optional[date] = None


class RejectRequest(BaseModel):
    rejection_reason: str = Field(..., max_length=500)


class CommentRequest(BaseModel):
    message: str = Field(..., max_length=1000)


class PersonSummary(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    employee_code: Optional[str] = None


class CommentResponse(BaseModel):
    id: uuid.UUID
    message: str
    author: Optional[PersonSummary] = None
    created_at: datetime


class ReceiptInfo(BaseModel):
    filename: Optional[str] = None
    original_name: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None


class ExpenseResponse(BaseModel):
    """Response schema for an expense claim."""
    id: uuid.UUID
    title: str
    description: str
    amount: Decimal
    category: str
    expense_date: date
    status: str
    owner: PersonSummary
    approved_by: Optional[PersonSummary] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    receipt: Optional[ReceiptInfo] = None
    comments: List[CommentResponse] = []
    created_at: datetime
    updated_at: Optional[datetime] = None


class ExpenseListResponse(BaseModel):
    items: List[ExpenseResponse]
    pagination: PaginationMeta


class StatusTotals(BaseModel):
    count: int
    total_amount: Decimal


class CategoryTotals(StatusTotals):
    category: str


class MonthTotals(StatusTotals):
    month: int


class ExpenseOverview(BaseModel):
    total_expenses: int
    total_amount: Decimal
    pending_expenses: int
    approved_expenses: int
    rejected_expenses: int
    approved_amount: Decimal


class ExpenseStatsResponse(BaseModel):
    overview: ExpenseOverview
    by_status: Dict[str, StatusTotals]
    by_category: List[CategoryTotals]
    monthly: List[MonthTotals]


# ===========================================
# HELPER FUNCTIONS
# ===========================================

def _person(user: Optional[User]) -> Optional[PersonSummary]:
    if user is None:
        return None
    return PersonSummary(id=user.id, name=user.name, email=user.email, employee_code=user.employee_code)


def expense_to_response(claim: ExpenseClaim) -> ExpenseResponse:
    """Convert expense model to response."""
    receipt = None
    if claim.has_receipt:
        receipt = ReceiptInfo(
            filename=claim.receipt_filename,
            original_name=claim.receipt_original_name,
            size=claim.receipt_size,
            mime_type=claim.receipt_mime_type,
        )
    return ExpenseResponse(
        id=claim.id,
        title=claim.title,
        description=claim.description,
        amount=claim.amount,
        category=claim.category.value,
        expense_date=claim.expense_date,
        status=claim.status.value,
        owner=_person(claim.owner),
        approved_by=_person(claim.approver),
        approved_at=claim.approved_at,
        rejection_reason=claim.rejection_reason,
        receipt=receipt,
        comments=[
            CommentResponse(
                id=c.id,
                message=c.message,
                author=_person(c.author),
                created_at=c.created_at,
            )
            for c in claim.comments
        ],
        created_at=claim.created_at,
        updated_at=claim.updated_at,
    )


# ===========================================
# ENDPOINTS
# ===========================================

@router.post(
    "",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit expense claim",
    description="Multipart form. The optional receipt must be JPEG, PNG or PDF, at most 5 MB.",
)
async def create_expense(
    title: str = Form(..., min_length=3, max_length=100),
    description: str = Form(..., min_length=10, max_length=500),
    amount: Decimal = Form(..., gt=0),
    category: ExpenseCategory = Form(...),
    expense_date: date = Form(...),
    receipt: Optional[UploadFile] = File(None),
    current_user: User = Depends(require_employee),
    service: ExpenseService = Depends(get_expense_service),
):
    upload = None
    if receipt is not None and receipt.filename:
        upload = ReceiptUpload(
            content=await receipt.read(),
            filename=receipt.filename,
            content_type=receipt.content_type,
        )

    claim = await service.create_expense(
        owner=current_user,
        title=title,
        description=description,
        amount=amount,
        category=category,
        expense_date=expense_date,
        receipt=upload,
    )
    return expense_to_response(claim)


@router.get(
    "",
    response_model=ExpenseListResponse,
    summary="List expense claims",
)
async def list_expenses(
    status_filter: Optional[ExpenseStatus] = Query(None, alias="status"),
    category: Optional[ExpenseCategory] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None),
    owner_id: Optional[uuid.UUID] = Query(None, description="Admins only"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    claims, total = await service.get_expenses(
        current_user,
        status=status_filter,
        category=category,
        start_date=start_date,
        end_date=end_date,
        search=search,
        owner_id=owner_id,
        page=page,
        limit=limit,
    )
    return ExpenseListResponse(
        items=[expense_to_response(c) for c in claims],
        pagination=PaginationMeta(**pagination_meta(page, limit, total)),
    )


@router.get(
    "/stats",
    response_model=ExpenseStatsResponse,
    summary="Expense statistics",
)
async def expense_stats(
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return ExpenseStatsResponse(**await service.get_stats(current_user))


@router.get(
    "/{expense_id}",
    response_model=ExpenseResponse,
    summary="Get expense claim",
)
async def get_expense(
    expense_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    return expense_to_response(await service.get_expense_for(current_user, expense_id))


@router.put(
    "/{expense_id}",
    response_model=ExpenseResponse,
    summary="Update pending expense claim",
)
async def update_expense(
    expense_id: uuid.UUID,
    request: ExpenseUpdateRequest,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    claim = await service.update_expense(
        current_user, expense_id, request.model_dump(exclude_unset=True)
    )
    return expense_to_response(claim)


@router.delete(
    "/{expense_id}",
    response_model=MessageResponse,
    summary="Delete pending expense claim",
)
async def delete_expense(
    expense_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    await service.delete_expense(current_user, expense_id)
    return MessageResponse(message="Expense deleted successfully")


@router.post(
    "/{expense_id}/approve",
    response_model=ExpenseResponse,
    summary="Approve expense claim",
)
async def approve_expense(
    expense_id: uuid.UUID,
    current_user: User = Depends(require_admin),
    service: ExpenseService = Depends(get_expense_service),
):
    return expense_to_response(await service.approve_expense(current_user, expense_id))


@router.post(
    "/{expense_id}/reject",
    response_model=ExpenseResponse,
    summary="Reject expense claim",
)
async def reject_expense(
    expense_id: uuid.UUID,
    request: RejectRequest,
    current_user: User = Depends(require_admin),
    service: ExpenseService = Depends(get_expense_service),
):
    claim = await service.reject_expense(current_user, expense_id, request.rejection_reason)
    return expense_to_response(claim)


@router.post(
    "/{expense_id}/comments",
    response_model=ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment on expense claim",
)
async def add_comment(
    expense_id: uuid.UUID,
    request: CommentRequest,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    claim = await service.add_comment(current_user, expense_id, request.message)
    return expense_to_response(claim)


@router.get(
    "/{expense_id}/receipt",
    summary="Download receipt",
    response_class=Response,
)
async def download_receipt(
    expense_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    service: ExpenseService = Depends(get_expense_service),
):
    content, filename, mime_type = await service.get_receipt(current_user, expense_id)
    return Response(
        content=content,
        media_type=mime_type,
        headers={"Content-Disposition": f'attachment; filename="{sanitize_filename(filename)}"'},
    )
