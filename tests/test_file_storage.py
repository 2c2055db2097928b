"""
PayDesk - File Storage and PDF Tests
"""

from datetime import datetime
from decimal import Decimal

import pytest

from paydesk.config import Settings
from paydesk.services.file_storage_service import (
    FileCategory,
    FileStorageService,
    sanitize_filename,
)
from paydesk.services.salary_calculator import calculate_salary_breakdown
from paydesk.services.salary_slip_pdf_service import SalarySlipDocument, SalarySlipPDFService
from paydesk.utils.error_handling import ErrorCode, NotFoundException, ValidationException


@pytest.fixture
def storage(tmp_path) -> FileStorageService:
    return FileStorageService(Settings(upload_dir=str(tmp_path)))


class TestFileStorage:
    """Test cases for FileStorageService."""

    @pytest.mark.parametrize("name,expected", [
        ("receipt.pdf", "receipt.pdf"),
        ("my taxi receipt (1).png", "my_taxi_receipt_1_.png"),
        ("../../etc/passwd", "etc_passwd"),
        ("???", "file"),
    ])
    def test_sanitize_filename(self, name, expected):
        assert sanitize_filename(name) == expected

    @pytest.mark.asyncio
    async def test_save_read_delete(self, storage):
        stored = await storage.save_file(b"%PDF-1.4 data", "bill.pdf", "application/pdf", FileCategory.RECEIPT)

        now = datetime.utcnow()
        assert stored["path"].startswith(f"receipts/{now.year}/{now.month:02d}/")
        assert stored["path"].endswith("_bill.pdf")
        assert stored["size"] == 13
        assert await storage.read_file(stored["path"]) == b"%PDF-1.4 data"

        assert await storage.delete_file(stored["path"]) is True
        assert storage.exists(stored["path"]) is False
        assert await storage.delete_file(stored["path"]) is False

    @pytest.mark.asyncio
    async def test_read_missing(self, storage):
        with pytest.raises(NotFoundException) as exc_info:
            await storage.read_file("receipts/2024/01/missing.pdf")
        assert exc_info.value.code == ErrorCode.FILE_NOT_FOUND

    def test_path_outside_upload_dir(self, storage):
        with pytest.raises(ValidationException):
            storage.resolve("../outside.txt")

    def test_validate_receipt(self, storage):
        storage.validate_receipt(b"\xff\xd8 jpeg", "image/jpeg")

        with pytest.raises(ValidationException):
            storage.validate_receipt(b"text", "text/plain")
        with pytest.raises(ValidationException):
            storage.validate_receipt(b"", "application/pdf")
        with pytest.raises(ValidationException):
            storage.validate_receipt(b"0" * (5 * 1024 * 1024 + 1), "application/pdf")


class TestSalarySlipPDF:

    def test_generate_pdf(self):
        breakdown = calculate_salary_breakdown(
            Decimal("50000"), 22, 20,
            allowances={"hra": 20000, "transport": 1600},
            deductions={"tax": 5000, "pf": 1800},
        )
        document = SalarySlipDocument(
            employee_name="Ravi <Kumar> & Sons",
            employee_code="EMP0001",
            employee_email="ravi@example.com",
            department="Engineering",
            position="Developer",
            month=6,
            year=2024,
            breakdown=breakdown,
            generated_by_name="Asha Admin",
            bank_account_number="123456789012",
            bank_name="State Bank",
            notes="Includes arrears",
        )

        pdf = SalarySlipPDFService().generate_pdf(document)

        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000
        assert document.period_label == "June 2024"
