"""
PayDesk - File Storage Service

Local file storage for expense receipts and generated salary slip PDFs.

Stored paths are relative to the upload directory, e.g.
``receipts/2024/05/3f9c1a2b7d4e_taxi_invoice.pdf``.
"""

import hashlib
import logging
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from paydesk.config import Settings, get_settings
from paydesk.utils.error_handling import ErrorCode, NotFoundException, ValidationException

logger = logging.getLogger(__name__)


class FileCategory(str, Enum):
    """File category types (also the top-level folder name)."""
    RECEIPT = "receipts"
    SALARY_SLIP = "salary-slips"


def sanitize_filename(filename: str) -> str:
    """Keep alphanumerics, dot, dash and underscore; collapse the rest."""
    safe = "".join(c if c.isalnum() or c in ".-_" else "_" for c in filename)
    while "__" in safe:
        safe = safe.replace("__", "_")
    return safe.strip("._") or "file"


class FileStorageService:
    """File storage under the configured upload directory."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.base_path = settings.upload_path
        self.max_receipt_size = settings.max_receipt_size_bytes
        self.allowed_receipt_types: List[str] = settings.allowed_receipt_types_list

    def _generate_relative_path(self, category: FileCategory, original_filename: str) -> str:
        """
        Generate a unique relative path.

        Format: category/year/month/unique_id_filename
        """
        now = datetime.utcnow()
        file_id = uuid.uuid4().hex[:12]
        return f"{category.value}/{now.year}/{now.month:02d}/{file_id}_{sanitize_filename(original_filename)}"

    def resolve(self, relative_path: str) -> Path:
        """Absolute path for a stored file; refuses paths outside the upload dir."""
        base = self.base_path.resolve()
        path = (base / relative_path).resolve()
        if base != path and base not in path.parents:
            raise ValidationException("Invalid file path", field="path", code=ErrorCode.INVALID_FILE)
        return path

    def validate_receipt(self, content: bytes, content_type: Optional[str]) -> None:
        """Check receipt type and size before anything is written."""
        if content_type not in self.allowed_receipt_types:
            raise ValidationException(
                "Only JPEG, PNG and PDF receipts are allowed",
                field="receipt",
                code=ErrorCode.INVALID_FILE,
                details={"content_type": content_type, "allowed": self.allowed_receipt_types},
            )
        if len(content) > self.max_receipt_size:
            raise ValidationException(
                f"Receipt exceeds the maximum size of {self.max_receipt_size // (1024 * 1024)}MB",
                field="receipt",
                code=ErrorCode.INVALID_FILE,
                details={"size": len(content), "max_size": self.max_receipt_size},
            )
        if not content:
            raise ValidationException("Receipt file is empty", field="receipt", code=ErrorCode.INVALID_FILE)

    async def save_file(
        self,
        file_content: bytes,
        filename: str,
        content_type: str,
        category: FileCategory,
    ) -> Dict[str, Any]:
        """
        Write a file to storage.

        Returns:
            Dict with the stored relative path and file metadata
        """
        relative_path = self._generate_relative_path(category, filename)
        file_path = self.resolve(relative_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(file_content)

        logger.info(f"Stored {category.value} file {relative_path} ({len(file_content)} bytes)")

        return {
            "path": relative_path,
            "filename": file_path.name,
            "original_name": filename,
            "content_type": content_type,
            "size": len(file_content),
            "hash": hashlib.md5(file_content).hexdigest(),
        }

    async def write_file(self, relative_path: str, file_content: bytes) -> str:
        """Write (or overwrite) a file at a known relative path."""
        file_path = self.resolve(relative_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(file_content)
        return relative_path

    async def read_file(self, relative_path: str) -> bytes:
        """Read a stored file; NotFoundException when it is missing."""
        file_path = self.resolve(relative_path)
        if not file_path.is_file():
            raise NotFoundException("File", message="File not found", code=ErrorCode.FILE_NOT_FOUND)
        return file_path.read_bytes()

    def exists(self, relative_path: Optional[str]) -> bool:
        if not relative_path:
            return False
        return self.resolve(relative_path).is_file()

    async def delete_file(self, relative_path: Optional[str]) -> bool:
        """
        Best-effort delete. Failures are logged and reported as False.
        """
        if not relative_path:
            return False
        try:
            file_path = self.resolve(relative_path)
            if file_path.is_file():
                file_path.unlink()
                logger.info(f"Deleted file {relative_path}")
                return True
            return False
        except (OSError, ValidationException) as e:
            logger.error(f"Failed to delete file {relative_path}: {e}")
            return False
