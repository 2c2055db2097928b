"""
PayDesk - Common Schemas
"""

from pydantic import BaseModel


class MessageResponse(BaseModel):
    """Generic message response."""
    message: str
    success: bool = True


class PaginationMeta(BaseModel):
    """Pagination block of list responses."""
    page: int
    limit: int
    total: int
    pages: int
