from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel

from ..core.config import settings

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope returned by every booking endpoint."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class Page(BaseModel, Generic[T]):
    items: List[T]
    pagination: Pagination


def paginate(items: list, total: int, limit: Optional[int], offset: int) -> dict:
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    return {
        "items": items,
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(items) < total,
        },
    }
