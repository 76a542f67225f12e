"""
This module defines common Pydantic models used across multiple API modules.
These models represent shared data structures to ensure consistency throughout the application.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, TypeVar, Generic, List, Any, Dict

from pydantic import BaseModel, field_validator

OWNER_ROLE = "owner"
ADMIN_ROLE = "admin"


class TimestampMixin:
    """
    A mixin that adds created and updated timestamp fields to models.
    Use this for consistency in models that track creation and modification times.
    """
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @field_validator('createdAt', 'updatedAt', mode='before')
    @classmethod
    def parse_datetime(cls, value):
        """Parse ISO strings and Firestore timestamps into datetime objects"""
        if value is None:
            return None

        if isinstance(value, datetime):
            return value

        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace('Z', '+00:00'))
            except ValueError:
                try:
                    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    pass

        # Let Pydantic report anything we could not parse
        return value


def convert_timestamp(value) -> Optional[str]:
    """Convert a Firestore timestamp (or datetime) to an ISO string for responses."""
    if value is None:
        return None
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


class JSendStatus(str, Enum):
    """
    JSend status options according to specification.
    """
    SUCCESS = "success"
    FAIL = "fail"
    ERROR = "error"


T = TypeVar('T')


class PaginationResponse(BaseModel, Generic[T]):
    """
    A generic model for paginated responses.
    """
    items: List[T]
    total: int
    page: int
    size: int
    pages: int

    @classmethod
    def from_list(cls, items: List[Any], page: int, size: int) -> 'PaginationResponse':
        """Slice an in-memory list into one page."""
        total = len(items)
        start = (page - 1) * size
        pages = (total + size - 1) // size if size > 0 else 0
        return cls(items=items[start:start + size], total=total, page=page, size=size, pages=pages)


class JSendResponse(BaseModel, Generic[T]):
    """
    Base JSend response format as per https://github.com/omniti-labs/jsend
    """
    status: JSendStatus
    data: Optional[T] = None
    message: Optional[str] = None
    code: Optional[int] = None  # For error responses

    @classmethod
    def success(cls, data: Any = None) -> 'JSendResponse':
        """Create a success response with data"""
        return cls(status=JSendStatus.SUCCESS, data=data)

    @classmethod
    def fail(cls, data: Dict[str, Any]) -> 'JSendResponse':
        """Create a fail response with validation errors or other data-related failures"""
        return cls(status=JSendStatus.FAIL, data=data)

    @classmethod
    def error(cls, message: str, code: Optional[int] = None, data: Any = None) -> 'JSendResponse':
        """Create an error response for system or unexpected errors"""
        return cls(status=JSendStatus.ERROR, message=message, code=code, data=data)


class ItemWrapper(BaseModel, Generic[T]):
    """
    Wrapper for single item responses, shaped as {"item": ...}.
    """
    item: T


class DeleteResult(BaseModel):
    """
    Response body for deletion operations.
    """
    message: str
