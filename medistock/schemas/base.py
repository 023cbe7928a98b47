"""
Base schema classes for pydantic models.

RULE: response schemas that read from ORM objects inherit from
BaseResponseSchema; request bodies inherit from BaseCreateSchema.
"""
from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ProductResponse(BaseResponseSchema):
            id: UUID
            name: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for request bodies.

    Unknown fields are ignored so older clients keep working.
    """
    model_config = ConfigDict(extra='ignore')


T = TypeVar("T")


class PageResponse(BaseModel, Generic[T]):
    """One page of a list endpoint."""
    items: List[T]
    total: int
    skip: int
    limit: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str
