"""
Pydantic schemas for the cache admin endpoints.
"""

from pydantic import BaseModel, Field


class InvalidatePatternRequest(BaseModel):
    pattern: str = Field(..., min_length=1, description="Regular expression matched against cache keys")


class InvalidatePatternResponse(BaseModel):
    pattern: str
    removed: int


class DeleteKeyResponse(BaseModel):
    key: str
    deleted: bool
