"""
Response schemas for the HTTP API.

Every endpoint answers with the same envelope:
- SuccessResponse: ``{"success": true, "data": ...}``
- ErrorResponse: ``{"success": false, "error": {"code": ...}}``
"""

from typing import TypeVar, Generic, Optional
from pydantic import BaseModel, Field


T = TypeVar('T')


class BaseResponse(BaseModel):
    """Fields shared by every response envelope."""

    success: bool = Field(..., description="Whether the request succeeded")
    message: Optional[str] = Field(None, description="Optional human-readable context")


class SuccessResponse(BaseResponse, Generic[T]):
    """Successful response carrying ``data``.

    Example:
        SuccessResponse[list[TerminalSession]] for the session listing
    """

    success: bool = Field(True, description="Always true for successful responses")
    data: T = Field(..., description="Response data")


class ErrorResponse(BaseResponse):
    """Error response with a machine-readable code."""

    success: bool = Field(False, description="Always false for error responses")
    data: None = Field(None, description="Always null for error responses")
    error: Optional[dict] = Field(
        None,
        description="Error details including code",
        examples=[{"code": "SESSION_NOT_FOUND"}]
    )
