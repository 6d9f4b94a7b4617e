"""
Data Transfer Objects for the external screening API.
Defines the success/error envelope and the package screening verdict.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ApiError(BaseModel):
    """Error part of the screening API envelope."""
    code: str = Field(..., description="HTTP status as text, NETWORK_ERROR or an API error code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(default=None, description="Raw error payload")


class ApiResponse(BaseModel):
    """Envelope returned by every screening client call."""
    success: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None

    @classmethod
    def ok(cls, data: Any) -> "ApiResponse":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, details: Any = None) -> "ApiResponse":
        return cls(success=False, error=ApiError(code=code, message=message, details=details))


class ScreeningResult(BaseModel):
    """Verdict returned by the package screening operation."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    package_id: Optional[str] = Field(default=None, alias="packageId")
    external_id: Optional[str] = Field(default=None, alias="externalId")
    code: int = Field(..., description="1=accepted, 2=rejected, 3=inconclusive, 4=audit")
    status: Optional[str] = None
    label_qr_code: Optional[str] = Field(default=None, alias="labelQrCode")
    products: list = Field(default_factory=list)
