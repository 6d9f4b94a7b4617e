"""
Data Transfer Objects for the API failure endpoints.
"""
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, Field, field_validator


class FailureResponse(BaseModel):
    """Response schema for one API failure record."""
    failure_id: str
    endpoint: str
    method: str
    environment: str
    created_at: datetime
    request_body: Optional[dict] = None
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Optional[Any] = None
    upload_id: Optional[str] = None
    package_id: Optional[str] = None
    external_id: Optional[str] = None
    row_number: Optional[int] = None
    retry_count: int
    max_retries: int
    retry_status: str
    next_retry_at: Optional[datetime] = None
    last_retry_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FailureListResponse(BaseModel):
    """Response schema for a page of failures."""
    failures: List[FailureResponse]
    count: int
    total: int
    limit: int
    offset: int


class RetryOutcomeResponse(BaseModel):
    failure_id: str
    success: bool
    retry_status: str
    retry_count: int
    error: Optional[str] = None
    package_id: Optional[str] = None


class BatchRetryRequest(BaseModel):
    """Request schema for batch retry; with neither field the configured default scope applies."""
    failure_ids: Optional[List[str]] = Field(default=None, description="Failures to retry")
    upload_id: Optional[str] = Field(default=None, description="Retry all pending failures of this upload")


class BatchRetryResponse(BaseModel):
    total: int
    successful: int
    failed: int
    results: List[RetryOutcomeResponse]


class ResolveRequest(BaseModel):
    """Request schema for manually resolving a failure."""
    notes: str = Field(..., min_length=1, max_length=1000, description="Resolution notes")

    @field_validator('notes')
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or v.strip() == "":
            raise ValueError("Notes cannot be empty")
        return v.strip()
