"""
Data Transfer Objects for the Upload API.
Defines request and response schemas for upload, validation and processing endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class UploadResponse(BaseModel):
    """Response schema for a successful CSV upload."""
    upload_id: str = Field(..., description="Unique identifier for the upload")
    status: str = Field(..., description="Upload status")
    message: str = Field(..., description="Status message")
    s3_location: str = Field(..., description="S3 location of uploaded file")


class UploadStatusResponse(BaseModel):
    """Response schema for upload status query."""
    upload_id: str
    status: str
    filename: str
    s3_key: str
    created_at: datetime
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    missing_columns: List[str] = []
    validation_results: List[dict] = []
    processing_results: Optional[dict] = None
    processing_completed_at: Optional[datetime] = None
    environment: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class ValidationSummaryResponse(BaseModel):
    """Response schema for a validation or re-validation pass."""
    upload_id: str
    is_valid: bool
    total_rows: int
    valid_rows: int
    invalid_rows: int
    missing_columns: List[str]
    results: List[dict]


class RowEditRequest(BaseModel):
    """Request schema for editing rows; keys are 1-based row numbers."""
    rows: Dict[int, Dict[str, str]] = Field(..., description="Column values to overwrite per row number")

    @field_validator('rows')
    @classmethod
    def validate_not_empty(cls, v: Dict[int, Dict[str, str]]) -> Dict[int, Dict[str, str]]:
        if not v:
            raise ValueError("At least one row edit is required")
        return v


class ProcessRequest(BaseModel):
    """Request schema for submitting a validated upload for screening."""
    environment: Optional[str] = Field(default=None, description="Screening environment: sandbox or production")

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in ("sandbox", "production"):
            raise ValueError("environment must be 'sandbox' or 'production'")
        return v


class SubmissionResultResponse(BaseModel):
    external_id: str
    status: str
    row_number: Optional[int] = None
    screening_code: Optional[int] = None
    screening_id: Optional[str] = None
    error: Optional[str] = None
    failure_id: Optional[str] = None


class BatchSummaryResponse(BaseModel):
    """Response schema for one processing run of an upload."""
    total: int
    processed: int
    accepted: int
    rejected: int
    inconclusive: int
    audit_required: int
    failed: int
    cancelled: bool = False
    results: List[SubmissionResultResponse]


class PackageResultResponse(BaseModel):
    """Response schema for a screened package."""
    package_id: str
    upload_id: Optional[str] = None
    external_id: str
    status: str
    screening_code: Optional[int] = None
    screening_status: Optional[str] = None
    screening_id: Optional[str] = None
    house_bill_number: Optional[str] = None
    barcode: Optional[str] = None
    platform_id: Optional[str] = None
    seller_id: Optional[str] = None
    label_qr_code: Optional[str] = None
    row_number: Optional[int] = None
    environment: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PackageListResponse(BaseModel):
    """Response schema for listing the packages of an upload."""
    packages: List[PackageResultResponse]
    count: int
