"""
Upload domain model.
Represents an uploaded CSV file through validation and submission.
"""
from datetime import datetime
from typing import List, Optional


class UploadState:
    """Upload lifecycle states."""
    PENDING = "pending"
    VALIDATED = "validated"
    INVALID = "invalid"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    CANCELLED = "cancelled"
    FAILED = "failed"

    EDITABLE = (PENDING, VALIDATED, INVALID)


class Upload:
    """Domain model for upload tracking."""

    def __init__(
        self,
        upload_id: str,
        status: str,
        filename: str,
        s3_key: str,
        created_at: datetime,
        total_rows: int = 0,
        valid_rows: int = 0,
        invalid_rows: int = 0,
        headers: Optional[List[str]] = None,
        missing_columns: Optional[List[str]] = None,
        validation_results: Optional[List[dict]] = None,
        processing_results: Optional[dict] = None,
        processing_completed_at: Optional[datetime] = None,
        environment: Optional[str] = None,
        error_message: Optional[str] = None
    ):
        self.upload_id = upload_id
        self.status = status
        self.filename = filename
        self.s3_key = s3_key
        self.created_at = created_at
        self.total_rows = total_rows
        self.valid_rows = valid_rows
        self.invalid_rows = invalid_rows
        self.headers = headers or []
        self.missing_columns = missing_columns or []
        self.validation_results = validation_results or []
        self.processing_results = processing_results
        self.processing_completed_at = processing_completed_at
        self.environment = environment
        self.error_message = error_message

    def __repr__(self):
        return f"Upload(upload_id={self.upload_id}, status={self.status}, filename={self.filename})"
