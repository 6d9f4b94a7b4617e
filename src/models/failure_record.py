"""
API failure domain model.
Durable audit record of one failed screening call and its retry state.
"""
from datetime import datetime
from typing import Optional


class RetryStatus:
    """
    Retry state machine.

    pending -> retrying -> success | exhausted | manual_required | pending
    pending, manual_required: retriable
    success, exhausted, resolved: terminal
    """
    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    MANUAL_REQUIRED = "manual_required"
    RESOLVED = "resolved"

    ALL = (PENDING, RETRYING, SUCCESS, EXHAUSTED, MANUAL_REQUIRED, RESOLVED)
    RETRIABLE = (PENDING, MANUAL_REQUIRED)
    TERMINAL = (SUCCESS, EXHAUSTED, RESOLVED)


class FailureRecord:
    """Domain model for a failed external API call."""

    def __init__(
        self,
        failure_id: str,
        endpoint: str,
        method: str,
        environment: str,
        created_at: datetime,
        request_body: Optional[dict] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        error_details: Optional[dict] = None,
        upload_id: Optional[str] = None,
        package_id: Optional[str] = None,
        external_id: Optional[str] = None,
        row_number: Optional[int] = None,
        retry_count: int = 0,
        max_retries: int = 3,
        retry_status: str = RetryStatus.PENDING,
        next_retry_at: Optional[datetime] = None,
        last_retry_at: Optional[datetime] = None,
        resolved_at: Optional[datetime] = None,
        resolution_notes: Optional[str] = None,
        updated_at: Optional[datetime] = None
    ):
        self.failure_id = failure_id
        self.endpoint = endpoint
        self.method = method
        self.environment = environment
        self.created_at = created_at
        self.request_body = request_body
        self.status_code = status_code
        self.error_code = error_code
        self.error_message = error_message
        self.error_details = error_details
        self.upload_id = upload_id
        self.package_id = package_id
        self.external_id = external_id
        self.row_number = row_number
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.retry_status = retry_status
        self.next_retry_at = next_retry_at
        self.last_retry_at = last_retry_at
        self.resolved_at = resolved_at
        self.resolution_notes = resolution_notes
        self.updated_at = updated_at or created_at

    @property
    def is_terminal(self) -> bool:
        return self.retry_status in RetryStatus.TERMINAL

    @property
    def is_retriable(self) -> bool:
        return self.retry_status in RetryStatus.RETRIABLE and self.retry_count < self.max_retries

    def __repr__(self):
        return (
            f"FailureRecord(failure_id={self.failure_id}, external_id={self.external_id}, "
            f"retry_status={self.retry_status}, retry_count={self.retry_count}/{self.max_retries})"
        )
