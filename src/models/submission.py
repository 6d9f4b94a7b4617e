"""
Submission outcome models: per-row results and the batch summary of one run.
"""
from dataclasses import dataclass, field
from typing import List, Optional

SCREENING_CODE_TO_STATUS = {
    1: "accepted",
    2: "rejected",
    3: "inconclusive",
    4: "audit_required",
}

FAILED = "failed"


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of submitting one row to the screening API."""
    external_id: str
    status: str
    row_number: Optional[int] = None
    screening_code: Optional[int] = None
    screening_id: Optional[str] = None
    error: Optional[str] = None
    failure_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "external_id": self.external_id,
            "status": self.status,
            "row_number": self.row_number,
            "screening_code": self.screening_code,
            "screening_id": self.screening_id,
            "error": self.error,
            "failure_id": self.failure_id,
        }


@dataclass
class BatchSummary:
    """Aggregate outcome of one processing run; exactly one result per processed row."""
    total: int
    processed: int = 0
    accepted: int = 0
    rejected: int = 0
    inconclusive: int = 0
    audit_required: int = 0
    failed: int = 0
    cancelled: bool = False
    results: List[SubmissionResult] = field(default_factory=list)

    def record(self, result: SubmissionResult) -> None:
        self.processed += 1
        self.results.append(result)
        if result.status == "accepted":
            self.accepted += 1
        elif result.status == "rejected":
            self.rejected += 1
        elif result.status == "inconclusive":
            self.inconclusive += 1
        elif result.status == "audit_required":
            self.audit_required += 1
        elif result.status == FAILED:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "accepted": self.accepted,
            "rejected": self.rejected,
            "inconclusive": self.inconclusive,
            "audit_required": self.audit_required,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(frozen=True)
class RetryOutcome:
    """Result of one retry attempt on a failure record."""
    failure_id: str
    success: bool
    retry_status: str
    retry_count: int
    error: Optional[str] = None
    package_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "failure_id": self.failure_id,
            "success": self.success,
            "retry_status": self.retry_status,
            "retry_count": self.retry_count,
            "error": self.error,
            "package_id": self.package_id,
        }


@dataclass
class BatchRetrySummary:
    """Summary of a batch retry: total attempted, successful and failed."""
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: List[RetryOutcome] = field(default_factory=list)

    def record(self, outcome: RetryOutcome) -> None:
        self.results.append(outcome)
        if outcome.success:
            self.successful += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
