"""
Retry Scheduler: retries failures whose next_retry_at has passed.
Driven by the scheduled retry Lambda; each record goes through FailureService.retry.
"""
import logging
from datetime import datetime
from typing import Optional
from src.core.exceptions import (
    CustomsPipelineException,
    FailureNotFoundException,
    InvalidStateException,
    RetryInProgressException
)
from src.models.submission import BatchRetrySummary, RetryOutcome
from src.services.failure_service import FailureService

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Polls for due failures and retries them one by one."""

    def __init__(self, failure_service: FailureService = None, batch_limit: int = 100):
        self.failure_service = failure_service or FailureService()
        self.batch_limit = batch_limit

    def run_once(self, now: Optional[datetime] = None) -> BatchRetrySummary:
        """
        Retry every due failure, up to batch_limit per run.

        Records picked up by another worker in the meantime are skipped; a
        storage error on one record fails that record only.
        """
        due = self.failure_service.find_due(now=now, limit=self.batch_limit)
        summary = BatchRetrySummary(total=len(due))

        for failure in due:
            try:
                outcome = self.failure_service.retry(failure.failure_id)
            except (RetryInProgressException, InvalidStateException, FailureNotFoundException) as e:
                logger.info("Skipping failure %s: %s", failure.failure_id, e.message,
                            extra={"failure_id": failure.failure_id})
                outcome = RetryOutcome(failure.failure_id, False, failure.retry_status, failure.retry_count,
                                       error=e.message)
            except CustomsPipelineException as e:
                logger.error("Retry of failure %s aborted: %s", failure.failure_id, e.message,
                             extra={"failure_id": failure.failure_id})
                outcome = RetryOutcome(failure.failure_id, False, failure.retry_status, failure.retry_count,
                                       error=e.message)
            summary.record(outcome)

        if due:
            logger.info("Scheduled retry run: %d due, %d successful, %d failed",
                        summary.total, summary.successful, summary.failed)
        return summary
