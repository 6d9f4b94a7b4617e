"""
Failure Service: durable tracking and bounded retry of failed screening calls.

Retry state machine:
    pending -> retrying -> success | exhausted | manual_required | pending
    pending and manual_required are retriable; success, exhausted and resolved are terminal.
    resolve() is the operator override into resolved and works from any non-success state.

At most one retry per record runs at a time: an in-process keyed lock covers
threads of this process and a conditional DynamoDB claim covers other processes.
A claim left in retrying for longer than retry_stale_after_seconds (crashed or
timed-out worker) is treated as released.
"""
import logging
import threading
import uuid
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from src.clients.screening_client import SCREEN_PACKAGE_ENDPOINT, ScreeningClientFactory
from src.core import config
from src.core.exceptions import (
    CustomsPipelineException,
    FailureNotFoundException,
    InvalidStateException,
    RetryInProgressException,
    ValidationException
)
from src.models.dto.screening_dto import ApiResponse
from src.models.failure_record import FailureRecord, RetryStatus
from src.models.submission import BatchRetrySummary, RetryOutcome
from src.repositories.db_repository import DBRepository
from src.repositories.failure_repository import FailureRepository
from src.repositories.package_repository import PackageRepository
from src.services.screening_results import build_package_result, flatten_error_message, parse_screening_result

logger = logging.getLogger(__name__)

RETRIABLE_ENDPOINTS = {SCREEN_PACKAGE_ENDPOINT}

SCOPE_NONE = "none"
SCOPE_ALL_PENDING = "all_pending"


class FailureService:
    """Service for recording, retrying and resolving API failures."""

    def __init__(
        self,
        failure_repository: FailureRepository = None,
        package_repository: DBRepository = None,
        client_factory: ScreeningClientFactory = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.failure_repository = failure_repository or FailureRepository()
        self.package_repository = package_repository or PackageRepository()
        self.client_factory = client_factory or ScreeningClientFactory()
        self._now = clock
        # failure_id -> [lock, number of callers holding or waiting for it]
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _record_lock(self, failure_id: str, blocking: bool = True):
        """Keyed lock for one failure; the entry is dropped once nobody holds or awaits it."""
        with self._locks_guard:
            entry = self._locks.get(failure_id)
            if entry is None:
                entry = self._locks[failure_id] = [threading.Lock(), 0]
            entry[1] += 1

        acquired = entry[0].acquire(blocking=blocking)
        try:
            if not acquired:
                raise RetryInProgressException(f"Failure '{failure_id}' is already being retried")
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[failure_id]

    @staticmethod
    def is_stale_claim(failure: FailureRecord, now: datetime) -> bool:
        """True for a retrying record whose claim is older than retry_stale_after_seconds."""
        if failure.retry_status != RetryStatus.RETRYING:
            return False
        claimed_at = failure.last_retry_at or failure.updated_at
        if claimed_at is None:
            return True
        return claimed_at + timedelta(seconds=config.settings.retry_stale_after_seconds) <= now

    @staticmethod
    def retry_delay(attempt: int) -> timedelta:
        """Delay before the next attempt, capped at the last configured step."""
        delays = config.settings.retry_delays_seconds or [60]
        return timedelta(seconds=delays[min(attempt, len(delays) - 1)])

    def record_failure(
        self,
        endpoint: str,
        method: str,
        environment: str,
        request_body: Optional[dict] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
        error_details: Any = None,
        upload_id: Optional[str] = None,
        external_id: Optional[str] = None,
        row_number: Optional[int] = None,
        package_id: Optional[str] = None
    ) -> FailureRecord:
        """
        Persist a new failure record in the pending state.

        The first retry is scheduled one delay step after creation.

        Raises:
            DynamoDBException: If the record cannot be stored
        """
        now = self._now()
        failure = FailureRecord(
            failure_id=str(uuid.uuid4()),
            endpoint=endpoint,
            method=method,
            environment=environment,
            created_at=now,
            request_body=request_body,
            status_code=status_code,
            error_code=error_code,
            error_message=flatten_error_message(error_message, error_details),
            error_details=error_details,
            upload_id=upload_id,
            package_id=package_id,
            external_id=external_id,
            row_number=row_number,
            retry_count=0,
            max_retries=config.settings.max_retries,
            retry_status=RetryStatus.PENDING,
            next_retry_at=now + self.retry_delay(0)
        )
        self.failure_repository.create(failure)
        logger.info(
            "Recorded API failure %s for %s",
            failure.failure_id, external_id,
            extra={"failure_id": failure.failure_id, "upload_id": upload_id, "row_number": row_number}
        )
        return failure

    def record_response_failure(self, endpoint: str, method: str, environment: str, request_body: dict,
                                response: ApiResponse, **links) -> FailureRecord:
        """Record a failure from an error envelope returned by the screening client."""
        error = response.error
        code = error.code if error else "UNKNOWN"
        return self.record_failure(
            endpoint=endpoint,
            method=method,
            environment=environment,
            request_body=request_body,
            status_code=int(code) if code.isdigit() else None,
            error_code=code,
            error_message=error.message if error else None,
            error_details=error.details if error else None,
            **links
        )

    def get(self, failure_id: str) -> FailureRecord:
        failure = self.failure_repository.get_by_id(failure_id)
        if failure is None:
            raise FailureNotFoundException(f"Failure '{failure_id}' not found")
        return failure

    def retry(self, failure_id: str) -> RetryOutcome:
        """
        Re-issue a failed call from its stored request snapshot.

        Raises:
            FailureNotFoundException: If the record does not exist
            InvalidStateException: If the record is in a terminal state
            RetryInProgressException: If a retry of this record is already running
        """
        with self._record_lock(failure_id, blocking=False):
            return self._retry_locked(failure_id)

    def _retry_locked(self, failure_id: str) -> RetryOutcome:
        failure = self.get(failure_id)
        now = self._now()

        if failure.retry_status == RetryStatus.RETRYING:
            if not self.is_stale_claim(failure, now):
                raise RetryInProgressException(f"Failure '{failure_id}' is already being retried")
            failure = self._release_stale_claim(failure, now)
        if failure.is_terminal:
            raise InvalidStateException(f"Failure '{failure_id}' is {failure.retry_status} and cannot be retried")

        if failure.retry_count >= failure.max_retries:
            self._update_or_conflict(failure_id, {
                'retry_status': RetryStatus.EXHAUSTED,
                'resolved_at': now,
                'resolution_notes': "Maximum retry attempts reached",
                'next_retry_at': None,
                'updated_at': now,
            }, RetryStatus.RETRIABLE)
            return RetryOutcome(failure_id, False, RetryStatus.EXHAUSTED, failure.retry_count,
                                error="Maximum retry attempts reached")

        if failure.endpoint not in RETRIABLE_ENDPOINTS or not failure.request_body:
            note = ("Unsupported endpoint for automatic retry" if failure.endpoint not in RETRIABLE_ENDPOINTS
                    else "Request snapshot missing; manual resubmission required")
            self._update_or_conflict(failure_id, {
                'retry_status': RetryStatus.MANUAL_REQUIRED,
                'resolution_notes': note,
                'next_retry_at': None,
                'updated_at': now,
            }, RetryStatus.RETRIABLE)
            return RetryOutcome(failure_id, False, RetryStatus.MANUAL_REQUIRED, failure.retry_count, error=note)

        if not self.failure_repository.claim_for_retry(failure_id, RetryStatus.RETRIABLE, RetryStatus.RETRYING, now):
            raise RetryInProgressException(f"Failure '{failure_id}' is already being retried")

        attempt = failure.retry_count + 1
        logger.info("Retrying failure %s (attempt %d/%d)", failure_id, attempt, failure.max_retries,
                    extra={"failure_id": failure_id})

        try:
            return self._attempt(failure, attempt)
        except Exception as e:
            self._abandon_claim(failure, attempt, e)
            raise

    def _attempt(self, failure: FailureRecord, attempt: int) -> RetryOutcome:
        failure_id = failure.failure_id
        try:
            response = self.client_factory.get_client(failure.environment).screen_package(failure.request_body)
        except Exception as e:
            logger.exception("Retry call for failure %s raised", failure_id)
            response = ApiResponse.fail("EXCEPTION", str(e) or e.__class__.__name__)

        screening = parse_screening_result(response.data) if response.success else None
        if response.success and screening is None:
            response = ApiResponse.fail("INVALID_RESPONSE", "Malformed screening response", response.data)

        if screening is not None:
            package = build_package_result(
                screening,
                failure.request_body,
                upload_id=failure.upload_id,
                row_number=failure.row_number,
                environment=failure.environment,
                external_id=failure.external_id,
                raw_response=response.data
            )
            self.package_repository.save(package)
            finished = self._now()
            self.failure_repository.update(failure_id, {
                'retry_status': RetryStatus.SUCCESS,
                'retry_count': attempt,
                'resolved_at': finished,
                'resolution_notes': f"Retry successful on attempt {attempt}",
                'package_id': package.package_id,
                'next_retry_at': None,
                'updated_at': finished,
            })
            logger.info("Retry of failure %s succeeded", failure_id, extra={"failure_id": failure_id})
            return RetryOutcome(failure_id, True, RetryStatus.SUCCESS, attempt, package_id=package.package_id)

        return self._record_failed_attempt(failure, attempt, response)

    def _record_failed_attempt(self, failure: FailureRecord, attempt: int, response: ApiResponse) -> RetryOutcome:
        error = response.error
        code = error.code if error else "UNKNOWN"
        message = flatten_error_message(error.message if error else None, error.details if error else None)
        finished = self._now()
        updates = {
            'retry_count': attempt,
            'error_code': code,
            'error_message': message,
            'error_details': error.details if error else None,
            'status_code': int(code) if code.isdigit() else None,
            'updated_at': finished,
        }

        if attempt >= failure.max_retries:
            updates.update({
                'retry_status': RetryStatus.EXHAUSTED,
                'resolved_at': finished,
                'resolution_notes': "Maximum retry attempts reached",
                'next_retry_at': None,
            })
            status = RetryStatus.EXHAUSTED
        else:
            updates.update({
                'retry_status': RetryStatus.PENDING,
                'next_retry_at': finished + self.retry_delay(attempt),
            })
            status = RetryStatus.PENDING

        self.failure_repository.update(failure.failure_id, updates)
        logger.info("Retry of failure %s failed (%s): %s", failure.failure_id, status, message,
                    extra={"failure_id": failure.failure_id})
        return RetryOutcome(failure.failure_id, False, status, attempt, error=message)

    def _release_stale_claim(self, failure: FailureRecord, now: datetime) -> FailureRecord:
        """Count the abandoned attempt and put the record back to pending."""
        logger.warning("Releasing stale retry claim on failure %s (claimed %s)",
                       failure.failure_id, failure.last_retry_at, extra={"failure_id": failure.failure_id})
        self._update_or_conflict(failure.failure_id, {
            'retry_status': RetryStatus.PENDING,
            'retry_count': failure.retry_count + 1,
            'error_code': "INTERRUPTED",
            'error_message': "Retry attempt did not complete",
            'updated_at': now,
        }, [RetryStatus.RETRYING])
        return self.get(failure.failure_id)

    def _abandon_claim(self, failure: FailureRecord, attempt: int, error: Exception) -> None:
        """
        Hand a retry that raised after its claim back to an operator.

        The screening call may already have gone through, so the record is not
        rescheduled automatically.
        """
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        logger.error("Retry of failure %s interrupted: %s", failure.failure_id, message,
                     extra={"failure_id": failure.failure_id})
        now = self._now()
        try:
            self.failure_repository.update(failure.failure_id, {
                'retry_status': RetryStatus.MANUAL_REQUIRED,
                'retry_count': attempt,
                'error_code': "INTERRUPTED",
                'error_message': message,
                'resolution_notes': "Retry interrupted after the call; check for a saved package before retrying",
                'next_retry_at': None,
                'updated_at': now,
            }, expected_statuses=[RetryStatus.RETRYING])
        except CustomsPipelineException as e:
            logger.error("Could not release retry claim on failure %s: %s", failure.failure_id, e.message,
                         extra={"failure_id": failure.failure_id})

    def _update_or_conflict(self, failure_id: str, updates: dict, expected_statuses: Sequence[str]) -> None:
        if not self.failure_repository.update(failure_id, updates, expected_statuses=expected_statuses):
            raise RetryInProgressException(f"Failure '{failure_id}' changed state during the update")

    def batch_retry(self, failure_ids: Optional[List[str]] = None, upload_id: Optional[str] = None) -> BatchRetrySummary:
        """
        Retry a set of failures concurrently.

        Explicit IDs take precedence, then every pending failure of an upload.
        With neither, batch_retry_default_scope decides: 'none' rejects the
        request, 'all_pending' retries every pending failure. Records that are
        terminal, out of attempts or held by a live retry claim are never retried.

        Raises:
            ValidationException: If no scope is given and the default scope is 'none'
        """
        if failure_ids:
            candidates = []
            for failure_id in dict.fromkeys(failure_ids):
                failure = self.failure_repository.get_by_id(failure_id)
                if failure is not None:
                    candidates.append(failure)
        elif upload_id:
            candidates = self.failure_repository.scan(statuses=[RetryStatus.PENDING], upload_id=upload_id)
        else:
            scope = config.settings.batch_retry_default_scope
            if scope != SCOPE_ALL_PENDING:
                raise ValidationException("Provide failure_ids or upload_id to select failures to retry")
            candidates = self.failure_repository.scan(statuses=[RetryStatus.PENDING])

        now = self._now()
        eligible = [f for f in candidates if f.is_retriable or self.is_stale_claim(f, now)]
        summary = BatchRetrySummary(total=len(eligible))
        if not eligible:
            return summary

        workers = max(1, min(config.settings.batch_retry_concurrency, len(eligible)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            outcomes = list(executor.map(self._retry_for_batch, eligible))

        for outcome in outcomes:
            summary.record(outcome)

        logger.info("Batch retry finished: %d total, %d successful, %d failed",
                    summary.total, summary.successful, summary.failed)
        return summary

    def _retry_for_batch(self, failure: FailureRecord) -> RetryOutcome:
        try:
            return self.retry(failure.failure_id)
        except (RetryInProgressException, InvalidStateException, FailureNotFoundException) as e:
            return RetryOutcome(failure.failure_id, False, failure.retry_status, failure.retry_count, error=e.message)
        except CustomsPipelineException as e:
            logger.error("Batch retry of failure %s aborted: %s", failure.failure_id, e.message,
                         extra={"failure_id": failure.failure_id})
            return RetryOutcome(failure.failure_id, False, failure.retry_status, failure.retry_count, error=e.message)

    def resolve(self, failure_id: str, notes: str) -> FailureRecord:
        """
        Operator override: mark a failure resolved and stop automatic retries.

        Resolving a record that already succeeded or was resolved is a no-op.

        Raises:
            FailureNotFoundException: If the record does not exist
            RetryInProgressException: If a retry is running and its claim is not yet stale
        """
        with self._record_lock(failure_id):
            failure = self.get(failure_id)
            if failure.retry_status in (RetryStatus.SUCCESS, RetryStatus.RESOLVED):
                return failure

            now = self._now()
            resolvable = [RetryStatus.PENDING, RetryStatus.MANUAL_REQUIRED, RetryStatus.EXHAUSTED]
            if self.is_stale_claim(failure, now):
                resolvable.append(RetryStatus.RETRYING)
            updated = self.failure_repository.update(failure_id, {
                'retry_status': RetryStatus.RESOLVED,
                'resolved_at': now,
                'resolution_notes': notes,
                'next_retry_at': None,
                'updated_at': now,
            }, expected_statuses=resolvable)

            if not updated:
                current = self.get(failure_id)
                if current.retry_status in (RetryStatus.SUCCESS, RetryStatus.RESOLVED):
                    return current
                raise RetryInProgressException(f"Failure '{failure_id}' is being retried and cannot be resolved now")

            logger.info("Failure %s resolved manually", failure_id, extra={"failure_id": failure_id})
            return self.get(failure_id)

    def list_failures(
        self,
        status: Optional[str] = None,
        upload_id: Optional[str] = None,
        environment: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[FailureRecord], int]:
        """
        List failures newest first.

        Returns:
            Tuple of (page of records, total matching count)
        """
        if status is not None and status not in RetryStatus.ALL:
            raise ValidationException(f"Unknown retry status: {status}")
        limit = limit or config.settings.pagination_default_limit
        limit = min(limit, config.settings.pagination_max_limit)

        records = self.failure_repository.scan(
            statuses=[status] if status else None,
            upload_id=upload_id,
            environment=environment
        )
        records.sort(key=lambda f: f.created_at, reverse=True)
        return records[offset:offset + limit], len(records)

    def get_stats(self, upload_id: Optional[str] = None) -> Dict[str, int]:
        """Count failures per retry status."""
        stats = {status: 0 for status in RetryStatus.ALL}
        records = self.failure_repository.scan(upload_id=upload_id)
        for record in records:
            stats[record.retry_status] = stats.get(record.retry_status, 0) + 1
        stats["total"] = len(records)
        return stats

    def find_due(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[FailureRecord]:
        """
        Pending failures whose next_retry_at has passed, plus retrying records
        with a stale claim; oldest schedule first.
        """
        now = now or self._now()
        due = []
        for f in self.failure_repository.scan(statuses=[RetryStatus.PENDING, RetryStatus.RETRYING]):
            if self.is_stale_claim(f, now):
                due.append(f)
            elif f.is_retriable and f.next_retry_at is not None and f.next_retry_at <= now:
                due.append(f)
        due.sort(key=lambda f: f.next_retry_at or f.last_retry_at or f.created_at)
        return due[:limit] if limit else due
