"""
Unit tests for FailureService.
Covers the retry state machine, exhaustion, resolve, batch retry and single-flight.
"""
import copy
import threading
from datetime import datetime, timedelta
from unittest.mock import Mock
import pytest
from src.core import config
from src.core.exceptions import (
    DynamoDBException,
    FailureNotFoundException,
    InvalidStateException,
    RetryInProgressException,
    ValidationException
)
from src.models.dto.screening_dto import ApiResponse
from src.models.failure_record import RetryStatus
from src.services.failure_service import FailureService

NOW = datetime(2024, 5, 1, 12, 0, 0)
REQUEST = {"externalId": "PKG-001", "houseBillNumber": "HB1", "platformId": "amazon"}
ACCEPTED = {"packageId": "sp-1", "externalId": "PKG-001", "code": 1, "status": "Accepted"}


class InMemoryFailureRepository:
    """Failure repository double honouring the conditional-update contract."""

    def __init__(self):
        self.items = {}
        self.lock = threading.Lock()

    def create(self, failure):
        self.items[failure.failure_id] = copy.deepcopy(failure)

    def get_by_id(self, failure_id):
        failure = self.items.get(failure_id)
        return copy.deepcopy(failure) if failure else None

    def update(self, failure_id, updates, expected_statuses=None):
        with self.lock:
            failure = self.items[failure_id]
            if expected_statuses is not None and failure.retry_status not in expected_statuses:
                return False
            for key, value in updates.items():
                setattr(failure, key, value)
            return True

    def claim_for_retry(self, failure_id, from_statuses, to_status, now):
        return self.update(
            failure_id,
            {'retry_status': to_status, 'last_retry_at': now, 'updated_at': now},
            expected_statuses=list(from_statuses)
        )

    def scan(self, statuses=None, upload_id=None, environment=None):
        return [
            copy.deepcopy(f) for f in self.items.values()
            if (statuses is None or f.retry_status in statuses)
            and (not upload_id or f.upload_id == upload_id)
            and (not environment or f.environment == environment)
        ]


class TestFailureService:
    """Test suite for FailureService."""

    @pytest.fixture(autouse=True)
    def setup_test_env(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "3")
        monkeypatch.setenv("BATCH_RETRY_DEFAULT_SCOPE", "none")
        config.settings = config.Settings()
        yield
        config.settings = config.Settings()

    @pytest.fixture
    def repository(self):
        return InMemoryFailureRepository()

    @pytest.fixture
    def client(self):
        return Mock()

    @pytest.fixture
    def package_repository(self):
        return Mock()

    @pytest.fixture
    def failure_service(self, repository, package_repository, client):
        factory = Mock()
        factory.get_client.return_value = client
        return FailureService(
            failure_repository=repository,
            package_repository=package_repository,
            client_factory=factory,
            clock=lambda: NOW
        )

    def record(self, failure_service, **overrides):
        kwargs = dict(
            endpoint="/v1/package/screen",
            method="POST",
            environment="sandbox",
            request_body=REQUEST,
            status_code=500,
            error_code="500",
            error_message="Internal Server Error",
            upload_id="upload-1",
            external_id="PKG-001",
            row_number=1
        )
        kwargs.update(overrides)
        return failure_service.record_failure(**kwargs)

    def test_record_failure(self, failure_service, repository):
        failure = self.record(failure_service)

        stored = repository.items[failure.failure_id]
        assert stored.retry_status == RetryStatus.PENDING
        assert stored.retry_count == 0
        assert stored.max_retries == 3
        assert stored.next_retry_at == NOW + timedelta(seconds=60)
        assert stored.created_at == NOW

    def test_record_failure_flattens_detail_errors(self, failure_service):
        details = {"errors": [{"message": "Weight is required"}, {"message": "Invalid HS code"}]}
        failure = self.record(failure_service, error_message="Validation failed", error_details=details)
        assert failure.error_message == "Weight is required; Invalid HS code"

    def test_record_response_failure(self, failure_service):
        failure = failure_service.record_response_failure(
            "/v1/package/screen", "POST", "sandbox", REQUEST,
            ApiResponse.fail("NETWORK_ERROR", "timed out"),
            upload_id="upload-1", external_id="PKG-001", row_number=4
        )
        assert failure.error_code == "NETWORK_ERROR"
        assert failure.status_code is None
        assert failure.row_number == 4

    def test_get_not_found(self, failure_service):
        with pytest.raises(FailureNotFoundException):
            failure_service.get("missing")

    def test_retry_success(self, failure_service, repository, package_repository, client):
        failure = self.record(failure_service)
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)

        outcome = failure_service.retry(failure.failure_id)

        assert outcome.success
        assert outcome.retry_status == RetryStatus.SUCCESS
        stored = repository.items[failure.failure_id]
        assert stored.retry_status == RetryStatus.SUCCESS
        assert stored.retry_count == 1
        assert stored.resolved_at == NOW
        assert stored.last_retry_at == NOW
        assert stored.next_retry_at is None
        assert stored.package_id == outcome.package_id
        assert stored.resolution_notes == "Retry successful on attempt 1"
        client.screen_package.assert_called_once_with(REQUEST)
        saved = package_repository.save.call_args.args[0]
        assert saved.status == "accepted"
        assert saved.upload_id == "upload-1"
        assert saved.row_number == 1

    def test_retry_failure_reschedules(self, failure_service, repository, client):
        failure = self.record(failure_service)
        client.screen_package.return_value = ApiResponse.fail("503", "Service Unavailable")

        outcome = failure_service.retry(failure.failure_id)

        assert not outcome.success
        assert outcome.retry_status == RetryStatus.PENDING
        stored = repository.items[failure.failure_id]
        assert stored.retry_count == 1
        assert stored.error_message == "Service Unavailable"
        assert stored.status_code == 503
        assert stored.next_retry_at == NOW + timedelta(seconds=300)
        assert stored.created_at == NOW

    def test_last_allowed_attempt_failing_exhausts(self, failure_service, repository, client):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_count = 2
        client.screen_package.return_value = ApiResponse.fail("NETWORK_ERROR", "timed out")

        outcome = failure_service.retry(failure.failure_id)

        assert outcome.retry_status == RetryStatus.EXHAUSTED
        stored = repository.items[failure.failure_id]
        assert stored.retry_status == RetryStatus.EXHAUSTED
        assert stored.retry_count == 3
        assert stored.next_retry_at is None

    def test_client_exception_counts_as_failed_attempt(self, failure_service, repository, client):
        failure = self.record(failure_service)
        client.screen_package.side_effect = RuntimeError("socket closed")

        outcome = failure_service.retry(failure.failure_id)

        assert not outcome.success
        assert repository.items[failure.failure_id].error_code == "EXCEPTION"
        assert repository.items[failure.failure_id].retry_status == RetryStatus.PENDING

    def test_malformed_success_counts_as_failed_attempt(self, failure_service, repository, client, package_repository):
        failure = self.record(failure_service)
        client.screen_package.return_value = ApiResponse.ok({"unexpected": True})

        outcome = failure_service.retry(failure.failure_id)

        assert not outcome.success
        assert repository.items[failure.failure_id].error_code == "INVALID_RESPONSE"
        package_repository.save.assert_not_called()

    @pytest.mark.parametrize("status", [RetryStatus.SUCCESS, RetryStatus.EXHAUSTED, RetryStatus.RESOLVED])
    def test_retry_terminal_rejected(self, failure_service, repository, client, status):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_status = status

        with pytest.raises(InvalidStateException):
            failure_service.retry(failure.failure_id)
        client.screen_package.assert_not_called()

    def test_retry_while_retrying_rejected(self, failure_service, repository):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_status = RetryStatus.RETRYING

        with pytest.raises(RetryInProgressException):
            failure_service.retry(failure.failure_id)

    def test_retry_at_max_count_marks_exhausted(self, failure_service, repository, client):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_count = 3

        outcome = failure_service.retry(failure.failure_id)

        assert outcome.retry_status == RetryStatus.EXHAUSTED
        assert repository.items[failure.failure_id].resolution_notes == "Maximum retry attempts reached"
        client.screen_package.assert_not_called()

    def test_unsupported_endpoint_requires_manual_action(self, failure_service, repository, client):
        failure = self.record(failure_service, endpoint="/v1/duty/pay")

        outcome = failure_service.retry(failure.failure_id)

        assert outcome.retry_status == RetryStatus.MANUAL_REQUIRED
        assert "Unsupported endpoint" in repository.items[failure.failure_id].resolution_notes
        client.screen_package.assert_not_called()

    def test_missing_snapshot_requires_manual_action(self, failure_service, repository):
        failure = self.record(failure_service, request_body=None)
        outcome = failure_service.retry(failure.failure_id)
        assert outcome.retry_status == RetryStatus.MANUAL_REQUIRED

    def test_manual_required_is_retriable(self, failure_service, repository, client):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_status = RetryStatus.MANUAL_REQUIRED
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)

        assert failure_service.retry(failure.failure_id).success

    def test_concurrent_retry_of_same_record_runs_once(self, failure_service, client):
        failure = self.record(failure_service)
        started = threading.Event()
        release = threading.Event()

        def slow_call(request):
            started.set()
            release.wait(5)
            return ApiResponse.ok(ACCEPTED)

        client.screen_package.side_effect = slow_call
        results = {}
        worker = threading.Thread(target=lambda: results.setdefault("first", failure_service.retry(failure.failure_id)))
        worker.start()
        assert started.wait(5)

        with pytest.raises(RetryInProgressException):
            failure_service.retry(failure.failure_id)

        release.set()
        worker.join(5)
        assert results["first"].success
        assert client.screen_package.call_count == 1
        assert failure_service._locks == {}

    def test_claim_lost_to_other_process(self, failure_service, repository, client):
        failure = self.record(failure_service)
        repository.claim_for_retry = Mock(return_value=False)

        with pytest.raises(RetryInProgressException):
            failure_service.retry(failure.failure_id)
        client.screen_package.assert_not_called()

    def test_resolve(self, failure_service, repository):
        failure = self.record(failure_service)

        resolved = failure_service.resolve(failure.failure_id, "Fixed manually in portal")

        assert resolved.retry_status == RetryStatus.RESOLVED
        assert resolved.resolution_notes == "Fixed manually in portal"
        assert resolved.resolved_at == NOW
        assert resolved.next_retry_at is None

    def test_resolve_exhausted(self, failure_service, repository):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_status = RetryStatus.EXHAUSTED
        assert failure_service.resolve(failure.failure_id, "Written off").retry_status == RetryStatus.RESOLVED

    def test_resolve_is_idempotent(self, failure_service, repository):
        failure = self.record(failure_service)
        failure_service.resolve(failure.failure_id, "first")

        again = failure_service.resolve(failure.failure_id, "second")

        assert again.resolution_notes == "first"

    def test_resolve_success_is_noop(self, failure_service, repository):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_status = RetryStatus.SUCCESS

        assert failure_service.resolve(failure.failure_id, "notes").retry_status == RetryStatus.SUCCESS

    def test_resolve_while_retrying_elsewhere(self, failure_service, repository):
        failure = self.record(failure_service)
        repository.items[failure.failure_id].retry_status = RetryStatus.RETRYING

        with pytest.raises(RetryInProgressException):
            failure_service.resolve(failure.failure_id, "notes")

    def test_storage_error_after_claim_hands_record_to_operator(self, failure_service, repository,
                                                                 package_repository, client):
        failure = self.record(failure_service)
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)
        package_repository.save.side_effect = DynamoDBException("Failed to save package: throttled")

        with pytest.raises(DynamoDBException):
            failure_service.retry(failure.failure_id)

        stored = repository.items[failure.failure_id]
        assert stored.retry_status == RetryStatus.MANUAL_REQUIRED
        assert stored.retry_count == 1
        assert stored.error_code == "INTERRUPTED"
        assert stored.error_message == "Failed to save package: throttled"
        assert stored.next_retry_at is None
        assert failure_service._locks == {}

        package_repository.save.side_effect = None
        assert failure_service.retry(failure.failure_id).success
        assert repository.items[failure.failure_id].retry_count == 2

    def test_interrupted_retry_can_be_resolved(self, failure_service, repository, package_repository, client):
        failure = self.record(failure_service)
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)
        package_repository.save.side_effect = DynamoDBException("throttled")
        with pytest.raises(DynamoDBException):
            failure_service.retry(failure.failure_id)

        resolved = failure_service.resolve(failure.failure_id, "Package found in portal")

        assert resolved.retry_status == RetryStatus.RESOLVED

    def test_stale_claim_is_retried(self, failure_service, repository, client):
        failure = self.record(failure_service)
        stored = repository.items[failure.failure_id]
        stored.retry_status = RetryStatus.RETRYING
        stored.last_retry_at = NOW - timedelta(hours=2)
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)

        outcome = failure_service.retry(failure.failure_id)

        assert outcome.success
        # the abandoned attempt counts
        assert outcome.retry_count == 2

    def test_stale_claim_on_last_attempt_exhausts(self, failure_service, repository, client):
        failure = self.record(failure_service)
        stored = repository.items[failure.failure_id]
        stored.retry_status = RetryStatus.RETRYING
        stored.retry_count = 2
        stored.last_retry_at = NOW - timedelta(hours=2)

        outcome = failure_service.retry(failure.failure_id)

        assert outcome.retry_status == RetryStatus.EXHAUSTED
        client.screen_package.assert_not_called()

    def test_resolve_stale_claim(self, failure_service, repository):
        failure = self.record(failure_service)
        stored = repository.items[failure.failure_id]
        stored.retry_status = RetryStatus.RETRYING
        stored.last_retry_at = NOW - timedelta(hours=2)

        resolved = failure_service.resolve(failure.failure_id, "Worker timed out; resubmitted by hand")

        assert resolved.retry_status == RetryStatus.RESOLVED
        assert failure_service._locks == {}

    def test_resolve_fresh_claim_rejected(self, failure_service, repository):
        failure = self.record(failure_service)
        stored = repository.items[failure.failure_id]
        stored.retry_status = RetryStatus.RETRYING
        stored.last_retry_at = NOW - timedelta(seconds=30)

        with pytest.raises(RetryInProgressException):
            failure_service.resolve(failure.failure_id, "notes")
        assert failure_service._locks == {}

    def test_stale_claim_timeout_is_configurable(self, failure_service, repository, monkeypatch):
        monkeypatch.setenv("RETRY_STALE_AFTER_SECONDS", "10")
        config.settings = config.Settings()
        failure = self.record(failure_service)
        stored = repository.items[failure.failure_id]
        stored.retry_status = RetryStatus.RETRYING
        stored.last_retry_at = NOW - timedelta(seconds=30)

        assert failure_service.is_stale_claim(stored, NOW)
        assert not failure_service.is_stale_claim(stored, NOW - timedelta(seconds=25))

    def test_batch_retry_by_ids_skips_terminal(self, failure_service, repository, client):
        pending = self.record(failure_service)
        done = self.record(failure_service)
        exhausted = self.record(failure_service)
        repository.items[done.failure_id].retry_status = RetryStatus.SUCCESS
        repository.items[exhausted.failure_id].retry_status = RetryStatus.EXHAUSTED
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)

        summary = failure_service.batch_retry(failure_ids=[pending.failure_id, done.failure_id, exhausted.failure_id, "missing"])

        assert (summary.total, summary.successful, summary.failed) == (1, 1, 0)
        assert client.screen_package.call_count == 1
        assert repository.items[exhausted.failure_id].retry_status == RetryStatus.EXHAUSTED

    def test_batch_retry_by_upload(self, failure_service, repository, client):
        ok = self.record(failure_service)
        bad = self.record(failure_service)
        self.record(failure_service, upload_id="upload-2")
        resolved = self.record(failure_service)
        failure_service.resolve(resolved.failure_id, "handled")

        def screen(request):
            return ApiResponse.ok(ACCEPTED)

        client.screen_package.side_effect = screen
        repository.items[bad.failure_id].request_body = None

        summary = failure_service.batch_retry(upload_id="upload-1")

        assert summary.total == 2
        assert summary.successful == 1
        assert summary.failed == 1
        assert {r.failure_id for r in summary.results} == {ok.failure_id, bad.failure_id}
        assert repository.items[resolved.failure_id].retry_status == RetryStatus.RESOLVED

    def test_batch_retry_without_scope_rejected_by_default(self, failure_service):
        with pytest.raises(ValidationException):
            failure_service.batch_retry()

    def test_batch_retry_all_pending_scope(self, failure_service, repository, client, monkeypatch):
        monkeypatch.setenv("BATCH_RETRY_DEFAULT_SCOPE", "all_pending")
        config.settings = config.Settings()
        self.record(failure_service)
        self.record(failure_service, upload_id="upload-2")
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)

        summary = failure_service.batch_retry()

        assert summary.total == 2
        assert summary.successful == 2

    def test_batch_retry_storage_error_fails_one_record(self, failure_service, repository, package_repository, client):
        first = self.record(failure_service)
        second = self.record(failure_service)
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)
        package_repository.save.side_effect = [DynamoDBException("Failed to save package: throttled"), None]

        summary = failure_service.batch_retry(failure_ids=[first.failure_id, second.failure_id])

        assert (summary.total, summary.successful, summary.failed) == (2, 1, 1)
        failed = [r for r in summary.results if not r.success]
        assert failed[0].error == "Failed to save package: throttled"
        assert repository.items[failed[0].failure_id].retry_status == RetryStatus.MANUAL_REQUIRED
        assert failure_service._locks == {}

    def test_batch_retry_includes_stale_claims(self, failure_service, repository, client):
        stale = self.record(failure_service)
        fresh = self.record(failure_service)
        repository.items[stale.failure_id].retry_status = RetryStatus.RETRYING
        repository.items[stale.failure_id].last_retry_at = NOW - timedelta(hours=2)
        repository.items[fresh.failure_id].retry_status = RetryStatus.RETRYING
        repository.items[fresh.failure_id].last_retry_at = NOW
        client.screen_package.return_value = ApiResponse.ok(ACCEPTED)

        summary = failure_service.batch_retry(failure_ids=[stale.failure_id, fresh.failure_id])

        assert summary.total == 1
        assert summary.results[0].failure_id == stale.failure_id
        assert summary.results[0].success

    def test_list_failures_newest_first_with_paging(self, failure_service, repository):
        first = self.record(failure_service)
        second = self.record(failure_service)
        repository.items[second.failure_id].created_at = NOW + timedelta(minutes=1)

        items, total = failure_service.list_failures(limit=1)

        assert total == 2
        assert [f.failure_id for f in items] == [second.failure_id]
        items, _ = failure_service.list_failures(limit=1, offset=1)
        assert [f.failure_id for f in items] == [first.failure_id]

    def test_list_failures_unknown_status(self, failure_service):
        with pytest.raises(ValidationException):
            failure_service.list_failures(status="broken")

    def test_get_stats(self, failure_service, repository):
        self.record(failure_service)
        resolved = self.record(failure_service)
        failure_service.resolve(resolved.failure_id, "done")

        stats = failure_service.get_stats()

        assert stats["pending"] == 1
        assert stats["resolved"] == 1
        assert stats["total"] == 2

    def test_find_due(self, failure_service, repository):
        due = self.record(failure_service)
        later = self.record(failure_service)
        repository.items[later.failure_id].next_retry_at = NOW + timedelta(hours=1)

        found = failure_service.find_due(now=NOW + timedelta(minutes=2))

        assert [f.failure_id for f in found] == [due.failure_id]

    def test_find_due_includes_stale_claims(self, failure_service, repository):
        stale = self.record(failure_service)
        fresh = self.record(failure_service)
        repository.items[stale.failure_id].retry_status = RetryStatus.RETRYING
        repository.items[stale.failure_id].last_retry_at = NOW - timedelta(hours=2)
        repository.items[fresh.failure_id].retry_status = RetryStatus.RETRYING
        repository.items[fresh.failure_id].last_retry_at = NOW + timedelta(minutes=1)

        found = failure_service.find_due(now=NOW + timedelta(minutes=2))

        assert [f.failure_id for f in found] == [stale.failure_id]
