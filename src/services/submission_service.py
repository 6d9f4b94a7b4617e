"""
Submission Service: screens the valid rows of an upload and records each outcome.

No single row aborts a batch: build errors, API errors and exceptions raised
by the client all become a failed SubmissionResult plus a FailureRecord.
"""
import logging
import threading
from datetime import datetime
from typing import Iterable, Optional
from src.clients.screening_client import SCREEN_PACKAGE_ENDPOINT, ScreeningClientFactory
from src.core import config
from src.core.exceptions import InvalidStateException, UploadNotFoundException
from src.models.dto.screening_dto import ApiResponse
from src.models.submission import FAILED, BatchSummary, SubmissionResult
from src.models.upload import UploadState
from src.models.validation_result import RowValidationResult
from src.repositories.db_repository import DBRepository
from src.repositories.package_repository import PackageRepository
from src.repositories.s3_repository import S3Repository
from src.repositories.upload_repository import UploadRepository
from src.services.failure_service import FailureService
from src.services.file_service import FileService
from src.services.request_builder import RequestBuilder
from src.services.screening_results import build_package_result, flatten_error_message, parse_screening_result

logger = logging.getLogger(__name__)


class SubmissionService:
    """Service orchestrating screening submission for uploads."""

    def __init__(
        self,
        request_builder: RequestBuilder = None,
        client_factory: ScreeningClientFactory = None,
        package_repository: DBRepository = None,
        failure_service: FailureService = None,
        upload_repository: UploadRepository = None,
        s3_repository: S3Repository = None,
        file_service: FileService = None
    ):
        self.request_builder = request_builder or RequestBuilder()
        self.client_factory = client_factory or ScreeningClientFactory()
        self.package_repository = package_repository or PackageRepository()
        self.failure_service = failure_service or FailureService(
            package_repository=self.package_repository,
            client_factory=self.client_factory
        )
        self.upload_repository = upload_repository or UploadRepository()
        self.s3_repository = s3_repository or S3Repository()
        self.file_service = file_service or FileService()

    def submit_rows(
        self,
        upload_id: Optional[str],
        results: Iterable[RowValidationResult],
        environment: str,
        cancel_event: Optional[threading.Event] = None
    ) -> BatchSummary:
        """
        Submit valid rows in file order and aggregate their outcomes.

        Invalid rows are ignored. Cancellation is checked between rows: the row
        in flight finishes, the rest are left unprocessed.

        Returns:
            BatchSummary with exactly one SubmissionResult per processed row
        """
        rows = [r for r in results if r.is_valid and r.sanitized_data is not None]
        summary = BatchSummary(total=len(rows))
        client = self.client_factory.get_client(environment)

        for row in rows:
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                logger.info("Submission of upload %s cancelled after %d of %d rows",
                            upload_id, summary.processed, summary.total, extra={"upload_id": upload_id})
                break

            result = self._submit_row(client, upload_id, row, environment)
            summary.record(result)
            logger.info(
                "Row %d (%s): %s",
                row.row_number, result.external_id, result.status,
                extra={"upload_id": upload_id, "row_number": row.row_number}
            )

        return summary

    def _submit_row(self, client, upload_id: Optional[str], row: RowValidationResult, environment: str) -> SubmissionResult:
        record = row.sanitized_data
        request_body = None
        try:
            request_body = self.request_builder.build_package_request(record)
            response = client.screen_package(request_body)
        except Exception as e:
            logger.exception("Submitting row %d of upload %s raised", row.row_number, upload_id)
            response = ApiResponse.fail("EXCEPTION", str(e) or e.__class__.__name__)

        screening = parse_screening_result(response.data) if response.success else None
        if response.success and screening is None:
            response = ApiResponse.fail("INVALID_RESPONSE", "Malformed screening response", response.data)

        if screening is None:
            failure = self.failure_service.record_response_failure(
                SCREEN_PACKAGE_ENDPOINT,
                "POST",
                environment,
                request_body,
                response,
                upload_id=upload_id,
                external_id=record.external_id,
                row_number=row.row_number
            )
            return SubmissionResult(
                external_id=record.external_id,
                status=FAILED,
                row_number=row.row_number,
                error=failure.error_message or flatten_error_message(response.error.message, response.error.details),
                failure_id=failure.failure_id
            )

        package = build_package_result(
            screening,
            request_body,
            upload_id=upload_id,
            row_number=row.row_number,
            environment=environment,
            external_id=record.external_id,
            raw_response=response.data
        )
        self.package_repository.save(package)
        return SubmissionResult(
            external_id=record.external_id,
            status=package.status,
            row_number=row.row_number,
            screening_code=package.screening_code,
            screening_id=package.screening_id
        )

    def process_upload(
        self,
        upload_id: str,
        environment: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> BatchSummary:
        """
        Screen every valid row of a validated upload.

        The file is re-read and re-validated from S3 so the submitted rows match
        the stored content. The upload ends as completed, completed_with_errors
        or cancelled, with the BatchSummary persisted on it.

        Raises:
            UploadNotFoundException: If the upload does not exist
            InvalidStateException: If the upload is not in the validated state
        """
        environment = environment or config.settings.screening_default_environment
        upload = self.upload_repository.get_by_id(upload_id)
        if upload is None:
            raise UploadNotFoundException(f"Upload '{upload_id}' not found")

        if not self.upload_repository.transition_status(
            upload_id, [UploadState.VALIDATED], UploadState.PROCESSING, {'environment': environment}
        ):
            raise InvalidStateException(
                f"Upload '{upload_id}' is {upload.status}; only validated uploads can be processed"
            )

        logger.info("Processing upload %s in %s", upload_id, environment, extra={"upload_id": upload_id})
        try:
            content = self.s3_repository.get_file(upload.s3_key)
            validation = self.file_service.validate_file(content)
            summary = self.submit_rows(upload_id, validation.results, environment, cancel_event)
        except Exception as e:
            self.upload_repository.update(upload_id, {
                'status': UploadState.FAILED,
                'error_message': str(e)
            })
            raise

        if summary.cancelled:
            status = UploadState.CANCELLED
        elif summary.failed == 0:
            status = UploadState.COMPLETED
        else:
            status = UploadState.COMPLETED_WITH_ERRORS

        self.upload_repository.update(upload_id, {
            'status': status,
            'processing_results': summary.to_dict(),
            'processing_completed_at': datetime.utcnow()
        })
        logger.info(
            "Upload %s %s: %d processed, %d failed",
            upload_id, status, summary.processed, summary.failed,
            extra={"upload_id": upload_id}
        )
        return summary
