"""
Upload Service for business logic.
Orchestrates CSV uploads, validation and row edits between API and repositories.
"""
import logging
import uuid
from datetime import datetime
from typing import BinaryIO, Dict, List
from src.core import config
from src.core.exceptions import (
    CSVProcessingException,
    InvalidStateException,
    UploadNotFoundException,
    ValidationException
)
from src.models.dto.upload_dto import UploadResponse
from src.models.package_result import PackageResult
from src.models.upload import Upload, UploadState
from src.models.validation_result import FileValidationResult
from src.repositories.db_repository import DBRepository
from src.repositories.package_repository import PackageRepository
from src.repositories.s3_repository import S3Repository, build_s3_key
from src.repositories.upload_repository import UploadRepository
from src.services.file_service import FileService

logger = logging.getLogger(__name__)


class UploadService:
    """Service for upload-related business operations."""

    def __init__(
        self,
        s3_repository: S3Repository = None,
        upload_repository: UploadRepository = None,
        package_repository: DBRepository = None,
        file_service: FileService = None
    ):
        self.s3_repository = s3_repository or S3Repository()
        self.upload_repository = upload_repository or UploadRepository()
        self.package_repository = package_repository or PackageRepository()
        self.file_service = file_service or FileService()

    def upload_csv(self, file: BinaryIO, filename: str) -> UploadResponse:
        """
        Store an uploaded CSV and register it for validation.

        Args:
            file: CSV file containing package rows
            filename: Original filename

        Returns:
            UploadResponse with upload details

        Raises:
            S3Exception: If S3 upload fails
            DynamoDBException: If the upload record cannot be created
        """
        upload_id = str(uuid.uuid4())
        s3_key = build_s3_key(upload_id, filename)

        # Record first: the S3 write triggers validation, which expects the record to exist
        upload = Upload(
            upload_id=upload_id,
            status=UploadState.PENDING,
            filename=filename,
            s3_key=s3_key,
            created_at=datetime.utcnow()
        )
        self.upload_repository.create(upload)

        upload_result = self.s3_repository.upload_file(file, s3_key)
        logger.info("Stored upload %s at %s", upload_id, s3_key, extra={"upload_id": upload_id})

        return UploadResponse(
            upload_id=upload_id,
            status=UploadState.PENDING,
            message="File uploaded successfully. Validation in progress.",
            s3_location=upload_result['s3_location']
        )

    def get_upload(self, upload_id: str) -> Upload:
        """
        Raises:
            UploadNotFoundException: If upload_id is not found
        """
        upload = self.upload_repository.get_by_id(upload_id)
        if upload is None:
            raise UploadNotFoundException(f"Upload '{upload_id}' not found")
        return upload

    def validate_upload(self, upload_id: str) -> FileValidationResult:
        """
        Validate the stored CSV of an upload and record the outcome.

        The upload becomes 'validated' only when every row is valid; otherwise
        'invalid'. An unreadable file also marks the upload invalid.

        Raises:
            UploadNotFoundException: If upload_id is not found
            InvalidStateException: If the upload is already processing or processed
            ValidationException: If the file is not a readable CSV with data rows
            CSVProcessingException: If the CSV cannot be parsed
        """
        upload = self.get_upload(upload_id)
        self._ensure_editable(upload)

        content = self.s3_repository.get_file(upload.s3_key)
        try:
            result = self.file_service.validate_file(content, max_rows=config.settings.max_csv_rows)
        except (ValidationException, CSVProcessingException) as e:
            self.upload_repository.update(upload_id, {
                'status': UploadState.INVALID,
                'error_message': e.message
            })
            raise

        self._save_validation(upload_id, result)
        return result

    def update_rows(self, upload_id: str, edits: Dict[int, Dict[str, str]]) -> FileValidationResult:
        """
        Apply row edits and re-validate the whole file.

        Args:
            upload_id: Upload identifier
            edits: Column values to overwrite, keyed by 1-based row number

        Raises:
            UploadNotFoundException: If upload_id is not found
            InvalidStateException: If the upload is already processing or processed
            ValidationException: If a row number or column is unknown
        """
        upload = self.get_upload(upload_id)
        self._ensure_editable(upload)

        headers, rows = self.file_service.parse_csv(self.s3_repository.get_file(upload.s3_key))
        known_columns = {h.lower(): h for h in headers}

        for row_number, values in edits.items():
            if row_number < 1 or row_number > len(rows):
                raise ValidationException(f"Row {row_number} does not exist")
            row = dict(rows[row_number - 1])
            for column, value in values.items():
                header = known_columns.get(column.strip().lower())
                if header is None:
                    raise ValidationException(f"Unknown column '{column}'")
                row[header] = value
            rows[row_number - 1] = row

        self.s3_repository.put_text(upload.s3_key, self.file_service.rows_to_csv(headers, rows))
        logger.info("Edited %d row(s) of upload %s", len(edits), upload_id, extra={"upload_id": upload_id})

        result = self.file_service.validate_rows(headers, rows)
        self._save_validation(upload_id, result)
        return result

    def list_packages(self, upload_id: str) -> List[PackageResult]:
        """
        Raises:
            UploadNotFoundException: If upload_id is not found
        """
        self.get_upload(upload_id)
        return self.package_repository.find_by_upload(upload_id)

    def _ensure_editable(self, upload: Upload) -> None:
        if upload.status not in UploadState.EDITABLE:
            raise InvalidStateException(
                f"Upload '{upload.upload_id}' is {upload.status}; it can no longer be validated or edited"
            )

    def _save_validation(self, upload_id: str, result: FileValidationResult) -> None:
        status = UploadState.VALIDATED if result.is_valid else UploadState.INVALID
        self.upload_repository.update(upload_id, {
            'status': status,
            'total_rows': result.total_rows,
            'valid_rows': result.valid_rows,
            'invalid_rows': result.invalid_rows,
            'headers': list(result.headers),
            'missing_columns': list(result.missing_columns),
            'validation_results': [r.to_dict() for r in result.results],
            'error_message': None
        })
        logger.info(
            "Upload %s %s: %d valid, %d invalid",
            upload_id, status, result.valid_rows, result.invalid_rows,
            extra={"upload_id": upload_id}
        )
