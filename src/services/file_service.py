"""
File Service for CSV processing.
Handles CSV parsing, required-column checks and whole-file validation.
"""
import csv
import io
import logging
from typing import List, BinaryIO, Optional, Sequence, Tuple, Union
from src.models.validation_result import FileValidationResult, RawRow
from src.validation.columns import REQUIRED_COLUMNS
from src.validation.row_schema import RowSchemaValidator
from src.core.exceptions import CSVProcessingException, ValidationException

logger = logging.getLogger(__name__)


class FileService:
    """Service for file processing operations."""

    REQUIRED_COLUMNS = REQUIRED_COLUMNS

    def __init__(self, row_validator: RowSchemaValidator = None):
        self._row_validator = row_validator

    @property
    def row_validator(self) -> RowSchemaValidator:
        if self._row_validator is None:
            self._row_validator = RowSchemaValidator()
        return self._row_validator

    def parse_csv(self, file: Union[BinaryIO, bytes], max_rows: Optional[int] = None) -> Tuple[List[str], List[RawRow]]:
        """
        Parse CSV content into headers and raw rows.

        Args:
            file: CSV file or its bytes
            max_rows: Reject files with more data rows than this

        Returns:
            Tuple of (headers, rows); header names are trimmed, blank lines skipped

        Raises:
            ValidationException: If the file is not UTF-8, has no data rows, or has too many
            CSVProcessingException: If the CSV cannot be parsed
        """
        try:
            raw = file if isinstance(file, bytes) else file.read()
            content = raw.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise ValidationException("File must be a valid UTF-8 encoded CSV") from e

        try:
            csv_reader = csv.DictReader(io.StringIO(content))
            if not csv_reader.fieldnames:
                raise ValidationException("CSV file is empty or has no header row")
            headers = [h.strip() for h in csv_reader.fieldnames]

            rows = []
            for row in csv_reader:
                cleaned = {
                    (k.strip() if k is not None else k): v
                    for k, v in row.items()
                }
                if not any(isinstance(v, str) and v.strip() for v in cleaned.values()):
                    continue
                rows.append(cleaned)
                if max_rows is not None and len(rows) > max_rows:
                    raise ValidationException(f"CSV file exceeds the maximum of {max_rows} rows")

            if not rows:
                raise ValidationException("CSV file is empty or contains no data rows")

            return headers, rows

        except ValidationException:
            raise
        except csv.Error as e:
            raise CSVProcessingException(f"Failed to parse CSV file: {str(e)}") from e

    def find_missing_columns(self, headers: Sequence[str]) -> List[str]:
        """Required columns absent from the header row, compared case-insensitively."""
        normalized = {h.strip().lower() for h in headers if h}
        return [col for col in self.REQUIRED_COLUMNS if col.lower() not in normalized]

    def validate_rows(self, headers: Sequence[str], rows: Sequence[RawRow]) -> FileValidationResult:
        """
        Validate every row of a parsed file.

        A missing required column is fatal for the whole file: per-row
        validation is skipped and every row counts as invalid. Otherwise rows
        are validated in file order and numbered from 1. Counts are always
        recomputed from the full row set.
        """
        rows = tuple(rows)
        headers = tuple(headers)
        missing_columns = self.find_missing_columns(headers)

        if missing_columns:
            logger.info("File rejected, missing columns: %s", ", ".join(missing_columns))
            return FileValidationResult(
                is_valid=False,
                total_rows=len(rows),
                valid_rows=0,
                invalid_rows=len(rows),
                results=(),
                missing_columns=tuple(missing_columns),
                headers=headers,
                rows=rows
            )

        results = tuple(
            self.row_validator.validate_raw(row, row_number)
            for row_number, row in enumerate(rows, start=1)
        )
        valid_rows = sum(1 for r in results if r.is_valid)
        invalid_rows = len(results) - valid_rows

        return FileValidationResult(
            is_valid=invalid_rows == 0,
            total_rows=len(rows),
            valid_rows=valid_rows,
            invalid_rows=invalid_rows,
            results=results,
            missing_columns=(),
            headers=headers,
            rows=rows
        )

    def validate_file(self, file: Union[BinaryIO, bytes], max_rows: Optional[int] = None) -> FileValidationResult:
        """Parse and validate a CSV file in one step."""
        headers, rows = self.parse_csv(file, max_rows=max_rows)
        return self.validate_rows(headers, rows)

    def rows_to_csv(self, headers: Sequence[str], rows: Sequence[RawRow]) -> str:
        """Serialize rows back to CSV text with the given header order."""
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=list(headers), extrasaction='ignore', lineterminator='\n')
        writer.writeheader()
        for row in rows:
            writer.writerow({h: row.get(h, "") or "" for h in headers})
        return output.getvalue()
