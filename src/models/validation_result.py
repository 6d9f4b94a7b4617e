"""
Validation result models for rows and whole files.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from src.models.package_record import PackageRecord

RawRow = Dict[str, str]


@dataclass(frozen=True)
class FieldError:
    """One constraint violation on one field of a row."""
    field: str
    message: str
    value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "value": self.value}


@dataclass(frozen=True)
class RowValidationResult:
    """Outcome of validating one row; sanitized_data is set only when valid."""
    row_number: int
    is_valid: bool
    errors: Tuple[FieldError, ...] = ()
    sanitized_data: Optional[PackageRecord] = None

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass(frozen=True)
class FileValidationResult:
    """
    Aggregate validation outcome for one file.

    Built in one piece by FileService.validate_rows; a re-validation produces a
    new instance, so counts always agree with results.
    """
    is_valid: bool
    total_rows: int
    valid_rows: int
    invalid_rows: int
    results: Tuple[RowValidationResult, ...] = ()
    missing_columns: Tuple[str, ...] = ()
    headers: Tuple[str, ...] = ()
    rows: Optional[Tuple[RawRow, ...]] = field(default=None, compare=False)

    def valid_results(self) -> List[RowValidationResult]:
        return [r for r in self.results if r.is_valid]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "total_rows": self.total_rows,
            "valid_rows": self.valid_rows,
            "invalid_rows": self.invalid_rows,
            "missing_columns": list(self.missing_columns),
            "results": [r.to_dict() for r in self.results],
        }
