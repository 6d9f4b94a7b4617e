"""
Helpers shared by batch submission and retry for interpreting screening responses.
"""
import uuid
from typing import Any, List, Optional
from pydantic import ValidationError
from src.models.dto.screening_dto import ScreeningResult
from src.models.package_result import PackageResult
from src.models.submission import SCREENING_CODE_TO_STATUS

UNKNOWN_CODE_STATUS = "pending"


def status_for_code(code: int) -> str:
    return SCREENING_CODE_TO_STATUS.get(code, UNKNOWN_CODE_STATUS)


def parse_screening_result(data: Any) -> Optional[ScreeningResult]:
    """Parse the data part of a successful envelope; None if it is malformed."""
    if not isinstance(data, dict):
        return None
    try:
        return ScreeningResult.model_validate(data)
    except ValidationError:
        return None


def flatten_error_message(message: Optional[str], details: Any) -> str:
    """
    Join per-field API errors into one message.

    The screening API reports multiple problems as details.errors[].message;
    those replace the generic top-level message when present.
    """
    if isinstance(details, dict) and isinstance(details.get("errors"), list):
        parts: List[str] = [
            str(e.get("message")) for e in details["errors"]
            if isinstance(e, dict) and e.get("message")
        ]
        if parts:
            return "; ".join(parts)
    return message or "Unknown error"


def build_package_result(
    screening: ScreeningResult,
    request_body: dict,
    upload_id: Optional[str],
    row_number: Optional[int],
    environment: Optional[str],
    external_id: Optional[str] = None,
    raw_response: Optional[dict] = None
) -> PackageResult:
    """PackageResult for an accepted screening call, keeping the raw response for debugging."""
    return PackageResult(
        package_id=str(uuid.uuid4()),
        upload_id=upload_id,
        external_id=external_id or request_body.get("externalId") or screening.external_id or "",
        status=status_for_code(screening.code),
        screening_code=screening.code,
        screening_status=screening.status,
        screening_id=screening.package_id,
        house_bill_number=request_body.get("houseBillNumber"),
        barcode=request_body.get("barcode"),
        platform_id=request_body.get("platformId"),
        seller_id=request_body.get("sellerId"),
        label_qr_code=screening.label_qr_code,
        screening_response=raw_response if raw_response is not None else screening.model_dump(by_alias=True),
        row_number=row_number,
        environment=environment
    )
