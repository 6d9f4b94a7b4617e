"""
Domain model for a screened package.
Persisted once per successful screening call, from a batch run or a retry.
"""
from datetime import datetime
from typing import Optional


class PackageResult:
    """Domain model representing the screening verdict for one package."""

    def __init__(
        self,
        package_id: str,
        upload_id: Optional[str],
        external_id: str,
        status: str,
        screening_code: int,
        screening_status: str,
        screening_id: Optional[str] = None,
        house_bill_number: Optional[str] = None,
        barcode: Optional[str] = None,
        platform_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        label_qr_code: Optional[str] = None,
        screening_response: Optional[dict] = None,
        row_number: Optional[int] = None,
        environment: Optional[str] = None,
        created_at: Optional[datetime] = None
    ):
        self.package_id = package_id
        self.upload_id = upload_id
        self.external_id = external_id
        self.status = status
        self.screening_code = screening_code
        self.screening_status = screening_status
        self.screening_id = screening_id
        self.house_bill_number = house_bill_number
        self.barcode = barcode
        self.platform_id = platform_id
        self.seller_id = seller_id
        self.label_qr_code = label_qr_code
        self.screening_response = screening_response
        self.row_number = row_number
        self.environment = environment
        self.created_at = created_at or datetime.utcnow()

    def __repr__(self):
        return f"PackageResult(external_id={self.external_id}, status={self.status}, screening_id={self.screening_id})"
