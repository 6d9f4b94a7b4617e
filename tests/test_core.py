"""
Tests for core helpers: reference data, logging, auth and screening result helpers.
"""
import json
import logging
from datetime import datetime, timedelta
import jwt
import pytest
from fastapi import HTTPException
from src.core import config
from src.core.auth_dependencies import verify_token
from src.core.exceptions import ValidationException
from src.core.logging_config import JsonFormatter
from src.core.reference_data import Platform, ReferenceData
from src.models.dto.screening_dto import ScreeningResult
from src.services.screening_results import build_package_result, flatten_error_message, status_for_code


class TestReferenceData:

    def test_defaults(self):
        reference = ReferenceData()
        assert reference.is_platform_supported("Amazon")
        assert reference.is_carrier_supported("UPS")
        assert not reference.is_carrier_supported(None)

    def test_domain_token(self):
        assert Platform("x", "https://www.amazon.co.jp/").domain_token == "amazon"
        assert Platform("x", "myshopify.com").domain_token == "myshopify"

    def test_from_file(self, tmp_path):
        path = tmp_path / "reference.json"
        path.write_text(json.dumps({
            "platforms": [{"id": "Acme", "url": "acme.com"}],
            "carrier_ids": ["YunExpress"]
        }))

        reference = ReferenceData.from_file(str(path))

        assert reference.get_platform("ACME").url == "acme.com"
        assert not reference.is_platform_supported("amazon")
        assert reference.is_carrier_supported("yunexpress")

    def test_from_file_malformed(self, tmp_path):
        path = tmp_path / "reference.json"
        path.write_text(json.dumps({"platforms": [{"url": "acme.com"}]}))
        with pytest.raises(ValidationException):
            ReferenceData.from_file(str(path))


class TestJsonFormatter:

    def test_includes_extra_context(self):
        record = logging.LogRecord("src.services", logging.INFO, __file__, 1, "Row %d done", (3,), None)
        record.upload_id = "upload-1"

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "Row 3 done"
        assert payload["level"] == "INFO"
        assert payload["upload_id"] == "upload-1"


class TestScreeningResults:

    def test_status_for_code(self):
        assert [status_for_code(c) for c in (1, 2, 3, 4, 7)] == [
            "accepted", "rejected", "inconclusive", "audit_required", "pending"
        ]

    def test_flatten_error_message(self):
        details = {"errors": [{"message": "a"}, {"field": "x"}, {"message": "b"}]}
        assert flatten_error_message("generic", details) == "a; b"
        assert flatten_error_message("generic", {"errors": []}) == "generic"
        assert flatten_error_message(None, None) == "Unknown error"

    def test_build_package_result(self):
        screening = ScreeningResult.model_validate({"packageId": "sp-9", "code": 4, "labelQrCode": "QR"})
        request = {"externalId": "PKG-9", "houseBillNumber": "HB9", "barcode": "BC9"}

        package = build_package_result(screening, request, "upload-1", 9, "sandbox")

        assert package.status == "audit_required"
        assert package.external_id == "PKG-9"
        assert package.screening_id == "sp-9"
        assert package.label_qr_code == "QR"
        assert package.screening_response["packageId"] == "sp-9"


class TestVerifyToken:
    """Test suite for bearer token verification."""

    @pytest.fixture(autouse=True)
    def fixed_secret(self, monkeypatch):
        monkeypatch.setattr(config.Settings, "jwt_secret", property(lambda self: "unit-test-secret-0123456789abcdef"))

    def token(self, secret=None, **claims):
        payload = {"sub": "test_user", "exp": datetime.utcnow() + timedelta(hours=1), "iat": datetime.utcnow()}
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        return jwt.encode(payload, secret or config.settings.jwt_secret, algorithm=config.settings.jwt_algorithm)

    def test_valid_token(self):
        assert verify_token(f"Bearer {self.token()}") == "test_user"

    @pytest.mark.parametrize("header,detail", [
        (None, "Missing authorization header"),
        ("Token abc", "Invalid authorization header format"),
        ("Bearer ", "Invalid authorization header format"),
        ("Bearer malformed.token.here", "Invalid token"),
    ])
    def test_rejected_headers(self, header, detail):
        with pytest.raises(HTTPException) as exc_info:
            verify_token(header)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == detail

    def test_expired(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_token(f"Bearer {self.token(exp=datetime.utcnow() - timedelta(hours=1))}")
        assert "expired" in exc_info.value.detail.lower()

    def test_wrong_secret(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_token(f"Bearer {self.token(secret='wrong-secret-key-with-enough-length')}")
        assert exc_info.value.detail == "Invalid token"

    def test_missing_subject(self):
        with pytest.raises(HTTPException) as exc_info:
            verify_token(f"Bearer {self.token(sub=None)}")
        assert exc_info.value.detail == "Invalid token payload"
