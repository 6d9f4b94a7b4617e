"""
Row schema validator.
Turns a TransformedRow into a RowValidationResult carrying either a PackageRecord
or every field error found in the row.
"""
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional, Tuple
from urllib.parse import urlparse
from src.core import config
from src.core.reference_data import ReferenceData, get_reference_data
from src.models.package_record import Address, LineItem, PackageRecord, ShipmentDetails, Weight
from src.models.validation_result import FieldError, RawRow, RowValidationResult
from src.validation.transform import TransformedRow, transform_row


ISO3_PATTERN = re.compile(r"^[A-Z]{3}$")
PHONE_PATTERN = re.compile(r"^[0-9\-]+$")
POSTAL_CODE_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
HS_CODE_PATTERN = re.compile(r"^[0-9]{6,10}$")
EAN_PATTERN = re.compile(r"^[0-9]{12,13}$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

WEIGHT_UNITS = ("K", "L")
ENTRY_TYPES = ("01", "11", "86", "P")
TRANSPORT_MODES = ("AIR", "TRUCK")

# Second-level labels used by regional storefronts, e.g. amazon.co.jp, amazon.com.au
_REGIONAL_SECOND_LEVEL = {"co", "com", "net", "org", "ac", "gov", "edu", "ne", "or"}

TEXT = "text"
DECIMAL = "decimal"
INTEGER = "integer"
FLAG = "flag"
TEXT_LIST = "text_list"


@dataclass(frozen=True)
class FieldSpec:
    """Constraints for one canonical field."""
    name: str
    kind: str = TEXT
    required: bool = False
    max_length: Optional[int] = None
    pattern: Optional[re.Pattern] = None
    pattern_message: Optional[str] = None
    choices: Optional[Tuple[str, ...]] = None
    positive: bool = False
    url: bool = False
    image: bool = False
    date: bool = False


def _iso3(name: str, label: str, required: bool = True) -> FieldSpec:
    return FieldSpec(name, required=required, pattern=ISO3_PATTERN, pattern_message=f"{label} must be ISO3 format")


def _address_specs(prefix: str) -> List[FieldSpec]:
    return [
        FieldSpec(f"{prefix}_name", required=True, max_length=50),
        FieldSpec(f"{prefix}_line1", required=True, max_length=50),
        FieldSpec(f"{prefix}_line2", max_length=50),
        FieldSpec(f"{prefix}_city", required=True, max_length=50),
        FieldSpec(f"{prefix}_state", required=True, max_length=30),
        FieldSpec(f"{prefix}_postal_code", required=True, max_length=12,
                  pattern=POSTAL_CODE_PATTERN, pattern_message="Postal code must be alphanumeric"),
        _iso3(f"{prefix}_country", "Country"),
        FieldSpec(f"{prefix}_phone", max_length=20,
                  pattern=PHONE_PATTERN, pattern_message="Phone must contain only digits and hyphens"),
        FieldSpec(f"{prefix}_email", max_length=35,
                  pattern=EMAIL_PATTERN, pattern_message="Invalid email address"),
    ]


FIELD_SPECS: Tuple[FieldSpec, ...] = tuple([
    # Identifiers
    FieldSpec("external_id", required=True, max_length=100),
    FieldSpec("house_bill_number", required=True, max_length=12),
    FieldSpec("barcode", required=True, max_length=100),
    FieldSpec("container_id", max_length=50),
    # Platform
    FieldSpec("platform_id", required=True),
    FieldSpec("seller_id", required=True, max_length=50),
    # Shipping
    _iso3("export_country", "Export country"),
    _iso3("destination_country", "Destination country"),
    FieldSpec("carrier_id"),
    FieldSpec("weight_value", kind=DECIMAL, required=True, positive=True),
    FieldSpec("weight_unit", required=True, choices=WEIGHT_UNITS),
    *_address_specs("shipper"),
    *_address_specs("consignee"),
    # Product
    FieldSpec("product_sku", required=True, max_length=50),
    FieldSpec("product_name", required=True, max_length=300),
    FieldSpec("product_declared_name", max_length=300),
    FieldSpec("product_description", required=True),
    FieldSpec("product_url", required=True, url=True),
    FieldSpec("product_categories", kind=TEXT_LIST),
    FieldSpec("product_quantity", kind=INTEGER, required=True, positive=True),
    # Pricing
    FieldSpec("declared_value", kind=DECIMAL, required=True, positive=True),
    FieldSpec("list_price", kind=DECIMAL, required=True, positive=True),
    _iso3("origin_country", "Origin country"),
    # Customs
    FieldSpec("hs_code", pattern=HS_CODE_PATTERN, pattern_message="HS code must be 6-10 digits"),
    FieldSpec("ean", pattern=EAN_PATTERN, pattern_message="EAN/UPC must be 12-13 digits"),
    FieldSpec("pieces", kind=INTEGER, positive=True),
    FieldSpec("normalize", kind=FLAG),
    FieldSpec("manufacturer_id"),
    FieldSpec("manufacturer_name"),
    FieldSpec("manufacturer_address"),
    # Images
    FieldSpec("product_image_url", image=True),
    FieldSpec("product_images"),
    FieldSpec("product_image_1"),
    FieldSpec("product_image_2"),
    FieldSpec("product_image_3"),
    # Shipment details
    FieldSpec("master_bill_prefix"),
    FieldSpec("master_bill_serial_number"),
    FieldSpec("originator_code"),
    FieldSpec("entry_type", choices=ENTRY_TYPES),
    FieldSpec("transport_mode", choices=TRANSPORT_MODES),
    FieldSpec("port_of_entry"),
    FieldSpec("port_of_arrival"),
    FieldSpec("port_of_origin"),
    FieldSpec("carrier_name"),
    FieldSpec("carrier_code"),
    FieldSpec("flight_voyage_number"),
    FieldSpec("firms_code"),
    FieldSpec("shipping_date", date=True),
    FieldSpec("scheduled_arrival_date", date=True),
    FieldSpec("terminal_operator"),
])


def is_valid_url(value: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_image_source(value: str) -> bool:
    """True for an http(s) image URL or an inline data:image URI."""
    if value.startswith("data:image/"):
        return "," in value
    return is_valid_url(value)


def url_host(value: str) -> str:
    return (urlparse(value).hostname or "").lower()


def domain_matches(host: str, token: str, strict: bool = False) -> bool:
    """
    Check a URL host against a platform's base domain token.

    Loose mode accepts any host containing '<token>.'. Strict mode requires the
    token to be a whole label followed only by a TLD or a regional suffix
    (amazon.de, amazon.co.jp, www.amazon.com.au).
    """
    if not strict:
        return f"{token}." in host
    labels = host.split(".")
    for index, label in enumerate(labels):
        if label != token:
            continue
        suffix = labels[index + 1:]
        if len(suffix) == 1:
            return True
        if len(suffix) == 2 and suffix[0] in _REGIONAL_SECOND_LEVEL:
            return True
    return False


class RowSchemaValidator:
    """
    Validates transformed rows against FIELD_SPECS plus the platform/URL rule.

    Never raises for bad data: every violation in a row is collected into the
    result.
    """

    def __init__(
        self,
        reference_data: Optional[ReferenceData] = None,
        strict_domain_match: Optional[bool] = None,
        field_specs: Tuple[FieldSpec, ...] = FIELD_SPECS
    ):
        self.reference_data = reference_data or get_reference_data()
        if strict_domain_match is None:
            strict_domain_match = config.settings.strict_platform_domain_match
        self.strict_domain_match = strict_domain_match
        self.field_specs = field_specs
        self._choice_checks: dict = {
            "platform_id": (self.reference_data.is_platform_supported, "Invalid platform ID"),
            "carrier_id": (self.reference_data.is_carrier_supported, "Invalid carrier ID"),
        }

    def validate_raw(self, row: RawRow, row_number: int) -> RowValidationResult:
        """Transform and validate one raw CSV row."""
        return self.validate(transform_row(row), row_number)

    def validate(self, data: TransformedRow, row_number: int) -> RowValidationResult:
        errors: List[FieldError] = []
        for spec in self.field_specs:
            errors.extend(self._check_field(spec, data.get(spec.name)))

        errors.extend(self._check_platform_domain(data, errors))

        if errors:
            return RowValidationResult(row_number=row_number, is_valid=False, errors=tuple(errors))
        return RowValidationResult(row_number=row_number, is_valid=True, sanitized_data=build_package_record(data))

    def _check_field(self, spec: FieldSpec, value: Any) -> List[FieldError]:
        if value is None or value == "" or value == []:
            if spec.required:
                return [FieldError(spec.name, f"{spec.name} is required", value)]
            return []

        if spec.kind in (DECIMAL, INTEGER):
            return self._check_number(spec, value)
        if spec.kind == FLAG:
            if not isinstance(value, bool):
                return [FieldError(spec.name, f"{spec.name} must be true or false", value)]
            return []
        if spec.kind == TEXT_LIST:
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                return [FieldError(spec.name, f"{spec.name} must be a list of strings", value)]
            return []
        return self._check_text(spec, value)

    def _check_number(self, spec: FieldSpec, value: Any) -> List[FieldError]:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return [FieldError(spec.name, f"{spec.name} must be a number", value)]
        errors = []
        if spec.kind == INTEGER and not float(value).is_integer():
            errors.append(FieldError(spec.name, f"{spec.name} must be an integer", value))
        if spec.positive and value <= 0:
            errors.append(FieldError(spec.name, f"{spec.name} must be positive", value))
        return errors

    def _check_text(self, spec: FieldSpec, value: Any) -> List[FieldError]:
        if not isinstance(value, str):
            return [FieldError(spec.name, f"{spec.name} must be text", value)]

        errors = []
        if spec.max_length is not None and len(value) > spec.max_length:
            errors.append(FieldError(spec.name, f"{spec.name} must be {spec.max_length} characters or fewer", value))
        if spec.pattern is not None and not spec.pattern.match(value):
            errors.append(FieldError(spec.name, spec.pattern_message or f"{spec.name} has an invalid format", value))
        if spec.choices is not None and value not in spec.choices:
            errors.append(FieldError(spec.name, f"{spec.name} must be one of: {', '.join(spec.choices)}", value))
        if spec.name in self._choice_checks:
            check, message = self._choice_checks[spec.name]
            if not check(value):
                errors.append(FieldError(spec.name, message, value))
        if spec.url and not is_valid_url(value):
            errors.append(FieldError(spec.name, f"{spec.name} must be a valid http(s) URL", value))
        if spec.image and not is_valid_image_source(value):
            errors.append(FieldError(spec.name, f"{spec.name} must be an http(s) URL or a data:image URI", value))
        if spec.date:
            errors.extend(self._check_date(spec, value))
        return errors

    def _check_date(self, spec: FieldSpec, value: str) -> List[FieldError]:
        if not DATE_PATTERN.match(value):
            return [FieldError(spec.name, "Date must be YYYY-MM-DD format", value)]
        try:
            date.fromisoformat(value)
        except ValueError:
            return [FieldError(spec.name, "Date is not a valid calendar date", value)]
        return []

    def _check_platform_domain(self, data: TransformedRow, errors: List[FieldError]) -> List[FieldError]:
        platform_id = data.get("platform_id")
        product_url = data.get("product_url")
        if not platform_id or not product_url:
            return []
        # Field-level errors on either side already explain the row.
        if any(e.field in ("platform_id", "product_url") for e in errors):
            return []

        platform = self.reference_data.get_platform(platform_id)
        if platform is None:
            return []

        token = platform.domain_token
        if domain_matches(url_host(product_url), token, strict=self.strict_domain_match):
            return []
        return [FieldError(
            "product_url",
            f"Product URL domain must match platform '{platform.id}' (expected '{token}.' in host)",
            product_url
        )]


def _address(data: TransformedRow, prefix: str) -> Address:
    return Address(
        name=data[f"{prefix}_name"],
        line1=data[f"{prefix}_line1"],
        city=data[f"{prefix}_city"],
        state=data[f"{prefix}_state"],
        postal_code=data[f"{prefix}_postal_code"],
        country=data[f"{prefix}_country"],
        line2=data.get(f"{prefix}_line2"),
        phone=data.get(f"{prefix}_phone"),
        email=data.get(f"{prefix}_email"),
    )


def _image_sources(data: TransformedRow) -> Tuple[str, ...]:
    fields = ("product_images", "product_image_url", "product_image_1", "product_image_2", "product_image_3")
    return tuple(data[f] for f in fields if data.get(f))


def build_package_record(data: TransformedRow) -> PackageRecord:
    """Assemble a PackageRecord from a TransformedRow that passed validation."""
    item = LineItem(
        sku=data["product_sku"],
        name=data["product_name"],
        description=data["product_description"],
        url=data["product_url"],
        quantity=int(data["product_quantity"]),
        declared_value=float(data["declared_value"]),
        list_price=float(data["list_price"]),
        origin_country=data["origin_country"],
        declared_name=data.get("product_declared_name"),
        categories=tuple(data.get("product_categories") or ()),
        hs_code=data.get("hs_code"),
        ean=data.get("ean"),
        pieces=int(data.get("pieces") or 1),
        normalize=bool(data.get("normalize") or False),
        manufacturer_id=data.get("manufacturer_id"),
        manufacturer_name=data.get("manufacturer_name"),
        manufacturer_address=data.get("manufacturer_address"),
        image_sources=_image_sources(data),
    )
    shipment = ShipmentDetails(**{
        name: data.get(name) for name in ShipmentDetails.__dataclass_fields__
    })
    return PackageRecord(
        external_id=data["external_id"],
        house_bill_number=data["house_bill_number"],
        barcode=data["barcode"],
        platform_id=data["platform_id"],
        seller_id=data["seller_id"],
        export_country=data["export_country"],
        destination_country=data["destination_country"],
        weight=Weight(value=float(data["weight_value"]), unit=data["weight_unit"]),
        shipper=_address(data, "shipper"),
        consignee=_address(data, "consignee"),
        products=(item,),
        container_id=data.get("container_id"),
        carrier_id=data.get("carrier_id"),
        shipment=shipment,
    )
