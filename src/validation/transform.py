"""
Row transformer.
Maps raw CSV columns to canonical field names and applies per-field sanitization.
"""
from typing import Any, Dict, Optional
from src.models.validation_result import RawRow
from src.validation.columns import field_for_column
from src.validation.sanitizers import (
    sanitize_phone,
    sanitize_postal_code,
    sanitize_hs_code,
    sanitize_country_code
)

TransformedRow = Dict[str, Any]

DECIMAL_FIELDS = {"weight_value", "declared_value", "list_price"}
INTEGER_FIELDS = {"product_quantity", "pieces"}
COUNTRY_FIELDS = {"export_country", "destination_country", "origin_country", "shipper_country", "consignee_country"}
PHONE_FIELDS = {"shipper_phone", "consignee_phone"}
POSTAL_CODE_FIELDS = {"shipper_postal_code", "consignee_postal_code"}
UPPERCASE_FIELDS = {"weight_unit", "transport_mode", "entry_type"}
LOWERCASE_FIELDS = {"platform_id", "carrier_id"}


def _parse_decimal(value: str) -> Any:
    """Parse a number; unparseable text is kept so the schema can report it."""
    try:
        return float(value)
    except ValueError:
        return value


def _parse_integer(value: str) -> Any:
    number = _parse_decimal(value)
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _split_categories(value: str) -> Optional[list]:
    categories = [c.strip() for c in value.split("|")]
    return [c for c in categories if c] or None


def transform_value(field: str, raw: Optional[str]) -> Any:
    """Convert one raw cell into its typed, sanitized value."""
    value = raw.strip() if raw else ""
    if not value:
        return None

    if field in DECIMAL_FIELDS:
        return _parse_decimal(value)
    if field in INTEGER_FIELDS:
        return _parse_integer(value)
    if field == "normalize":
        return value.lower() == "true"
    if field in COUNTRY_FIELDS:
        return sanitize_country_code(value)
    if field in PHONE_FIELDS:
        return sanitize_phone(value)
    if field in POSTAL_CODE_FIELDS:
        return sanitize_postal_code(value)
    if field == "hs_code":
        return sanitize_hs_code(value)
    if field == "product_categories":
        return _split_categories(value)
    if field in UPPERCASE_FIELDS:
        return value.upper()
    if field in LOWERCASE_FIELDS:
        return value.lower()
    return value


def transform_row(row: RawRow) -> TransformedRow:
    """
    Build a TransformedRow from a RawRow.

    Header matching is case-insensitive; unknown columns are ignored.
    Empty cells become None.
    """
    transformed: TransformedRow = {}
    for column, raw in row.items():
        if column is None:
            continue
        field = field_for_column(column)
        if field is None:
            continue
        transformed[field] = transform_value(field, raw)
    return transformed
