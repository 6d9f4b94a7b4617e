"""
CSV column names accepted in package upload files, and their canonical field names.
"""

REQUIRED_COLUMNS = (
    # Identifiers
    "external_id",
    "house_bill_number",
    "barcode",
    # Platform
    "platform_id",
    "seller_id",
    # Shipping
    "export_country",
    "destination_country",
    "gross_weight_value",
    "gross_weight_unit",
    # Shipper
    "shipper_name",
    "shipper_address_1",
    "shipper_city",
    "shipper_state",
    "shipper_postal_code",
    "shipper_country",
    # Consignee
    "consignee_name",
    "consignee_address_1",
    "consignee_city",
    "consignee_state",
    "consignee_postal_code",
    "consignee_country",
    # Product
    "product_sku",
    "product_name",
    "product_description",
    "product_url",
    "product_quantity",
    # Pricing
    "declared_value",
    "list_price",
    "origin_country",
    # Images
    "product_image_url",
)

OPTIONAL_COLUMNS = (
    "container_id",
    "carrier_id",
    "shipper_address_2",
    "shipper_phone",
    "shipper_email",
    "consignee_address_2",
    "consignee_phone",
    "consignee_email",
    "product_declared_name",
    "product_images",
    "product_image_1",
    "product_image_2",
    "product_image_3",
    "product_categories",
    "hs_code",
    "ean_upc",
    "number_of_pieces",
    "normalize_flag",
    "manufacturer_id",
    "manufacturer_name",
    "manufacturer_address",
    "master_bill_prefix",
    "master_bill_serial_number",
    "originator_code",
    "entry_type",
    "transport_mode",
    "port_of_entry",
    "port_of_arrival",
    "port_of_origin",
    "carrier_name",
    "carrier_code",
    "flight_voyage_number",
    "firms_code",
    "shipping_date",
    "scheduled_arrival_date",
    "terminal_operator",
)

ALL_COLUMNS = REQUIRED_COLUMNS + OPTIONAL_COLUMNS

# CSV column -> canonical field name. Columns not listed map to themselves.
COLUMN_TO_FIELD = {
    "gross_weight_value": "weight_value",
    "gross_weight_unit": "weight_unit",
    "shipper_address_1": "shipper_line1",
    "shipper_address_2": "shipper_line2",
    "consignee_address_1": "consignee_line1",
    "consignee_address_2": "consignee_line2",
    "ean_upc": "ean",
    "number_of_pieces": "pieces",
    "normalize_flag": "normalize",
}


def field_for_column(column: str):
    """Canonical field name for a CSV column, or None for unknown columns."""
    key = column.strip().lower()
    if key not in ALL_COLUMNS:
        return None
    return COLUMN_TO_FIELD.get(key, key)
