"""
Shared test fixtures and utilities.
"""
import csv
import io
import pytest
import jwt
from datetime import datetime, timedelta
from src.validation.columns import REQUIRED_COLUMNS


VALID_ROW = {
    "external_id": "PKG-001",
    "house_bill_number": "HB123456",
    "barcode": "BC-0001",
    "platform_id": "amazon",
    "seller_id": "SELLER-1",
    "export_country": "CHN",
    "destination_country": "USA",
    "gross_weight_value": "1.5",
    "gross_weight_unit": "K",
    "shipper_name": "Shenzhen Widgets Ltd",
    "shipper_address_1": "12 Industrial Road",
    "shipper_city": "Shenzhen",
    "shipper_state": "Guangdong",
    "shipper_postal_code": "518000",
    "shipper_country": "CHN",
    "consignee_name": "Jane Doe",
    "consignee_address_1": "100 Main Street",
    "consignee_city": "Springfield",
    "consignee_state": "IL",
    "consignee_postal_code": "62701",
    "consignee_country": "USA",
    "product_sku": "SKU-42",
    "product_name": "Wireless Mouse",
    "product_description": "Bluetooth optical mouse",
    "product_url": "https://www.amazon.com/dp/B000123",
    "product_quantity": "2",
    "declared_value": "19.99",
    "list_price": "24.99",
    "origin_country": "CHN",
    "product_image_url": "https://images.example.com/mouse.jpg",
}


@pytest.fixture
def auth_headers():
    """Generate valid JWT token and return authorization headers."""
    # Use same secret as the config fallback
    jwt_secret = "dev-secret-change-in-production"
    jwt_algorithm = "HS256"

    expiration = datetime.utcnow() + timedelta(hours=1)
    payload = {
        "sub": "test_user",
        "exp": expiration,
        "iat": datetime.utcnow()
    }

    token = jwt.encode(payload, jwt_secret, algorithm=jwt_algorithm)

    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def valid_row():
    """A raw CSV row that passes every validation rule."""
    return dict(VALID_ROW)


def make_csv(rows, headers=None) -> bytes:
    """Render rows as CSV bytes with the required columns as header by default."""
    headers = list(headers or REQUIRED_COLUMNS)
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=headers, extrasaction='ignore', lineterminator='\n')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue().encode('utf-8')


@pytest.fixture
def csv_factory():
    return make_csv
