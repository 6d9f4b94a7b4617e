"""
Unit tests for RequestBuilder.
"""
from unittest.mock import Mock
import pytest
from src.core.reference_data import ReferenceData
from src.services.request_builder import RequestBuilder
from src.validation.row_schema import RowSchemaValidator


class TestRequestBuilder:
    """Test suite for RequestBuilder."""

    @pytest.fixture
    def image_service(self):
        service = Mock()
        service.process_images.return_value = ["aW1hZ2U="]
        return service

    @pytest.fixture
    def builder(self, image_service):
        return RequestBuilder(image_service=image_service)

    def record_for(self, row):
        result = RowSchemaValidator(reference_data=ReferenceData(), strict_domain_match=False).validate_raw(row, 1)
        assert result.is_valid, result.errors
        return result.sanitized_data

    def test_build_package_request(self, builder, image_service, valid_row):
        request = builder.build_package_request(self.record_for(valid_row))

        assert request["externalId"] == "PKG-001"
        assert request["houseBillNumber"] == "HB123456"
        assert request["platformId"] == "amazon"
        assert request["weight"] == {"value": 1.5, "unit": "K"}
        assert request["from"]["line1"] == "12 Industrial Road"
        assert request["to"]["postalCode"] == "62701"
        assert "phone" not in request["to"]
        assert "containerId" not in request

        line = request["products"][0]
        assert line["quantity"] == 2
        assert line["declaredValue"] == 19.99
        assert line["product"]["price"] == 24.99
        assert line["product"]["url"] == "https://www.amazon.com/dp/B000123"
        assert line["product"]["pieces"] == 1
        assert line["product"]["normalize"] is False
        assert line["product"]["images"] == ["aW1hZ2U="]
        image_service.process_images.assert_called_once_with(("https://images.example.com/mouse.jpg",))

    def test_optional_product_fields(self, builder, valid_row):
        valid_row.update({
            "hs_code": "8471.60",
            "ean_upc": "012345678905",
            "product_categories": "Electronics|Accessories",
            "manufacturer_name": "Widget Co",
            "product_image_1": "https://images.example.com/1.jpg",
        })
        product = builder.build_package_request(self.record_for(valid_row))["products"][0]["product"]

        assert product["hts"] == "847160"
        assert product["ean"] == "012345678905"
        assert product["categories"] == ["Electronics", "Accessories"]
        assert product["attributes"] == {"manufacturerName": "Widget Co"}

    def test_no_images_leaves_empty_list(self, builder, image_service, valid_row):
        image_service.process_images.return_value = []
        product = builder.build_package_request(self.record_for(valid_row))["products"][0]["product"]
        assert product["images"] == []
