"""
Builds screening API requests from validated package records.
"""
from typing import Optional
from src.models.package_record import Address, LineItem, PackageRecord
from src.services.image_service import ImageService


def _compact(values: dict) -> dict:
    """Drop None values and empty strings; the API rejects empty optional fields."""
    return {k: v for k, v in values.items() if v is not None and v != ""}


def _address(address: Address) -> dict:
    return _compact({
        "name": address.name,
        "line1": address.line1,
        "line2": address.line2,
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "phone": address.phone,
        "email": address.email,
    })


def _attributes(item: LineItem) -> Optional[dict]:
    attributes = _compact({
        "manufacturerId": item.manufacturer_id,
        "manufacturerName": item.manufacturer_name,
        "manufacturerAddress": item.manufacturer_address,
    })
    return attributes or None


class RequestBuilder:
    """Turns a PackageRecord into the package screening request body."""

    def __init__(self, image_service: ImageService = None):
        self.image_service = image_service or ImageService()

    def build_package_request(self, record: PackageRecord) -> dict:
        request = _compact({
            "externalId": record.external_id,
            "platformId": record.platform_id,
            "sellerId": record.seller_id,
            "exportCountry": record.export_country,
            "destinationCountry": record.destination_country,
            "houseBillNumber": record.house_bill_number,
            "barcode": record.barcode,
            "containerId": record.container_id,
            "carrierId": record.carrier_id,
        })
        request["weight"] = {"value": record.weight.value, "unit": record.weight.unit}
        request["from"] = _address(record.shipper)
        request["to"] = _address(record.consignee)
        request["products"] = [self._line_item(item) for item in record.products]
        return request

    def _line_item(self, item: LineItem) -> dict:
        product = _compact({
            "sku": item.sku,
            "url": item.url,
            "name": item.name,
            "description": item.description,
            "price": item.list_price,
            "originCountry": item.origin_country,
            "pieces": item.pieces,
            "ean": item.ean,
            "hts": item.hs_code,
            "normalize": item.normalize,
            "attributes": _attributes(item),
        })
        product["images"] = self.image_service.process_images(item.image_sources)
        if item.categories:
            product["categories"] = list(item.categories)

        return _compact({
            "quantity": item.quantity,
            "declaredValue": item.declared_value,
            "declaredName": item.declared_name,
            "product": product,
        })
