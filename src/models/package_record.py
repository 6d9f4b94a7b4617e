"""
Domain model for a validated package.
Built only by the row schema validator; immutable once constructed.
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Weight:
    """Gross weight; unit K = kilograms, L = pounds."""
    value: float
    unit: str


@dataclass(frozen=True)
class Address:
    """Shipper or consignee address."""
    name: str
    line1: str
    city: str
    state: str
    postal_code: str
    country: str
    line2: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class LineItem:
    """One product in a package, with its quantity and declared value."""
    sku: str
    name: str
    description: str
    url: str
    quantity: int
    declared_value: float
    list_price: float
    origin_country: str
    declared_name: Optional[str] = None
    categories: Tuple[str, ...] = ()
    hs_code: Optional[str] = None
    ean: Optional[str] = None
    pieces: int = 1
    normalize: bool = False
    manufacturer_id: Optional[str] = None
    manufacturer_name: Optional[str] = None
    manufacturer_address: Optional[str] = None
    image_sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ShipmentDetails:
    """Optional consolidation/transport details carried on a package row."""
    master_bill_prefix: Optional[str] = None
    master_bill_serial_number: Optional[str] = None
    originator_code: Optional[str] = None
    entry_type: Optional[str] = None
    transport_mode: Optional[str] = None
    port_of_entry: Optional[str] = None
    port_of_arrival: Optional[str] = None
    port_of_origin: Optional[str] = None
    carrier_name: Optional[str] = None
    carrier_code: Optional[str] = None
    flight_voyage_number: Optional[str] = None
    firms_code: Optional[str] = None
    shipping_date: Optional[str] = None
    scheduled_arrival_date: Optional[str] = None
    terminal_operator: Optional[str] = None


@dataclass(frozen=True)
class PackageRecord:
    """Canonical, validated package ready to be screened."""
    external_id: str
    house_bill_number: str
    barcode: str
    platform_id: str
    seller_id: str
    export_country: str
    destination_country: str
    weight: Weight
    shipper: Address
    consignee: Address
    products: Tuple[LineItem, ...]
    container_id: Optional[str] = None
    carrier_id: Optional[str] = None
    shipment: ShipmentDetails = field(default_factory=ShipmentDetails)
