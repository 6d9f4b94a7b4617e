"""
Reference data for row validation: supported platforms and carrier IDs.
Loaded from a JSON file when REFERENCE_DATA_PATH is set, otherwise the
built-in tables are used. Validators receive a ReferenceData instance rather
than reading module globals, so deployments and tests can swap the tables.
"""
import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, FrozenSet, Optional, Tuple
from src.core import config
from src.core.exceptions import ValidationException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Platform:
    """An e-commerce platform accepted by the screening API."""
    id: str
    url: str
    category: str = "Other"

    @property
    def domain_token(self) -> str:
        """Base domain label, e.g. 'amazon' for 'amazon.com'."""
        host = self.url.lower()
        if "://" in host:
            host = host.split("://", 1)[1]
        host = host.split("/", 1)[0]
        if host.startswith("www."):
            host = host[4:]
        return host.split(".", 1)[0]


DEFAULT_PLATFORMS: Tuple[Platform, ...] = (
    Platform("amazon", "amazon.com", "Major Marketplace"),
    Platform("ebay", "ebay.com", "Major Marketplace"),
    Platform("etsy", "etsy.com", "Major Marketplace"),
    Platform("aliexpress", "aliexpress.com", "Major Marketplace"),
    Platform("temu", "temu.com", "Major Marketplace"),
    Platform("shopify", "shopify.com", "E-commerce Platform"),
    Platform("myshopify", "myshopify.com", "E-commerce Platform"),
    Platform("aloyoga", "aloyoga.com", "Apparel & Fashion"),
    Platform("bombas", "bombas.com", "Apparel & Fashion"),
    Platform("mackweldon", "mackweldon.com", "Apparel & Fashion"),
    Platform("meundies", "meundies.com", "Apparel & Fashion"),
    Platform("mizzenandmain", "mizzenandmain.com", "Apparel & Fashion"),
    Platform("tenthousand", "tenthousand.com", "Apparel & Fashion"),
    Platform("birdygrey", "birdygrey.com", "Apparel & Fashion"),
    Platform("fairharborclothing", "fairharborclothing.com", "Apparel & Fashion"),
    Platform("coolibar", "coolibar.com", "Outdoor & Lifestyle"),
    Platform("coldwatercreek", "coldwatercreek.com", "Outdoor & Lifestyle"),
    Platform("popsockets", "popsockets.com", "Accessories"),
    Platform("whoop", "whoop.com", "Electronics"),
    Platform("myib", "myib.com", "Other"),
    Platform("ocgsc", "ocgsc.com", "Other"),
)

DEFAULT_CARRIER_IDS: FrozenSet[str] = frozenset({"usps", "ups", "fedex", "dhl"})


@dataclass(frozen=True)
class ReferenceData:
    """Allow-lists consulted by the row schema validator."""
    platforms: Tuple[Platform, ...] = DEFAULT_PLATFORMS
    carrier_ids: FrozenSet[str] = DEFAULT_CARRIER_IDS
    _by_id: Dict[str, Platform] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_by_id", {p.id.lower(): p for p in self.platforms})

    def get_platform(self, platform_id: Optional[str]) -> Optional[Platform]:
        """Look up a platform case-insensitively."""
        if not platform_id:
            return None
        return self._by_id.get(platform_id.strip().lower())

    def is_platform_supported(self, platform_id: Optional[str]) -> bool:
        return self.get_platform(platform_id) is not None

    def is_carrier_supported(self, carrier_id: Optional[str]) -> bool:
        return bool(carrier_id) and carrier_id.lower() in self.carrier_ids

    @classmethod
    def from_dict(cls, data: dict) -> "ReferenceData":
        """
        Build reference data from a parsed JSON document.

        Expected shape:
            {"platforms": [{"id": "amazon", "url": "amazon.com", "category": "..."}],
             "carrier_ids": ["usps", "ups"]}

        Raises:
            ValidationException: If the document is malformed
        """
        try:
            platforms = tuple(
                Platform(id=str(p["id"]).lower(), url=str(p["url"]), category=p.get("category", "Other"))
                for p in data.get("platforms", [])
            ) or DEFAULT_PLATFORMS
            carriers = data.get("carrier_ids")
            carrier_ids = frozenset(c.lower() for c in carriers) if carriers else DEFAULT_CARRIER_IDS
        except (KeyError, TypeError, AttributeError) as e:
            raise ValidationException(f"Invalid reference data: {str(e)}") from e
        return cls(platforms=platforms, carrier_ids=carrier_ids)

    @classmethod
    def from_file(cls, path: str) -> "ReferenceData":
        """Load reference data from a JSON file."""
        try:
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationException(f"Failed to load reference data from {path}: {str(e)}") from e
        return cls.from_dict(data)


@lru_cache()
def get_reference_data() -> ReferenceData:
    """Reference data for this deployment, loaded once per process."""
    path = config.settings.reference_data_path
    if path:
        logger.info("Loading reference data from %s", path)
        return ReferenceData.from_file(path)
    return ReferenceData()
