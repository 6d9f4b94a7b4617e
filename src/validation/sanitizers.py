"""
Sanitizers for raw CSV text fields.
Each function takes a possibly empty string and returns a canonical string or None.
"""
import re
from typing import Optional

_NON_PHONE_CHARS = re.compile(r"[^0-9\-]")
_NON_ALNUM_CHARS = re.compile(r"[^A-Za-z0-9]")
_NON_DIGIT_CHARS = re.compile(r"[^0-9]")


def sanitize_phone(phone: Optional[str]) -> Optional[str]:
    """Keep digits and hyphens only, e.g. '+1(555)123-4567' -> '1555123-4567'."""
    if not phone:
        return None
    return _NON_PHONE_CHARS.sub("", phone) or None


def sanitize_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """Keep letters and digits only, e.g. '12345-6789' -> '123456789'."""
    if not postal_code:
        return None
    return _NON_ALNUM_CHARS.sub("", postal_code) or None


def sanitize_hs_code(hs_code: Optional[str]) -> Optional[str]:
    """
    Keep digits only, e.g. '8471.30.01' -> '84713001'.

    The 6-10 digit length rule is enforced by the row schema, not here.
    """
    if not hs_code:
        return None
    return _NON_DIGIT_CHARS.sub("", hs_code) or None


def sanitize_country_code(code: Optional[str]) -> Optional[str]:
    """Uppercase and trim."""
    if not code:
        return None
    return code.strip().upper() or None
