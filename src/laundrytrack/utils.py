"""Normalization helpers for order data coming from the intake system."""

import re
import secrets

from .config import COUNTRY_CODE

# No I, O, 0 or 1 to avoid confusion when read aloud or handwritten
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 5

_CUSTOMER_TYPES = {
    "particular": "individual",
    "individual": "individual",
    "hotel": "hotel",
    "institucion": "institution",
    "institución": "institution",
    "institution": "institution",
    "empresa": "company",
    "company": "company",
}

_DELIVERY_TYPES = {
    "retiro": "pickup",
    "pickup": "pickup",
    "despacho": "dispatch",
    "dispatch": "dispatch",
}


def normalize_customer_type(value: str | None) -> str:
    """
    Map an intake customer type ("Particular", "Hotel", ...) to its canonical value.

    Unknown values fall back to "individual".
    """
    if not value:
        return "individual"
    return _CUSTOMER_TYPES.get(value.strip().lower(), "individual")


def normalize_delivery_type(value: str | None) -> str:
    """
    Map an intake delivery type ("Retiro", "Despacho") to "pickup" or "dispatch".

    Unknown or missing values fall back to "pickup".
    """
    if not value:
        return "pickup"
    return _DELIVERY_TYPES.get(value.strip().lower(), "pickup")


def normalize_active_flag(value: str | bool | None) -> bool:
    """Convert the intake "Activa"/"Inactiva" status to a bool (missing means active)."""
    if value is None or value == "":
        return True
    if isinstance(value, bool):
        return value
    return value.strip().lower() in ("activa", "active", "true")


def normalize_phone(phone: str | None) -> str:
    """
    Normalize a phone number to +<country><number>.

    - "+56 9 1234 5678" -> "+56912345678"
    - "56912345678"     -> "+56912345678"
    - "912345678"       -> "+56912345678"
    """
    if not phone:
        return ""
    cleaned = re.sub(r"[^\d+]", "", phone)
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith(COUNTRY_CODE):
        return "+" + cleaned
    return f"+{COUNTRY_CODE}{cleaned}"


def generate_verification_code() -> str:
    """Generate a random 5-character dispatch verification code."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def codes_match(entered: str, expected: str | None) -> bool:
    """Case-insensitive comparison of a typed verification code."""
    if not expected:
        return False
    return entered.strip().upper() == expected.strip().upper()
