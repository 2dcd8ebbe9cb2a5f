import phonenumbers
from phonenumbers.phonenumberutil import NumberParseException


def normalize_phone(raw: str | None, default_region: str = "PH") -> str | None:
    """
    Brings a phone number to E.164 ("+639171234567").
    Returns None if the number is missing or invalid.
    """
    if not raw:
        return None
    try:
        num = phonenumbers.parse(raw, default_region)
    except NumberParseException:
        return None

    if not phonenumbers.is_valid_number(num):
        return None

    return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.E164)


def display_phone(raw: str | None, default_region: str = "PH") -> str:
    """International format for the rider's order card, raw text if it can't be parsed."""
    if not raw:
        return "not provided"
    try:
        num = phonenumbers.parse(raw, default_region)
    except NumberParseException:
        return raw
    if not phonenumbers.is_valid_number(num):
        return raw
    return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
