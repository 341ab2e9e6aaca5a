import re


# ASCII digits only; fullmatch so a trailing newline is rejected too
_PHONE_RE = re.compile(r"[0-9]{10}")
_COUNTRY_CODE_RE = re.compile(r"\+[0-9]{1,4}")


def is_valid_phone(phone: str | None) -> bool:
    return bool(phone) and _PHONE_RE.fullmatch(phone) is not None


def is_valid_country_code(country_code: str | None) -> bool:
    return bool(country_code) and _COUNTRY_CODE_RE.fullmatch(country_code) is not None


def to_e164(phone: str, country_code: str) -> str:
    """Join a country code and a national number (``+1`` + ``5551234567``)."""
    return f"{country_code}{phone}"


def mask_phone(phone: str, visible_digits: int = 2) -> str:
    if not phone:
        return ""
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]


def mask_code(code: str) -> str:
    if not code:
        return ""
    if len(code) <= 2:
        return "*" * len(code)
    return "*" * (len(code) - 2) + code[-2:]
