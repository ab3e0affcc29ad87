# app/utils/references.py
"""Human-readable reference codes: PREFIX-<base36 ms timestamp>-<base36 random>"""
import secrets
import string
import time
from typing import Optional

BASE36_ALPHABET = string.digits + string.ascii_uppercase

APPOINTMENT_PREFIX = "APT"
TRIP_BOOKING_PREFIX = "TRV"
CORPORATE_BOOKING_PREFIX = "CORP"


def to_base36(number: int) -> str:
    """Encode a non-negative integer in upper-case base 36"""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"

    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_reference(prefix: str, suffix_length: int, now_ms: Optional[int] = None) -> str:
    """
    Build an opaque reference code.

    Args:
        prefix: tag such as APT, TRV or CORP
        suffix_length: number of random base-36 characters
        now_ms: timestamp override in milliseconds (tests)
    """
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{to_base36(timestamp)}-{suffix}"


def appointment_reference() -> str:
    return generate_reference(APPOINTMENT_PREFIX, 4)


def trip_booking_reference() -> str:
    return generate_reference(TRIP_BOOKING_PREFIX, 6)


def corporate_booking_reference() -> str:
    return generate_reference(CORPORATE_BOOKING_PREFIX, 6)
