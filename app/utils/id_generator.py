"""
Utility functions for generating consistent reference formats.
"""

import random
import string
from datetime import datetime

REFERENCE_PREFIX = "PVT"


def generate_booking_reference(now: datetime) -> str:
    """
    Generate a human readable booking reference.

    Format is PVT + last 6 digits of the epoch milliseconds of ``now`` +
    3 random uppercase alphanumerics (e.g. 'PVT482913K7Q'). Uniqueness is
    enforced by the database, callers retry with a new suffix on collision.

    Args:
        now (datetime): Creation time, drives the time-derived prefix

    Returns:
        str: A 12 character booking reference
    """
    millis = str(int(now.timestamp() * 1000))[-6:]
    characters = string.ascii_uppercase + string.digits
    suffix = "".join(random.choices(characters, k=3))
    return f"{REFERENCE_PREFIX}{millis}{suffix}"


def generate_receipt_number(now: datetime) -> str:
    """
    Generate a receipt number for a succeeded payment.

    Returns:
        str: PVT + YYMMDD + 4 random digits (e.g. 'PVT2412010427')
    """
    random_digits = "".join(random.choices(string.digits, k=4))
    return f"{REFERENCE_PREFIX}{now.strftime('%y%m%d')}{random_digits}"
