"""
Validation rules for book payloads received from clients.
"""

import math
from collections.abc import Mapping
from typing import Any, Optional

MIN_YEAR = 1900
# Largest value BSON can store as an integer
MAX_YEAR = 2 ** 63 - 1

# Checked in this order; the first failing rule wins.
REQUIRED_FIELDS = (
    ("isbn", "ISBN"),
    ("title", "Title"),
    ("author", "Author"),
    ("category", "Category"),
)

YEAR_MESSAGE = f"Year must be an integer ≥ {MIN_YEAR}"


def is_valid_year(value: Any) -> bool:
    """Accept ints and integral floats (JSON ``2000.0``) between MIN_YEAR and MAX_YEAR."""
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        return value.is_integer() and MIN_YEAR <= value <= MAX_YEAR
    return isinstance(value, int) and MIN_YEAR <= value <= MAX_YEAR


def is_text_like(value: Any) -> bool:
    """Strings and finite plain numbers can be stored as text."""
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def validate_book(candidate: Any) -> Optional[str]:
    """
    Check a book payload against the catalog's field rules.

    Args:
        candidate: Untrusted payload, usually the decoded JSON body

    Returns:
        None if the payload is valid, otherwise the message of the
        first rule it breaks
    """
    if not isinstance(candidate, Mapping):
        candidate = {}

    for field, label in REQUIRED_FIELDS:
        if not candidate.get(field):
            return f"{label} is required"

    if not is_valid_year(candidate.get("year")):
        return YEAR_MESSAGE

    for field, label in REQUIRED_FIELDS:
        if not is_text_like(candidate[field]):
            return f"{label} must be a string"

    return None
