# backend/cafeslot/core/ulid_helper.py
"""ULID helpers for ids minted outside the ORM defaults."""

from typing import Optional

import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.ULID())


def parse_ulid(value: str) -> Optional[ulid.ULID]:
    try:
        return ulid.ULID.from_str(value)
    except (ValueError, AttributeError, TypeError):
        return None


def is_valid_ulid(value: Optional[str]) -> bool:
    """True for a 26-character Crockford ULID such as a principal or reservation id."""
    return bool(value) and parse_ulid(str(value)) is not None
