"""ULID helpers."""

import re

import ulid

ULID_LENGTH = 26
_ULID_PATTERN = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def generate_ulid() -> str:
    """Return a string ULID for primary keys."""
    return str(ulid.new())


def looks_like_ulid(value: str) -> bool:
    """Cheap shape check used to skip lookups for ids that cannot exist."""
    return bool(_ULID_PATTERN.match(value.upper()))
