"""API key generation and format checks."""
from __future__ import annotations

import re
import secrets

API_KEY_PREFIX = "UWUNTU-API-"
API_KEY_PATTERN = re.compile(r"^UWUNTU-API-[A-F0-9]{16}$")

_RANDOM_BYTES = 8


def generate_api_key() -> str:
    """Return a fresh key. The value is not persisted here."""

    return API_KEY_PREFIX + secrets.token_hex(_RANDOM_BYTES).upper()


def is_valid_api_key(value: str) -> bool:
    return API_KEY_PATTERN.fullmatch(value) is not None


__all__ = ["API_KEY_PATTERN", "API_KEY_PREFIX", "generate_api_key", "is_valid_api_key"]
