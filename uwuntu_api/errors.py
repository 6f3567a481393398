"""Error types raised by the key issuance service."""
from __future__ import annotations

from typing import Dict

from fastapi import status


class UwuntuError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_payload(self) -> Dict[str, str]:
        return {"error": self.code, "message": self.message}


class ValidationError(UwuntuError, ValueError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class MissingField(ValidationError):
    code = "missing_field"


class MissingKey(ValidationError):
    code = "missing_key"


class InvalidFormat(ValidationError):
    code = "invalid_format"


class InvalidId(ValidationError):
    code = "invalid_id"


class DuplicateEmail(UwuntuError, ValueError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_email"


class DuplicateKey(UwuntuError, ValueError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_key"


class Unauthorized(UwuntuError, PermissionError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class InvalidCredentials(Unauthorized):
    code = "invalid_credentials"


class NotFound(UwuntuError, LookupError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class PersistenceError(UwuntuError, RuntimeError):
    """Raised when the underlying SQLite store fails."""

    code = "db_error"


__all__ = [
    "UwuntuError",
    "ValidationError",
    "MissingField",
    "MissingKey",
    "InvalidFormat",
    "InvalidId",
    "DuplicateEmail",
    "DuplicateKey",
    "Unauthorized",
    "InvalidCredentials",
    "NotFound",
    "PersistenceError",
]
