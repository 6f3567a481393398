"""User onboarding, key validation and heartbeat presence."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .database import Database
from .errors import InvalidFormat, MissingField, MissingKey, NotFound, PersistenceError
from .keys import is_valid_api_key
from .models import AccountRecord, KeyValidation

logger = logging.getLogger("uwuntu.accounts")

DEFAULT_KEY_STATUS = "active"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


class AccountService:
    """Persist users with their keys and track when they were last seen."""

    def __init__(self, database: Database, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._database = database
        self._clock = clock

    def save_user(
        self,
        firstname: Optional[str],
        lastname: Optional[str],
        email: Optional[str],
        api_key: Optional[str],
    ) -> AccountRecord:
        fields = {
            "firstname": _clean(firstname),
            "lastname": _clean(lastname),
            "email": _clean(email),
            "apiKey": _clean(api_key),
        }
        if not all(fields.values()):
            raise MissingField("firstname, lastname, email and apiKey required")

        record = self._database.create_account(
            fields["firstname"],
            fields["lastname"],
            fields["email"],
            fields["apiKey"],
        )
        logger.info("Saved user %s with API key %s", record.id, record.api_key)
        return record

    def validate_key(self, key: Optional[str]) -> KeyValidation:
        if not key:
            raise MissingKey("API key is required")
        if not is_valid_api_key(key):
            raise InvalidFormat("API key format is invalid")

        found = self._database.get_api_key(key)
        if found is None:
            logger.info("Validation failed for unknown API key")
            raise NotFound("API key not found")

        try:
            self._database.set_presence(found.id, online=True, seen_at=self._clock())
        except PersistenceError as exc:
            logger.warning("Failed to update last_seen for user %s: %s", found.id, exc)

        return KeyValidation(
            key=found.api_key,
            status=DEFAULT_KEY_STATUS,
            created_at=found.created_at,
        )

    def set_online(self, user_id: int) -> None:
        self._database.set_presence(user_id, online=True, seen_at=self._clock())

    def set_offline(self, user_id: int) -> None:
        self._database.set_presence(user_id, online=False, seen_at=None)


__all__ = ["AccountService", "DEFAULT_KEY_STATUS"]
