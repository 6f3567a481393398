"""Domain models for users, their API keys and administrators."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class User:
    """A key holder registered through the public API."""

    id: int
    firstname: str
    lastname: str
    email: str
    is_online: bool
    last_seen: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class ApiKey:
    """The single key owned by a user; ``id`` is the owner's user id."""

    id: int
    api_key: str
    created_at: datetime


@dataclass(frozen=True)
class Admin:
    id: int
    email: str
    created_at: datetime


@dataclass(frozen=True)
class AccountRecord:
    """A user joined with its (possibly revoked) API key."""

    id: int
    firstname: str
    lastname: str
    email: str
    is_online: bool
    last_seen: Optional[datetime]
    user_created_at: datetime
    api_key: Optional[str]
    apikey_created_at: Optional[datetime]


@dataclass(frozen=True)
class KeyValidation:
    key: str
    status: str
    created_at: datetime


@dataclass(frozen=True)
class UserListing:
    """Admin view of an account including the computed presence flag."""

    record: AccountRecord
    online_now: bool


__all__ = ["AccountRecord", "Admin", "ApiKey", "KeyValidation", "User", "UserListing"]
