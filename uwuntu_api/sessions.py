"""Server-side session storage for administrator logins."""

from __future__ import annotations

import abc
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional


@dataclass(frozen=True)
class AdminSession:
    """State kept for a signed-in administrator."""

    session_id: str
    admin_id: int
    email: str


class SessionStore(abc.ABC):
    """Create, read and destroy administrator sessions."""

    @abc.abstractmethod
    def create(self, admin_id: int, email: str) -> AdminSession:
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, session_id: str) -> Optional[AdminSession]:
        raise NotImplementedError

    @abc.abstractmethod
    def destroy(self, session_id: str) -> None:
        raise NotImplementedError


@dataclass
class _SessionRecord:
    admin_id: int
    email: str
    expires_at: datetime


class InMemorySessionStore(SessionStore):
    """Process-local sessions with a sliding expiry.

    State is lost on restart and is not shared between server instances.
    """

    def __init__(self, *, ttl: timedelta = timedelta(hours=8)) -> None:
        self._ttl = ttl
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def create(self, admin_id: int, email: str) -> AdminSession:
        session_id = secrets.token_urlsafe(32)
        record = _SessionRecord(admin_id=admin_id, email=email, expires_at=self._now() + self._ttl)
        with self._lock:
            self._sessions[session_id] = record
        return AdminSession(session_id=session_id, admin_id=admin_id, email=email)

    def get(self, session_id: str) -> Optional[AdminSession]:
        now = self._now()
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(session_id, None)
                return None
            record.expires_at = now + self._ttl
            return AdminSession(session_id=session_id, admin_id=record.admin_id, email=record.email)

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["AdminSession", "InMemorySessionStore", "SessionStore"]
