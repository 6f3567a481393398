"""Administrator registration, login and the session guard."""
from __future__ import annotations

import logging
from typing import Optional

from .database import Database
from .errors import InvalidCredentials, MissingField, Unauthorized
from .security import hash_password, verify_password
from .sessions import AdminSession, SessionStore

logger = logging.getLogger("uwuntu.auth")


class AdminAuthService:
    """Authenticate administrators against stored bcrypt hashes."""

    def __init__(self, database: Database, sessions: SessionStore) -> None:
        self._database = database
        self._sessions = sessions

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    def register(self, email: Optional[str], password: Optional[str]) -> int:
        email = (email or "").strip()
        if not email or not password:
            raise MissingField("email & password required")

        admin = self._database.create_admin(email, hash_password(password))
        logger.info("Registered admin %s (%s)", admin.id, admin.email)
        return admin.id

    def login(
        self,
        email: Optional[str],
        password: Optional[str],
        *,
        previous_session_id: Optional[str] = None,
    ) -> AdminSession:
        email = (email or "").strip()
        if not email or not password:
            raise MissingField("email & password required")

        credentials = self._database.get_admin_credentials(email)
        if credentials is None or not verify_password(password, credentials[1]):
            logger.warning("Failed admin login attempt for %s", email)
            raise InvalidCredentials("Invalid credentials")

        if previous_session_id:
            self._sessions.destroy(previous_session_id)

        admin = credentials[0]
        session = self._sessions.create(admin.id, admin.email)
        logger.info("Admin %s signed in", admin.id)
        return session

    def logout(self, session_id: Optional[str]) -> None:
        if session_id:
            self._sessions.destroy(session_id)

    def guard(self, session_id: Optional[str]) -> AdminSession:
        """Return the active session or raise :class:`Unauthorized`."""

        if not session_id:
            raise Unauthorized("Unauthorized")
        session = self._sessions.get(session_id)
        if session is None or not session.admin_id:
            raise Unauthorized("Unauthorized")
        return session


__all__ = ["AdminAuthService"]
