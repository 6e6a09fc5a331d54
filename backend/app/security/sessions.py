############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# sessions.py: Server-side login sessions and session cookies
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Login session management.

A session is a row keyed by an opaque 256-bit token. The browser holds the
token in a cookie, signed with itsdangerous so tampered values are dropped
before touching the database. Validity is checked against ``expires_at`` on
every use; nothing is cached.
"""

import asyncio
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from itsdangerous import BadData, URLSafeTimedSerializer
from sqlalchemy.exc import SQLAlchemyError

from backend.app.db import crud
from backend.app.db.base import ensure_aware, utcnow
from backend.app.db.models import User
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.settings import Settings

logger = get_logger(__name__)

DEFAULT_SESSION_TTL = timedelta(days=7)
SESSION_TOKEN_BYTES = 32


def generate_session_token() -> str:
    """Generate an unguessable session token (64 hex chars)."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


def parse_cookie_header(cookie_header: Optional[str]) -> Dict[str, str]:
    """Split a ``Cookie`` header into a name -> value mapping.

    Values may themselves contain ``=``. Fragments without a name are ignored.
    """
    cookies: Dict[str, str] = {}
    if not cookie_header:
        return cookies
    for part in cookie_header.split(";"):
        name, sep, value = part.strip().partition("=")
        name = name.strip()
        if not name or not sep:
            continue
        cookies[name] = value.strip().strip('"')
    return cookies


class SessionManager:
    """Issues, validates and expires login sessions."""

    def __init__(
        self,
        database: Database,
        *,
        secret_key: str,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        purge_on_create: bool = True,
        cookie_name: str = "session",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.database = database
        self.ttl = ttl
        self.purge_on_create = purge_on_create
        self.cookie_name = cookie_name
        self._clock = clock
        self._serializer = URLSafeTimedSerializer(secret_key, salt="session")

    @classmethod
    def from_settings(cls, database: Database, settings: Settings) -> "SessionManager":
        return cls(
            database,
            secret_key=settings.secret_key,
            ttl=timedelta(days=settings.session_ttl_days),
            purge_on_create=settings.session_purge_on_create,
            cookie_name=settings.session_cookie_name,
        )

    async def create_session(self, user_id: int) -> Optional[str]:
        """Start a session for ``user_id`` and return its token.

        Returns None if the session could not be stored (e.g. unknown user).
        """
        token = generate_session_token()
        now = self._clock()
        async with self.database.session() as db:
            try:
                await crud.create_session(db, token, user_id, now + self.ttl)
                purged = 0
                if self.purge_on_create:
                    purged = await crud.delete_expired_sessions(db, now)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("session_create_failed", user_id=user_id, error=str(exc))
                return None

        logger.info("session_created", user_id=user_id, purged_expired=purged)
        return token

    async def validate_session(self, token: Optional[str]) -> Optional[User]:
        """Return the session's user, or None for a missing, unknown or expired token."""
        if not token:
            return None
        async with self.database.session() as db:
            row = await crud.get_session(db, token)
            if row is None:
                return None
            if ensure_aware(row.expires_at) <= self._clock():
                return None
            return await crud.get_user_by_id(db, row.user_id)

    async def delete_session(self, token: Optional[str]) -> bool:
        """End a session. Unknown tokens and storage errors are not raised.

        Returns True if a session row was removed.
        """
        if not token:
            return False
        async with self.database.session() as db:
            try:
                deleted = await crud.delete_session(db, token)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("session_delete_failed", error=str(exc))
                return False
        if deleted:
            logger.info("session_deleted")
        return deleted

    async def delete_user_sessions(
        self, user_id: int, except_token: Optional[str] = None
    ) -> Optional[int]:
        """End every session of a user, optionally keeping ``except_token``.

        Returns the number of sessions removed, or None if they could not be removed.
        """
        async with self.database.session() as db:
            try:
                count = await crud.delete_user_sessions(db, user_id, except_token)
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("user_sessions_delete_failed", user_id=user_id, error=str(exc))
                return None
        logger.info("user_sessions_deleted", user_id=user_id, count=count)
        return count

    async def purge_expired(self) -> int:
        """Delete all expired sessions. Safe to call at any time; returns 0 on failure."""
        async with self.database.session() as db:
            try:
                count = await crud.delete_expired_sessions(db, self._clock())
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.warning("expired_sessions_purge_failed", error=str(exc))
                return 0
        if count:
            logger.info("expired_sessions_purged", count=count)
        return count

    # Cookie handling
    def sign_token(self, token: str) -> str:
        """Cookie value for a session token."""
        return self._serializer.dumps(token)

    def unsign_token(self, cookie_value: Optional[str]) -> Optional[str]:
        """Session token from a cookie value, or None if tampered or too old."""
        if not cookie_value:
            return None
        try:
            token = self._serializer.loads(
                cookie_value, max_age=int(self.ttl.total_seconds())
            )
        except BadData:
            return None
        return token if isinstance(token, str) else None

    def extract_session_token(self, cookie_header: Optional[str]) -> Optional[str]:
        """Session token from a raw ``Cookie`` header."""
        cookies = parse_cookie_header(cookie_header)
        return self.unsign_token(cookies.get(self.cookie_name))

    async def validate_session_cookie(self, cookie_header: Optional[str]) -> Optional[User]:
        """User for a raw ``Cookie`` header, or None when anonymous."""
        return await self.validate_session(self.extract_session_token(cookie_header))


async def run_session_sweeper(manager: SessionManager, interval: float) -> None:
    """Purge expired sessions every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        await manager.purge_expired()
