############################################################
#
# labchain-directory - LAB Chain Network Directory and Faucet Portal
#
# accounts.py: Admin accounts, first-time setup and credentials
#
# Luke Sheneman
# Research Computing and Data Services (RCDS)
# Institute for Interdisciplinary Data Sciences (IIDS)
# University of Idaho
# sheneman@uidaho.edu
#
############################################################

"""Credential store for admin accounts."""

import asyncio
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.app.db import crud
from backend.app.db.base import utcnow
from backend.app.db.models import User
from backend.app.db.session import Database
from backend.app.logging_config import get_logger
from backend.app.security.password_hash import hash_password, needs_rehash, verify_password
from backend.app.services.results import FailureKind, UserResult

logger = get_logger(__name__)

USERNAME_MAX_LENGTH = 100
SETUP_COMPLETED_KEY = "setup_completed"


def _setup_completed() -> UserResult:
    return UserResult(success=False, error="Setup already completed", kind=FailureKind.CONFLICT)


class AccountService:
    """Creates, authenticates and updates admin users."""

    def __init__(self, database: Database, password_min_length: int = 8):
        self.database = database
        self.password_min_length = password_min_length
        self._bootstrap_lock = asyncio.Lock()

    def _validate_username(self, username: str) -> Optional[str]:
        if not username:
            return "Username is required"
        if len(username) > USERNAME_MAX_LENGTH:
            return f"Username must be at most {USERNAME_MAX_LENGTH} characters"
        return None

    def _validate_password(self, password: str) -> Optional[str]:
        if not password or len(password) < self.password_min_length:
            return f"Password must be at least {self.password_min_length} characters"
        return None

    async def is_first_time_setup(self) -> bool:
        """True while no user account exists."""
        async with self.database.session() as db:
            return await crud.count_users(db) == 0

    async def create_user(self, username: str, password: str) -> UserResult:
        """Create an account. Duplicate usernames fail with a distinct error."""
        username = (username or "").strip()
        error = self._validate_username(username) or self._validate_password(password)
        if error:
            return UserResult(success=False, error=error, kind=FailureKind.VALIDATION)

        async with self.database.session() as db:
            if await crud.get_user_by_username(db, username):
                return UserResult(
                    success=False, error="Username already exists", kind=FailureKind.CONFLICT
                )
            try:
                user = await crud.create_user(db, username, hash_password(password))
                await db.commit()
            except IntegrityError:
                # Lost a race with a concurrent insert of the same name
                await db.rollback()
                return UserResult(
                    success=False, error="Username already exists", kind=FailureKind.CONFLICT
                )
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("user_create_failed", username=username, error=str(exc))
                return UserResult(
                    success=False, error="Could not create user", kind=FailureKind.STORAGE
                )

        logger.info("user_created", user_id=user.id, username=user.username)
        return UserResult(success=True, user=user)

    async def bootstrap_admin(self, username: str, password: str) -> UserResult:
        """Create the first account. Refused once any account exists.

        The user count and the insert share one transaction, serialized
        in-process by a lock. Across processes the ``setup_completed`` row
        is the guard: only one insert of that key can commit.
        """
        async with self._bootstrap_lock:
            async with self.database.session() as db:
                if await crud.count_users(db) > 0:
                    return _setup_completed()

                username = (username or "").strip()
                error = self._validate_username(username) or self._validate_password(password)
                if error:
                    return UserResult(success=False, error=error, kind=FailureKind.VALIDATION)

                try:
                    user = await crud.create_user(db, username, hash_password(password))
                    await crud.create_setting(db, SETUP_COMPLETED_KEY, utcnow().isoformat())
                    await db.commit()
                except IntegrityError:
                    await db.rollback()
                    logger.warning("bootstrap_admin_lost_race", username=username)
                    return _setup_completed()
                except SQLAlchemyError as exc:
                    await db.rollback()
                    logger.error("bootstrap_admin_failed", username=username, error=str(exc))
                    return UserResult(
                        success=False, error="Could not create user", kind=FailureKind.STORAGE
                    )

        logger.info("user_created", user_id=user.id, username=user.username)
        return UserResult(success=True, user=user)

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user when the credentials match, otherwise None."""
        username = (username or "").strip()
        if not username or not password:
            return None

        async with self.database.session() as db:
            user = await crud.get_user_by_username(db, username)
            if user is None or not verify_password(password, user.password_hash):
                logger.warning("login_failed", username=username)
                return None

            if needs_rehash(user.password_hash):
                try:
                    await crud.update_user(db, user.id, password_hash=hash_password(password))
                    await db.commit()
                    logger.info("password_rehashed", user_id=user.id)
                except SQLAlchemyError as exc:
                    await db.rollback()
                    logger.warning("password_rehash_failed", user_id=user.id, error=str(exc))

        return user

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self.database.session() as db:
            return await crud.get_user_by_id(db, user_id)

    async def update_username(self, user_id: int, new_username: str) -> UserResult:
        """Rename a user, keeping usernames unique."""
        new_username = (new_username or "").strip()
        error = self._validate_username(new_username)
        if error:
            return UserResult(success=False, error=error, kind=FailureKind.VALIDATION)

        async with self.database.session() as db:
            existing = await crud.get_user_by_username(db, new_username)
            if existing and existing.id != user_id:
                return UserResult(
                    success=False, error="Username already exists", kind=FailureKind.CONFLICT
                )
            try:
                user = await crud.update_user(db, user_id, username=new_username)
                if user is None:
                    return UserResult(
                        success=False, error="User not found", kind=FailureKind.NOT_FOUND
                    )
                await db.commit()
            except IntegrityError:
                await db.rollback()
                return UserResult(
                    success=False, error="Username already exists", kind=FailureKind.CONFLICT
                )
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("username_update_failed", user_id=user_id, error=str(exc))
                return UserResult(
                    success=False, error="Could not update username", kind=FailureKind.STORAGE
                )

        logger.info("username_updated", user_id=user_id)
        return UserResult(success=True, user=user)

    async def update_password(
        self, user_id: int, current_password: str, new_password: str
    ) -> UserResult:
        """Change a password after re-checking the current one."""
        error = self._validate_password(new_password)
        if error:
            return UserResult(success=False, error=error, kind=FailureKind.VALIDATION)

        async with self.database.session() as db:
            user = await crud.get_user_by_id(db, user_id)
            if user is None:
                return UserResult(success=False, error="User not found", kind=FailureKind.NOT_FOUND)
            if not verify_password(current_password or "", user.password_hash):
                return UserResult(
                    success=False,
                    error="Current password is incorrect",
                    kind=FailureKind.VALIDATION,
                )
            try:
                await crud.update_user(db, user_id, password_hash=hash_password(new_password))
                await db.commit()
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("password_update_failed", user_id=user_id, error=str(exc))
                return UserResult(
                    success=False, error="Could not update password", kind=FailureKind.STORAGE
                )

        logger.info("password_updated", user_id=user_id)
        return UserResult(success=True, user=user)
