"""User repository — data access layer for identities."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from otp_login.errors import IdentityConflict, StorageUnavailable
from otp_login.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0


class UserRepository:
    """Encapsulates all database queries related to users.

    Every call is bounded by a timeout; driver errors and timeouts are
    raised as :class:`StorageUnavailable`.
    """

    def __init__(self, session: AsyncSession, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._session = session
        self._timeout = timeout

    @asynccontextmanager
    async def _bounded(self, operation: str, timeout: float | None) -> AsyncIterator[None]:
        try:
            async with asyncio.timeout(self._timeout if timeout is None else timeout):
                yield
        except (SQLAlchemyError, OSError, TimeoutError) as exc:
            logger.error("Identity store %s failed: %r", operation, exc)
            raise StorageUnavailable("Identity store unavailable") from exc

    async def find_by_phone(self, phone_number: str, *, timeout: float | None = None) -> User | None:
        """Look up a user by their phone number.

        The phone is expected in E.164 format (e.g. ``+15551234567``).
        """
        stmt = select(User).where(User.phone_number == phone_number)
        async with self._bounded("find_by_phone", timeout):
            result = await self._session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int, *, timeout: float | None = None) -> User | None:
        async with self._bounded("find_by_id", timeout):
            return await self._session.get(User, user_id)

    async def insert(self, phone_number: str, *, timeout: float | None = None) -> User:
        """Insert a new user and commit.

        Raises :class:`IdentityConflict` when the phone number already
        exists (unique constraint).
        """
        user = User(phone_number=phone_number)
        async with self._bounded("insert", timeout):
            self._session.add(user)
            try:
                await self._session.commit()
            except IntegrityError as exc:
                await self._session.rollback()
                raise IdentityConflict(f"User {phone_number} already exists") from exc
        return user

    async def get_or_create(self, phone_number: str, *, timeout: float | None = None) -> User:
        """Return the user for *phone_number*, creating it on first sight.

        Concurrent callers for the same new number race on the unique
        constraint; the loser re-fetches the winner's row.
        """
        user = await self.find_by_phone(phone_number, timeout=timeout)
        if user is not None:
            return user

        try:
            user = await self.insert(phone_number, timeout=timeout)
        except IdentityConflict:
            logger.info("Concurrent signup for %s, fetching existing user", phone_number)
            user = await self.find_by_phone(phone_number, timeout=timeout)
            if user is None:
                raise StorageUnavailable("Identity vanished after conflicting insert") from None
            return user

        logger.info("Registered new user %s (id=%s)", phone_number, user.id)
        return user
