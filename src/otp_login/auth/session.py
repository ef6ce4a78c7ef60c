"""Session resolution — maps an ``Authorization`` header to an identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from otp_login.auth.tokens import TokenClaims, TokenValidator
from otp_login.database.repository import UserRepository
from otp_login.errors import TokenInvalid
from otp_login.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anonymous:
    """No credential was presented; valid for public endpoints."""


@dataclass(frozen=True)
class Authenticated:
    user: User
    claims: TokenClaims


Session = Anonymous | Authenticated

ANONYMOUS = Anonymous()


class SessionResolver:
    """Resolves each request to :class:`Anonymous` or :class:`Authenticated`.

    A present but malformed, invalid or expired credential raises
    :class:`TokenInvalid`; the request never reaches its handler.
    """

    def __init__(
        self,
        validator: TokenValidator,
        session_factory: async_sessionmaker,
        db_timeout: float = 3.0,
    ) -> None:
        self._validator = validator
        self._session_factory = session_factory
        self._db_timeout = db_timeout

    async def resolve(self, authorization: str | None) -> Session:
        if not authorization:
            return ANONYMOUS

        scheme, _, token = authorization.partition(" ")
        if scheme != "Bearer" or not token.strip():
            raise TokenInvalid("Invalid authorization header")

        claims = self._validator.verify(token.strip())

        async with self._session_factory() as db_session:
            repo = UserRepository(db_session, timeout=self._db_timeout)
            user = await repo.find_by_id(claims.subject)
        if user is None:
            logger.info("Token subject %s has no matching user", claims.subject)
            raise TokenInvalid("User not found")

        return Authenticated(user=user, claims=claims)
