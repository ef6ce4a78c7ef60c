"""OTP login service — request a code, verify it, receive a bearer token."""

from __future__ import annotations

import logging
import re

from sqlalchemy.ext.asyncio import async_sessionmaker

from otp_login.auth.otp import OTPChallenge
from otp_login.auth.rate_limiter import RateLimiter
from otp_login.auth.tokens import IssuedToken, TokenIssuer
from otp_login.database.repository import UserRepository
from otp_login.errors import ChallengeExpiredOrInvalid, NotFound, RateLimited, ValidationError
from otp_login.models.user import User

logger = logging.getLogger(__name__)

# E.164: "+", country code, subscriber number; 7 to 15 digits in total
PHONE_NUMBER_RE = re.compile(r"\+[1-9]\d{6,14}")


class OTPAuthService:
    """Orchestrates the login flow.

    Flow
    ----
    1. ``request_otp``: the rate limiter admits the phone number, then a
       fresh code is issued (replacing any pending one).
    2. ``verify_otp``: the submitted code is checked; on success the
       identity is fetched or implicitly registered, the code is
       consumed and a bearer token is issued for it.

    Phone numbers must be E.164.  They double as ephemeral store keys,
    so anything else is rejected before touching the store.
    """

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        challenge: OTPChallenge,
        issuer: TokenIssuer,
        session_factory: async_sessionmaker,
        db_timeout: float = 3.0,
        log_codes: bool = False,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._challenge = challenge
        self._issuer = issuer
        self._session_factory = session_factory
        self._db_timeout = db_timeout
        self._log_codes = log_codes

    async def request_otp(self, phone_number: str) -> None:
        phone_number = _require_phone(phone_number, "Phone number is required")

        admission = await self._rate_limiter.admit(phone_number)
        if not admission.allowed:
            raise RateLimited(
                "Too many OTP requests. Please try again later.",
                retry_after=admission.retry_after,
            )

        code = await self._challenge.issue(phone_number)
        if self._log_codes:
            # No delivery channel; the log stands in for SMS during development
            logger.info("OTP for %s: %s", phone_number, code)
        else:
            logger.info("OTP issued for %s (%d/%d)", phone_number, admission.count, admission.limit)

    async def verify_otp(self, phone_number: str, code: str) -> tuple[User, IssuedToken]:
        phone_number = _require_phone(phone_number, "Phone number and OTP are required")
        code = _require(code, "Phone number and OTP are required")

        if not await self._challenge.matches(phone_number, code):
            logger.info("OTP verification failed for %s", phone_number)
            raise ChallengeExpiredOrInvalid("Invalid or expired OTP")

        # Registration runs before the code is consumed, so a storage
        # failure here leaves the code valid for a retry.
        async with self._session_factory() as db_session:
            repo = UserRepository(db_session, timeout=self._db_timeout)
            user = await repo.get_or_create(phone_number)

        if not await self._challenge.verify(phone_number, code):
            logger.info("OTP for %s was consumed or expired during registration", phone_number)
            raise ChallengeExpiredOrInvalid("Invalid or expired OTP")

        token = self._issuer.issue(user.id)
        logger.info("User %s authenticated (id=%s)", phone_number, user.id)
        return user, token

    async def get_user(self, user_id: int) -> User:
        async with self._session_factory() as db_session:
            user = await UserRepository(db_session, timeout=self._db_timeout).find_by_id(user_id)
        if user is None:
            raise NotFound("user not found")
        return user


def _require(value: str, message: str) -> str:
    value = value.strip()
    if not value:
        raise ValidationError(message)
    return value


def _require_phone(value: str, missing_message: str) -> str:
    value = _require(value, missing_message)
    if not PHONE_NUMBER_RE.fullmatch(value):
        raise ValidationError("Invalid phone number")
    return value
