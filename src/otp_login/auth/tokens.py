"""Bearer token issuance and validation (HMAC-signed JWT)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from otp_login.errors import TokenInvalid

logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(hours=48)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    subject: int
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    subject: int
    issued_at: datetime
    expires_at: datetime


class TokenIssuer:
    """Signs ``sub`` / ``iat`` / ``exp`` claims with a shared secret.

    Tokens are never stored server-side; they stay valid until ``exp``.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = TOKEN_TTL,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = ttl
        self._now = now

    def issue(self, subject_id: int, ttl: timedelta | None = None) -> IssuedToken:
        # Whole seconds, so the returned datetimes equal what a validator decodes
        issued_at = self._now().replace(microsecond=0)
        expires_at = issued_at + (ttl if ttl is not None else self._ttl)
        payload = {
            "sub": str(subject_id),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return IssuedToken(token=token, subject=subject_id, issued_at=issued_at, expires_at=expires_at)


class TokenValidator:
    """Verifies tokens against the pinned algorithm only.

    The algorithm named in the token header is never trusted; a token
    signed any other way (including ``alg: none``) is rejected.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", leeway: int = 0) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._leeway = leeway

    def verify(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                leeway=self._leeway,
                options={"require": ["sub", "iat", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenInvalid("Token expired") from None
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise TokenInvalid("Invalid token") from None

        try:
            subject = int(payload["sub"])
        except (TypeError, ValueError):
            raise TokenInvalid("Invalid token subject") from None

        return TokenClaims(
            subject=subject,
            issued_at=datetime.fromtimestamp(payload["iat"], UTC),
            expires_at=datetime.fromtimestamp(payload["exp"], UTC),
        )
