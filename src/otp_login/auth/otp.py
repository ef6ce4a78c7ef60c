"""One-time code generation and challenge storage."""

from __future__ import annotations

import hmac
import secrets

from otp_login.cache.ephemeral import EphemeralStore

# Challenge validity period in seconds
OTP_TTL_SECONDS = 120
OTP_DIGITS = 4

_CODE_FIELD = "otp"


class OTPGenerator:
    """Produces fixed-width numeric codes from a CSPRNG."""

    def __init__(self, digits: int = OTP_DIGITS) -> None:
        self._digits = digits

    def next(self) -> str:
        return f"{secrets.randbelow(10 ** self._digits):0{self._digits}d}"


class OTPChallenge:
    """Issues and verifies the single pending code for each phone number.

    The record lives in the ephemeral store under the phone number
    itself, as a hash ``{"otp": code}`` with a TTL.  Issuing a new code
    replaces any pending one, so only the newest code is ever valid.

    With ``single_use`` the match and the deletion happen in one atomic
    store operation, so two concurrent verifications of the same code
    cannot both succeed.
    """

    def __init__(
        self,
        store: EphemeralStore,
        generator: OTPGenerator | None = None,
        ttl_seconds: int = OTP_TTL_SECONDS,
        single_use: bool = True,
    ) -> None:
        self._store = store
        self._generator = generator or OTPGenerator()
        self._ttl = ttl_seconds
        self._single_use = single_use

    async def issue(self, phone_number: str, *, timeout: float | None = None) -> str:
        """Generate and store a fresh code for *phone_number*."""
        code = self._generator.next()
        await self._store.put_hash(phone_number, {_CODE_FIELD: code}, self._ttl, timeout=timeout)
        return code

    async def verify(self, phone_number: str, submitted: str, *, timeout: float | None = None) -> bool:
        """Return ``True`` if *submitted* matches the pending, unexpired code.

        "Never requested", "expired" and "mismatch" all return ``False``.
        In single-use mode a match also consumes the code.
        """
        if self._single_use:
            return await self._store.consume_hash_field(
                phone_number, _CODE_FIELD, submitted, timeout=timeout
            )
        return await self.matches(phone_number, submitted, timeout=timeout)

    async def matches(self, phone_number: str, submitted: str, *, timeout: float | None = None) -> bool:
        """Compare *submitted* with the pending code without consuming it."""
        record = await self._store.get_hash(phone_number, timeout=timeout)
        stored = record.get(_CODE_FIELD, "")
        # Absent records compare against "" so both failure paths do the same work
        return hmac.compare_digest(stored.encode(), submitted.encode()) and bool(stored)
