"""Error taxonomy shared by every component.

Each error carries the HTTP status it maps to; the FastAPI app renders
them all through a single exception handler as ``{"error": message}``.
"""

from __future__ import annotations


class OTPLoginError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(OTPLoginError):
    """Missing or malformed input fields."""

    status_code = 400


class RateLimited(OTPLoginError):
    """Admission denied; recoverable by waiting ``retry_after`` seconds."""

    status_code = 429

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ChallengeExpiredOrInvalid(OTPLoginError):
    """The submitted OTP is absent, expired or mismatched."""

    status_code = 401


class TokenInvalid(OTPLoginError):
    """Bad signature, wrong algorithm, expired or malformed bearer token."""

    status_code = 401


class AuthenticationRequired(OTPLoginError):
    """An anonymous session reached a protected endpoint."""

    status_code = 401


class NotFound(OTPLoginError):
    status_code = 404


class StorageUnavailable(OTPLoginError):
    """Ephemeral or durable store unreachable or timed out.

    ``outcome_unknown`` is set when a write may or may not have been
    applied before the failure (e.g. a timed-out increment).
    """

    status_code = 500

    def __init__(self, message: str, outcome_unknown: bool = False) -> None:
        super().__init__(message)
        self.outcome_unknown = outcome_unknown


class IdentityConflict(OTPLoginError):
    """Duplicate identity insert lost a race; recovered internally."""

    status_code = 409
