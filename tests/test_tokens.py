"""Tests for bearer token issuance and validation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from otp_login.auth.tokens import TokenIssuer, TokenValidator
from otp_login.errors import TokenInvalid

TEST_SECRET = "test-secret-that-is-at-least-32-bytes-long"


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET)


@pytest.fixture
def validator() -> TokenValidator:
    return TokenValidator(TEST_SECRET)


def _claims(**overrides) -> dict:
    now = datetime.now(UTC)
    claims = {
        "sub": "42",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=1)).timestamp()),
    }
    claims.update(overrides)
    return {k: v for k, v in claims.items() if v is not None}


def test_issued_token_validates(issuer, validator):
    issued = issuer.issue(42)

    claims = validator.verify(issued.token)

    assert claims.subject == 42
    assert claims.issued_at == issued.issued_at
    assert claims.expires_at == issued.expires_at
    assert issued.expires_at - issued.issued_at == timedelta(hours=48)


def test_custom_ttl(issuer, validator):
    issued = issuer.issue(7, ttl=timedelta(minutes=5))
    assert validator.verify(issued.token).expires_at - issued.issued_at == timedelta(minutes=5)


def test_expired_token_rejected(validator):
    issued_long_ago = TokenIssuer(
        TEST_SECRET, now=lambda: datetime.now(UTC) - timedelta(hours=49)
    )
    token = issued_long_ago.issue(42).token

    with pytest.raises(TokenInvalid, match="expired"):
        validator.verify(token)


def test_wrong_secret_rejected(validator):
    token = TokenIssuer("another-secret-that-is-also-32-bytes-long").issue(42).token
    with pytest.raises(TokenInvalid):
        validator.verify(token)


def test_tampered_payload_rejected(issuer, validator):
    header, _, signature = issuer.issue(42).token.split(".")
    forged_payload = jwt.encode(_claims(sub="1"), TEST_SECRET, algorithm="HS256").split(".")[1]

    with pytest.raises(TokenInvalid):
        validator.verify(f"{header}.{forged_payload}.{signature}")


def test_unsigned_token_rejected(validator):
    token = jwt.encode(_claims(), "", algorithm="none")
    with pytest.raises(TokenInvalid):
        validator.verify(token)


def test_other_hmac_algorithm_rejected(validator):
    token = jwt.encode(_claims(), TEST_SECRET, algorithm="HS512")
    with pytest.raises(TokenInvalid):
        validator.verify(token)


def test_missing_expiry_rejected(validator):
    token = jwt.encode(_claims(exp=None), TEST_SECRET, algorithm="HS256")
    with pytest.raises(TokenInvalid):
        validator.verify(token)


def test_non_numeric_subject_rejected(validator):
    token = jwt.encode(_claims(sub="alice"), TEST_SECRET, algorithm="HS256")
    with pytest.raises(TokenInvalid, match="subject"):
        validator.verify(token)


def test_garbage_rejected(validator):
    with pytest.raises(TokenInvalid):
        validator.verify("not-a-token")
