"""Tests for OTP generation and the challenge lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from otp_login.auth import otp as otp_module
from otp_login.auth.otp import OTPChallenge, OTPGenerator


class SequenceGenerator(OTPGenerator):
    """Hands out predetermined codes in order."""

    def __init__(self, *codes: str) -> None:
        super().__init__()
        self._codes = iter(codes)

    def next(self) -> str:
        return next(self._codes)


PHONE = "+1234567890"


# ── OTPGenerator ─────────────────────────────────────────

def test_generator_produces_four_digit_codes():
    generator = OTPGenerator()
    for _ in range(200):
        code = generator.next()
        assert len(code) == 4
        assert code.isdigit()


def test_generator_uses_csprng_and_keeps_leading_zeros(monkeypatch):
    bounds: list[int] = []

    def fake_randbelow(n: int) -> int:
        bounds.append(n)
        return 7

    monkeypatch.setattr(otp_module.secrets, "randbelow", fake_randbelow)

    assert OTPGenerator().next() == "0007"
    assert bounds == [10_000]


# ── OTPChallenge ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_verify_accepts_issued_code(store):
    challenge = OTPChallenge(store, SequenceGenerator("4321"))

    code = await challenge.issue(PHONE)

    assert code == "4321"
    assert await challenge.verify(PHONE, "4321") is True


@pytest.mark.asyncio
async def test_code_is_stored_under_phone_number(store):
    challenge = OTPChallenge(store, SequenceGenerator("4321"))
    await challenge.issue(PHONE)

    assert await store.get_hash(PHONE) == {"otp": "4321"}


@pytest.mark.asyncio
async def test_new_issue_invalidates_previous_code(store):
    challenge = OTPChallenge(store, SequenceGenerator("1111", "2222"))

    await challenge.issue(PHONE)
    await challenge.issue(PHONE)

    assert await challenge.verify(PHONE, "1111") is False
    assert await challenge.verify(PHONE, "2222") is True


@pytest.mark.asyncio
async def test_verify_without_challenge_fails(store):
    challenge = OTPChallenge(store)
    assert await challenge.verify(PHONE, "0000") is False


@pytest.mark.asyncio
async def test_challenge_expires_after_ttl(store, clock):
    challenge = OTPChallenge(store, SequenceGenerator("1111", "2222"), ttl_seconds=120)

    await challenge.issue(PHONE)
    clock.advance(119)
    assert await challenge.verify(PHONE, "1111") is True

    await challenge.issue(PHONE)
    clock.advance(120)
    assert await challenge.verify(PHONE, "2222") is False


@pytest.mark.asyncio
async def test_mismatch_keeps_pending_code(store):
    challenge = OTPChallenge(store, SequenceGenerator("5555"))
    await challenge.issue(PHONE)

    assert await challenge.verify(PHONE, "5556") is False
    assert await challenge.verify(PHONE, "5555") is True


@pytest.mark.asyncio
async def test_code_is_single_use(store):
    challenge = OTPChallenge(store, SequenceGenerator("9876"))
    await challenge.issue(PHONE)

    assert await challenge.verify(PHONE, "9876") is True
    assert await challenge.verify(PHONE, "9876") is False


@pytest.mark.asyncio
async def test_replay_allowed_when_single_use_disabled(store, clock):
    challenge = OTPChallenge(store, SequenceGenerator("9876"), single_use=False)
    await challenge.issue(PHONE)

    assert await challenge.verify(PHONE, "9876") is True
    assert await challenge.verify(PHONE, "9876") is True
    assert await challenge.verify(PHONE, "") is False

    clock.advance(120)
    assert await challenge.verify(PHONE, "9876") is False


@pytest.mark.asyncio
async def test_concurrent_verifications_consume_once(store):
    challenge = OTPChallenge(store, SequenceGenerator("2468"))
    await challenge.issue(PHONE)

    results = await asyncio.gather(*(challenge.verify(PHONE, "2468") for _ in range(5)))

    assert sorted(results) == [False, False, False, False, True]


@pytest.mark.asyncio
async def test_matches_does_not_consume(store):
    challenge = OTPChallenge(store, SequenceGenerator("2468"))
    await challenge.issue(PHONE)

    assert await challenge.matches(PHONE, "2468") is True
    assert await challenge.matches(PHONE, "1357") is False
    assert await challenge.verify(PHONE, "2468") is True
    assert await challenge.matches(PHONE, "2468") is False
