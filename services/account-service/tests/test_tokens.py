from __future__ import annotations

import time

import jwt
import pytest

from app.config import Settings
from app.domain.account import Role
from app.domain.errors import InvalidTokenError
from app.security.tokens import SessionClaims, TokenService, VerificationClaims

from conftest import TEST_ISSUER, TEST_SECRET


def _claims() -> SessionClaims:
    return SessionClaims(
        account_id="3f1c2a5e-2d0b-4a57-9c35-2d6f0d1b4e11",
        name="Alice",
        avatar_url="http://accounts.test/uploads/blank-profile-pic.jpg",
        email="alice@x.com",
        role=Role.user,
        time_zone="Europe/Berlin",
    )


def _tamper(token: str) -> str:
    header_payload, signature = token.rsplit(".", 1)
    flipped = "A" if signature[0] != "A" else "B"
    return f"{header_payload}.{flipped}{signature[1:]}"


def test_session_token_round_trips_claims(tokens):
    token = tokens.issue_session(_claims())

    assert tokens.verify(token) == _claims()
    assert tokens.verify_session(token) == _claims()


def test_session_token_carries_kind_and_expiry(tokens):
    token = tokens.issue_session(_claims())
    payload = jwt.decode(token, TEST_SECRET, algorithms=["HS256"], issuer=TEST_ISSUER)

    assert payload["kind"] == "session"
    assert payload["sub"] == _claims().account_id
    assert payload["exp"] - payload["iat"] == 24 * 60 * 60


def test_verification_token_only_binds_email(tokens):
    token = tokens.issue_verification("alice@x.com")
    payload = jwt.decode(token, TEST_SECRET, algorithms=["HS256"], issuer=TEST_ISSUER)

    assert tokens.verify(token) == VerificationClaims(email="alice@x.com")
    assert payload["kind"] == "verification"
    assert payload["exp"] - payload["iat"] == 15 * 60
    assert "role" not in payload


def test_tokens_of_one_kind_are_rejected_as_the_other(tokens):
    session = tokens.issue_session(_claims())
    verification = tokens.issue_verification("alice@x.com")

    with pytest.raises(InvalidTokenError):
        tokens.verify_verification(session)
    with pytest.raises(InvalidTokenError):
        tokens.verify_session(verification)


def test_tampered_signature_is_rejected(tokens):
    token = tokens.issue_session(_claims())

    with pytest.raises(InvalidTokenError):
        tokens.verify(_tamper(token))


def test_expiry_follows_the_injected_clock():
    now = [1_000_000.0]
    service = TokenService(
        secret=TEST_SECRET,
        issuer=TEST_ISSUER,
        session_ttl_seconds=60,
        verification_ttl_seconds=30,
        clock=lambda: now[0],
    )
    token = service.issue_verification("alice@x.com")

    now[0] += 29
    assert service.verify(token) == VerificationClaims(email="alice@x.com")

    now[0] += 1
    with pytest.raises(InvalidTokenError) as excinfo:
        service.verify(token)
    assert excinfo.value.message == "token has expired"


def test_token_from_the_past_is_rejected_by_wall_clock(tokens):
    issued_yesterday = TokenService(
        secret=TEST_SECRET,
        issuer=TEST_ISSUER,
        session_ttl_seconds=24 * 60 * 60,
        verification_ttl_seconds=15 * 60,
        clock=lambda: time.time() - 24 * 60 * 60,
    )

    with pytest.raises(InvalidTokenError) as excinfo:
        tokens.verify(issued_yesterday.issue_verification("alice@x.com"))
    assert excinfo.value.message == "token has expired"


def test_foreign_secret_and_issuer_are_rejected(tokens):
    other_secret = TokenService(
        secret="another-secret-that-is-long-enough-too",
        issuer=TEST_ISSUER,
        session_ttl_seconds=60,
        verification_ttl_seconds=30,
    )
    other_issuer = TokenService(
        secret=TEST_SECRET,
        issuer="someone.else",
        session_ttl_seconds=60,
        verification_ttl_seconds=30,
    )

    with pytest.raises(InvalidTokenError):
        tokens.verify(other_secret.issue_session(_claims()))
    with pytest.raises(InvalidTokenError):
        tokens.verify(other_issuer.issue_session(_claims()))


def test_untagged_or_malformed_tokens_are_rejected(tokens):
    now = int(time.time())
    untagged = jwt.encode(
        {"email": "alice@x.com", "iss": TEST_ISSUER, "iat": now, "exp": now + 60},
        TEST_SECRET,
        algorithm="HS256",
    )
    bad_role = jwt.encode(
        {
            "kind": "session",
            "sub": "id",
            "name": "n",
            "avatar_url": "a",
            "email": "e@x.com",
            "role": "root",
            "time_zone": "UTC",
            "iss": TEST_ISSUER,
            "iat": now,
            "exp": now + 60,
        },
        TEST_SECRET,
        algorithm="HS256",
    )

    non_numeric_expiry = jwt.encode(
        {"kind": "verification", "email": "alice@x.com", "iss": TEST_ISSUER, "iat": now, "exp": "later"},
        TEST_SECRET,
        algorithm="HS256",
    )

    for token in (untagged, bad_role, non_numeric_expiry, "not.a.jwt", ""):
        with pytest.raises(InvalidTokenError):
            tokens.verify(token)


def test_settings_require_verification_to_expire_first():
    with pytest.raises(ValueError):
        Settings(session_ttl_seconds=600, verification_ttl_seconds=600)

    settings = Settings(session_ttl_seconds=600, verification_ttl_seconds=60)
    service = TokenService.from_settings(settings)
    assert service.session_ttl_seconds == 600
