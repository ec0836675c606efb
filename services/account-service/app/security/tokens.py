"""Utilities for issuing and validating application JWTs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Union

import jwt

from ..config import Settings
from ..domain.account import Account, Role
from ..domain.errors import InvalidTokenError

SESSION_KIND = "session"
VERIFICATION_KIND = "verification"


@dataclass(slots=True, frozen=True)
class SessionClaims:
    """Identity snapshot carried by a session token."""

    account_id: str
    name: str
    avatar_url: str
    email: str
    role: Role
    time_zone: str

    @classmethod
    def from_account(cls, account: Account) -> "SessionClaims":
        return cls(
            account_id=account.account_id,
            name=account.name,
            avatar_url=account.avatar_url,
            email=account.email,
            role=account.role,
            time_zone=account.time_zone,
        )


@dataclass(slots=True, frozen=True)
class VerificationClaims:
    """Single-purpose claim binding a token to one mailbox."""

    email: str


TokenClaims = Union[SessionClaims, VerificationClaims]


class TokenService:
    """Issue and verify HS256 tokens tagged with an explicit ``kind`` claim."""

    def __init__(
        self,
        *,
        secret: str,
        issuer: str,
        session_ttl_seconds: int,
        verification_ttl_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Store the signing material and expiry windows used for every token."""
        self._secret = secret
        self._issuer = issuer
        self._session_ttl = session_ttl_seconds
        self._verification_ttl = verification_ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            session_ttl_seconds=settings.session_ttl_seconds,
            verification_ttl_seconds=settings.verification_ttl_seconds,
        )

    @property
    def session_ttl_seconds(self) -> int:
        return self._session_ttl

    def issue_session(self, claims: SessionClaims) -> str:
        """Create a signed session token for an authenticated account."""
        payload: dict[str, Any] = {
            "sub": claims.account_id,
            "name": claims.name,
            "avatar_url": claims.avatar_url,
            "email": claims.email,
            "role": claims.role.value,
            "time_zone": claims.time_zone,
        }
        return self._encode(SESSION_KIND, payload, self._session_ttl)

    def issue_verification(self, email: str) -> str:
        """Create a short-lived token proving ownership of ``email`` once clicked."""
        return self._encode(VERIFICATION_KIND, {"email": email}, self._verification_ttl)

    def verify(self, token: str) -> TokenClaims:
        """Decode ``token`` and return the claims matching its ``kind``.

        Raises:
            InvalidTokenError: When the signature, issuer, expiry, kind or claim set is invalid.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                issuer=self._issuer,
                # Expiry is checked below against the same clock that issued the token.
                options={"require": ["exp", "iat", "iss"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as exc:
            raise InvalidTokenError() from exc
        try:
            expires_at = float(payload["exp"])
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError() from exc
        if expires_at <= self._clock():
            raise InvalidTokenError("token has expired")

        kind = payload.get("kind")
        try:
            if kind == SESSION_KIND:
                return SessionClaims(
                    account_id=payload["sub"],
                    name=payload["name"],
                    avatar_url=payload["avatar_url"],
                    email=payload["email"],
                    role=Role(payload["role"]),
                    time_zone=payload["time_zone"],
                )
            if kind == VERIFICATION_KIND:
                return VerificationClaims(email=payload["email"])
        except (KeyError, ValueError) as exc:
            raise InvalidTokenError() from exc
        raise InvalidTokenError()

    def verify_session(self, token: str) -> SessionClaims:
        claims = self.verify(token)
        if not isinstance(claims, SessionClaims):
            raise InvalidTokenError()
        return claims

    def verify_verification(self, token: str) -> VerificationClaims:
        claims = self.verify(token)
        if not isinstance(claims, VerificationClaims):
            raise InvalidTokenError("invalid verification token")
        return claims

    def _encode(self, kind: str, claims: dict[str, Any], ttl: int) -> str:
        now = int(self._clock())
        payload = {
            **claims,
            "kind": kind,
            "iss": self._issuer,
            "iat": now,
            "exp": now + ttl,
        }
        # PyJWT returns str for HS256 even in PyJWT>=2
        return jwt.encode(payload, self._secret, algorithm="HS256")
