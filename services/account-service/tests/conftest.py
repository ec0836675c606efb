from __future__ import annotations

import re
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.api.errors import install_error_handlers
from app.config import Settings
from app.domain.account import Account, normalize_email, sanitize_profile_update
from app.domain.contracts import NewAccount
from app.domain.errors import DuplicateEmailError
from app.domain.service import AccountService
from app.notifications import MailMessage
from app.security.access import AccessGate
from app.security.passwords import PasswordHasher
from app.security.rate_limiter import SlidingWindowRateLimiter
from app.security.tokens import TokenService
from app.storage import LocalAvatarStore

TEST_SECRET = "test-secret-that-is-long-enough-for-hs256"
TEST_ISSUER = "accounts.test"
BASE_URL = "http://accounts.test"
SUPER_ADMIN_EMAIL = "root@acme.io"
SUPER_ADMIN_PASSWORD = "root-password"

_CONFIRM_LINK = re.compile(r"/v1/users/confirm/([A-Za-z0-9_.\-]+)")


class FakeRepository:
    """In-memory account store enforcing the same uniqueness and stripping rules as Postgres."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = threading.Lock()

    def find_by_email(self, email: str) -> Account | None:
        email = normalize_email(email)
        for account in self._accounts.values():
            if account.email == email:
                return replace(account)
        return None

    def find_by_id(self, account_id: str) -> Account | None:
        account = self._accounts.get(account_id)
        return replace(account) if account else None

    def create(self, account: NewAccount) -> Account:
        if not account.password_hash:
            raise ValueError("refusing to persist an account without a password hash")
        now = datetime.now(timezone.utc)
        with self._lock:
            email = normalize_email(account.email)
            if any(existing.email == email for existing in self._accounts.values()):
                raise DuplicateEmailError()
            record = Account(
                account_id=str(uuid.uuid4()),
                name=account.name,
                email=email,
                password_hash=account.password_hash,
                role=account.role,
                avatar_url=account.avatar_url,
                time_zone=account.time_zone,
                verified=account.verified,
                active=account.active,
                created_at=now,
                updated_at=now,
            )
            self._accounts[record.account_id] = record
        return replace(record)

    def mark_verified(self, account_id: str) -> bool:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return False
            account.verified = True
            account.active = True
        return True

    def update(self, account_id: str, fields: Mapping[str, Any]) -> Account | None:
        changes = sanitize_profile_update(fields)
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            email = changes.get("email")
            if email and any(
                other.email == email and other.account_id != account_id
                for other in self._accounts.values()
            ):
                raise DuplicateEmailError()
            for key, value in changes.items():
                setattr(account, key, value)
            account.updated_at = datetime.now(timezone.utc)
        return replace(account)

    def stored(self, account_id: str) -> Account:
        """Return the raw stored record, status flags and hash included."""
        return self._accounts[account_id]


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[MailMessage] = []
        self.fail_with: Exception | None = None

    def send(self, message: MailMessage) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)

    def last_token(self) -> str:
        match = _CONFIRM_LINK.search(self.sent[-1].html_body)
        assert match, "verification link missing from message"
        return match.group(1)


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(
        secret=TEST_SECRET,
        issuer=TEST_ISSUER,
        session_ttl_seconds=24 * 60 * 60,
        verification_ttl_seconds=15 * 60,
    )


@pytest.fixture
def avatars(tmp_path) -> LocalAvatarStore:
    return LocalAvatarStore(
        tmp_path / "uploads",
        f"{BASE_URL}/uploads",
        max_bytes=1024,
        default_name="blank-profile-pic.jpg",
    )


@pytest.fixture
def service(repository, hasher, tokens, notifier, avatars) -> AccountService:
    return AccountService(
        repository,
        hasher=hasher,
        tokens=tokens,
        notifier=notifier,
        avatars=avatars,
        public_base_url=BASE_URL,
        mail_from="no-reply@acme.io",
    )


@pytest.fixture
def super_admin_token(service) -> str:
    """Seed a verified super-admin and return its session token."""
    service.ensure_super_admin(SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD, "Root")
    return service.login(SUPER_ADMIN_EMAIL, SUPER_ADMIN_PASSWORD).token


@pytest.fixture
def app(service, tokens) -> FastAPI:
    """Build an application around the fakes, mirroring the production lifespan."""
    app = FastAPI()
    app.include_router(routes.router)
    install_error_handlers(app)
    app.state.settings = Settings(avatar_max_bytes=1024)
    app.state.account_service = service
    app.state.access_gate = AccessGate(tokens)
    app.state.rate_limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)
    return app


@pytest.fixture
def api_client(app):
    """Provide a FastAPI test client with isolated state."""
    with TestClient(app) as client:
        yield client
