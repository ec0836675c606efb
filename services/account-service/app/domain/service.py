"""Account service orchestrating registration, verification, login and profile edits."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from email_validator import EmailNotValidError, validate_email

from .account import Account, PublicAccount, Role, normalize_email, sanitize_profile_update
from .contracts import LoginResult, NewAccount, RegisterAccountInput, RegistrationResult
from .errors import (
    AccountNotVerifiedError,
    AuthenticationError,
    DuplicateEmailError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from .. import metrics
from ..notifications import Notifier, verification_message
from ..security.access import AccessGate
from ..security.passwords import PasswordHasher
from ..security.tokens import SessionClaims, TokenService
from ..storage import LocalAvatarStore

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
UPLOADED_AVATAR_MESSAGE = "uploaded avatars can only be set through the avatar upload"


class AccountStore(Protocol):
    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_id(self, account_id: str) -> Account | None: ...

    def create(self, account: NewAccount) -> Account: ...

    def mark_verified(self, account_id: str) -> bool: ...

    def update(self, account_id: str, fields: Mapping[str, Any]) -> Account | None: ...


class AccountService:
    """Account lifecycle: Created(unverified, inactive) -> Verified(verified, active)."""

    def __init__(
        self,
        repository: AccountStore,
        *,
        hasher: PasswordHasher,
        tokens: TokenService,
        notifier: Notifier,
        avatars: LocalAvatarStore,
        public_base_url: str,
        mail_from: str,
    ) -> None:
        """Store the collaborators used by every workflow."""
        self._repository = repository
        self._hasher = hasher
        self._tokens = tokens
        self._gate = AccessGate(tokens)
        self._notifier = notifier
        self._avatars = avatars
        self._public_base_url = public_base_url.rstrip("/")
        self._mail_from = mail_from

    def register_account(
        self, creator_token: str | None, payload: RegisterAccountInput
    ) -> RegistrationResult:
        """Create an unverified account on behalf of a super-admin and mail its verification link."""
        try:
            creator = self._gate.authenticate(creator_token)
        except UnauthenticatedError as exc:
            raise ForbiddenError("Only super admins can create accounts") from exc
        if creator.role is not Role.super_admin:
            logger.info("account creation refused for %s with role %s", creator.account_id, creator.role.value)
            raise ForbiddenError("Only super admins can create accounts")

        email = normalize_email(payload.email)
        if self._repository.find_by_email(email) is not None:
            raise DuplicateEmailError()

        if payload.password != payload.confirm_password:
            raise ValidationError("Passwords do not match!")
        role = _parse_role(payload.role)
        name = _validate_name(payload.name)
        email = _validate_email(email)
        time_zone = _validate_time_zone(payload.time_zone)
        if not payload.password:
            raise ValidationError("password is required")
        if payload.avatar_url and self._avatars.owns(payload.avatar_url):
            raise ValidationError(UPLOADED_AVATAR_MESSAGE)

        account = self._repository.create(
            NewAccount(
                name=name,
                email=email,
                password_hash=self._hasher.hash(payload.password),
                role=role,
                avatar_url=payload.avatar_url or self._avatars.default_url,
                time_zone=time_zone,
            )
        )
        metrics.REGISTRATIONS.inc()
        logger.info("account %s created by %s", account.account_id, creator.account_id)

        warnings: list[str] = []
        token = self._tokens.issue_verification(account.email)
        message = verification_message(
            sender=self._mail_from,
            name=account.name,
            email=account.email,
            link=f"{self._public_base_url}/v1/users/confirm/{token}",
        )
        try:
            self._notifier.send(message)
        except Exception:
            metrics.NOTIFICATION_FAILURES.inc()
            logger.exception("verification email for account %s was not delivered", account.account_id)
            warnings.append("verification email could not be sent")

        return RegistrationResult(account=account.public_view(), warnings=warnings)

    def verify_email(self, token: str) -> PublicAccount:
        """Activate the account bound to a verification token; repeat calls are no-ops."""
        claims = self._tokens.verify_verification(token)
        account = self._repository.find_by_email(claims.email)
        if account is None:
            raise NotFoundError("Invalid verification token!")
        if account.verified:
            logger.info("account %s already verified", account.account_id)
            return account.public_view()

        if not self._repository.mark_verified(account.account_id):
            raise NotFoundError("Invalid verification token!")
        metrics.VERIFICATIONS.inc()
        logger.info("account %s verified", account.account_id)
        account.verified = True
        account.active = True
        return account.public_view()

    def login(self, email: str, password: str) -> LoginResult:
        """Check credentials and issue a session token.

        Unknown emails and wrong passwords fail identically, each after one
        bcrypt verification. Only once the password has matched does an
        unverified account get its own error.
        """
        account = self._repository.find_by_email(email)
        if account is None:
            self._hasher.verify_against_dummy(password)
            metrics.LOGIN_ATTEMPTS.labels(outcome="invalid_credentials").inc()
            raise AuthenticationError()
        if not self._hasher.verify(password, account.password_hash):
            metrics.LOGIN_ATTEMPTS.labels(outcome="invalid_credentials").inc()
            raise AuthenticationError()
        if not account.verified:
            metrics.LOGIN_ATTEMPTS.labels(outcome="not_verified").inc()
            raise AccountNotVerifiedError()

        token = self._tokens.issue_session(SessionClaims.from_account(account))
        metrics.LOGIN_ATTEMPTS.labels(outcome="success").inc()
        logger.info("account %s logged in", account.account_id)
        return LoginResult(
            account=account.public_view(),
            token=token,
            expires_in=self._tokens.session_ttl_seconds,
        )

    def get_profile(self, account_id: str) -> PublicAccount:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise NotFoundError("User not found!")
        return account.public_view()

    def update_profile(
        self, actor_id: str, target_id: str, fields: Mapping[str, Any]
    ) -> PublicAccount:
        """Apply profile edits the caller was already authorised to make.

        Role, password and status flags are stripped by the store whatever
        the caller sends.
        """
        changes = sanitize_profile_update(fields)
        if "name" in changes:
            changes["name"] = _validate_name(changes["name"])
        if "email" in changes:
            changes["email"] = _validate_email(changes["email"])
        if "time_zone" in changes:
            changes["time_zone"] = _validate_time_zone(changes["time_zone"])
        if "avatar_url" in changes and self._avatars.owns(changes["avatar_url"]):
            # A stored upload may only be kept, never borrowed from another account.
            current = self._repository.find_by_id(target_id)
            if current is None:
                raise NotFoundError("User not found!")
            if current.avatar_url != changes["avatar_url"]:
                raise ValidationError(UPLOADED_AVATAR_MESSAGE)

        account = self._repository.update(target_id, changes)
        if account is None:
            raise NotFoundError("User not found!")
        logger.info(
            "account %s updated by %s: %s", target_id, actor_id, ", ".join(sorted(changes)) or "no changes"
        )
        return account.public_view()

    def replace_avatar(self, target_id: str, content: bytes, content_type: str) -> PublicAccount:
        """Store a new profile picture and drop the one it supersedes."""
        existing = self._repository.find_by_id(target_id)
        if existing is None:
            raise NotFoundError("User not found!")

        url = self._avatars.save(content, content_type)
        account = self._repository.update(target_id, {"avatar_url": url})
        if account is None:
            self._avatars.delete(url)
            raise NotFoundError("User not found!")
        if existing.avatar_url != url:
            self._avatars.delete(existing.avatar_url)
        return account.public_view()

    def ensure_super_admin(self, email: str, password: str, name: str) -> PublicAccount | None:
        """Seed the first super-admin, already verified, if it does not exist yet."""
        if self._repository.find_by_email(email) is not None:
            return None
        try:
            account = self._repository.create(
                NewAccount(
                    name=_validate_name(name),
                    email=_validate_email(normalize_email(email)),
                    password_hash=self._hasher.hash(password),
                    role=Role.super_admin,
                    avatar_url=self._avatars.default_url,
                    time_zone="UTC",
                    verified=True,
                    active=True,
                )
            )
        except DuplicateEmailError:
            logger.info("super-admin %s was seeded concurrently", email)
            return None
        logger.info("seeded super-admin account %s", account.account_id)
        return account.public_view()


def _parse_role(value: Role | str) -> Role:
    try:
        return Role(value)
    except ValueError as exc:
        raise ValidationError(f"unknown role: {value}") from exc


def _validate_name(value: str) -> str:
    name = value.strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"name must be at most {MAX_NAME_LENGTH} characters")
    return name


def _validate_email(value: str) -> str:
    try:
        result = validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"invalid email: {exc}") from exc
    return normalize_email(result.normalized)


def _validate_time_zone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise ValidationError(f"unknown time zone: {value}") from exc
    return value
