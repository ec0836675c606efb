"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field

from .account import PublicAccount, Role


@dataclass(slots=True)
class RegisterAccountInput:
    """Raw registration request as submitted by a super-admin."""

    name: str
    email: str
    password: str
    confirm_password: str
    role: Role | str = Role.user
    time_zone: str = "UTC"
    avatar_url: str | None = None


@dataclass(slots=True)
class NewAccount:
    """Validated, hashed account ready to be persisted."""

    name: str
    email: str
    password_hash: str
    role: Role
    avatar_url: str
    time_zone: str
    verified: bool = False
    active: bool = False


@dataclass(slots=True)
class RegistrationResult:
    account: PublicAccount
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LoginResult:
    """Authenticated account snapshot together with its session token."""

    account: PublicAccount
    token: str
    expires_in: int
