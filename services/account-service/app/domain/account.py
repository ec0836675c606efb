from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping


class Role(str, Enum):
    super_admin = "super-admin"
    admin = "admin"
    user = "user"


# Columns an account owner (or an admin acting on their behalf) may change.
PROFILE_FIELDS: frozenset[str] = frozenset({"name", "email", "avatar_url", "time_zone"})


@dataclass(slots=True)
class Account:
    """Aggregate root for a registered user account."""

    account_id: str
    name: str
    email: str
    password_hash: str
    role: Role
    avatar_url: str
    time_zone: str
    verified: bool
    active: bool
    created_at: datetime
    updated_at: datetime

    def public_view(self) -> "PublicAccount":
        """Project the account without its credential and status flags."""
        return PublicAccount(
            account_id=self.account_id,
            name=self.name,
            email=self.email,
            role=self.role,
            avatar_url=self.avatar_url,
            time_zone=self.time_zone,
            created_at=self.created_at,
        )


@dataclass(slots=True, frozen=True)
class PublicAccount:
    """Account fields that may be shown to any authenticated caller."""

    account_id: str
    name: str
    email: str
    role: Role
    avatar_url: str
    time_zone: str
    created_at: datetime


def normalize_email(email: str) -> str:
    """Return the canonical (trimmed, lower-cased) form used for lookups."""
    return email.strip().lower()


def sanitize_profile_update(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only editable profile fields from a caller-supplied partial update.

    Role, password, status flags, identifiers and anything unknown are dropped
    regardless of their value. ``None`` values are treated as "not provided".
    """
    cleaned = {
        key: value
        for key, value in fields.items()
        if key in PROFILE_FIELDS and value is not None
    }
    if "email" in cleaned:
        cleaned["email"] = normalize_email(cleaned["email"])
    return cleaned
