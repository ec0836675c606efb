"""Database repository for account records."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, Role, normalize_email, sanitize_profile_update
from .domain.contracts import NewAccount
from .domain.errors import DuplicateEmailError

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id UUID PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    password_hash TEXT NOT NULL CHECK (password_hash <> ''),
    role TEXT NOT NULL CHECK (role IN ('super-admin', 'admin', 'user')),
    avatar_url TEXT NOT NULL,
    time_zone TEXT NOT NULL,
    verified BOOLEAN NOT NULL DEFAULT FALSE,
    active BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT accounts_email_key UNIQUE (email)
)
"""

_COLUMNS = (
    "account_id::text, name, email, password_hash, role, avatar_url, time_zone, "
    "verified, active, created_at, updated_at"
)


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class AccountRepository:
    """Postgres-backed account persistence; the UNIQUE email constraint is authoritative."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def ensure_schema(self) -> None:
        """Create the accounts table when it does not exist yet."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
                conn.commit()

    def find_by_email(self, email: str) -> Account | None:
        """Return the full account record (hash included) for ``email``."""
        return self._fetch_one("email = %s", (normalize_email(email),))

    def find_by_id(self, account_id: str) -> Account | None:
        if not _is_uuid(account_id):
            return None
        return self._fetch_one("account_id = %s", (account_id,))

    def create(self, account: NewAccount) -> Account:
        """Insert ``account``; a concurrent duplicate surfaces as ``DuplicateEmailError``."""
        if not account.password_hash:
            raise ValueError("refusing to persist an account without a password hash")

        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (account_id, name, email, password_hash, role, avatar_url,
                                              time_zone, verified, active, created_at, updated_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_COLUMNS}
                        """,
                        (
                            account_id,
                            account.name,
                            normalize_email(account.email),
                            account.password_hash,
                            account.role.value,
                            account.avatar_url,
                            account.time_zone,
                            account.verified,
                            account.active,
                            now,
                            now,
                        ),
                    )
                except errors.UniqueViolation as exc:
                    conn.rollback()
                    logger.info("duplicate email rejected by constraint")
                    raise DuplicateEmailError() from exc
                record = cur.fetchone()
                conn.commit()
        return self._map_record(record)

    def mark_verified(self, account_id: str) -> bool:
        """Flip ``verified`` and ``active`` together; ``False`` if no such account."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE accounts
                    SET verified = TRUE, active = TRUE, updated_at = NOW()
                    WHERE account_id = %s
                    """,
                    (account_id,),
                )
                updated = cur.rowcount
                conn.commit()
        return updated > 0

    def update(self, account_id: str, fields: Mapping[str, Any]) -> Account | None:
        """Apply the editable subset of ``fields``; protected columns never reach SQL."""
        if not _is_uuid(account_id):
            return None
        changes = sanitize_profile_update(fields)
        if not changes:
            return self.find_by_id(account_id)

        assignments = ", ".join(f"{column} = %s" for column in changes)
        params: list[Any] = [*changes.values(), datetime.now(timezone.utc), account_id]
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        f"""
                        UPDATE accounts
                        SET {assignments}, updated_at = %s
                        WHERE account_id = %s
                        RETURNING {_COLUMNS}
                        """,
                        params,
                    )
                except errors.UniqueViolation as exc:
                    conn.rollback()
                    raise DuplicateEmailError() from exc
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row) if row else None

    def _fetch_one(self, where: str, params: tuple[Any, ...]) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM accounts WHERE {where}", params)
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            name=row[1],
            email=row[2],
            password_hash=row[3],
            role=Role(row[4]),
            avatar_url=row[5],
            time_zone=row[6],
            verified=row[7],
            active=row[8],
            created_at=row[9],
            updated_at=row[10],
        )
