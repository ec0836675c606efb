"""Password hashing backed by bcrypt."""

from __future__ import annotations

import logging

import bcrypt

from ..domain.errors import HashingError

logger = logging.getLogger(__name__)

# bcrypt ignores everything past the first 72 bytes of input.
_BCRYPT_MAX_BYTES = 72


def _encode(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Salted, adaptive password hashing with constant-time verification."""

    def __init__(self, rounds: int = 12) -> None:
        """Store the cost factor and prepare the hash used for absent accounts."""
        self._rounds = rounds
        self._dummy_hash = self.hash("placeholder-password")

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest with a fresh random salt embedded."""
        try:
            digest = bcrypt.hashpw(_encode(plaintext), bcrypt.gensalt(rounds=self._rounds))
        except (TypeError, ValueError) as exc:
            logger.error("bcrypt hashing failed: %s", exc)
            raise HashingError() from exc
        return digest.decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``digest``.

        Raises:
            HashingError: When ``digest`` is not a well-formed bcrypt hash.
        """
        try:
            return bcrypt.checkpw(_encode(plaintext), digest.encode("utf-8"))
        except (TypeError, ValueError) as exc:
            logger.error("stored password digest is malformed: %s", exc)
            raise HashingError() from exc

    def verify_against_dummy(self, plaintext: str) -> bool:
        """Spend one verification on a throwaway hash; always ``False``."""
        self.verify(plaintext, self._dummy_hash)
        return False
