"""Password hashing.

New hashes are bcrypt with a per-student salt. The password is first run
through HMAC-SHA256 keyed with the application secret, which keeps the
bcrypt input under its 72 byte limit and adds a pepper.

Hashes written by the previous scheme (SHA-256 of ``password + secret``, no
salt) are still accepted and reported by ``needs_rehash`` so they can be
upgraded on the next successful login.
"""

import hashlib
import hmac
import re

import bcrypt

LEGACY_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
MIN_PASSWORD_LENGTH = 8


def legacy_password_hash(password: str, secret: str) -> str:
    """Unsalted SHA-256 hash of ``password + secret``."""
    return hashlib.sha256(f"{password}{secret}".encode()).hexdigest()


def is_legacy_hash(stored: str) -> bool:
    return bool(LEGACY_HASH_RE.match(stored))


class PasswordHasher:
    """Hashes and verifies passwords with an injected secret."""

    def __init__(self, secret: str, rounds: int = 12) -> None:
        self._secret = secret
        self.rounds = rounds

    def _pepper(self, password: str) -> bytes:
        return hmac.new(self._secret.encode(), password.encode(), hashlib.sha256).hexdigest().encode()

    def hash(self, password: str) -> str:
        """Return an opaque hash string suitable for storage."""
        hashed = bcrypt.hashpw(self._pepper(password), bcrypt.gensalt(rounds=self.rounds))
        return hashed.decode("utf-8")

    def verify(self, password: str, stored: str | None) -> bool:
        """Check ``password`` against a stored hash of either scheme."""
        if not stored:
            return False

        if is_legacy_hash(stored):
            candidate = legacy_password_hash(password, self._secret)
            return hmac.compare_digest(candidate, stored)

        try:
            return bcrypt.checkpw(self._pepper(password), stored.encode("utf-8"))
        except ValueError:
            # Not a bcrypt hash either
            return False

    def needs_rehash(self, stored: str | None) -> bool:
        return bool(stored) and is_legacy_hash(stored)  # type: ignore[arg-type]
