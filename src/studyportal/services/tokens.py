"""Signed, time-limited login tokens.

Tokens are self-contained: there is no server-side token table. A token is the
standard base64 encoding of ``email:issued_at:nonce:signature`` where
``issued_at`` is epoch milliseconds, ``nonce`` is 16 random bytes in hex and
``signature`` is the hex HMAC-SHA256 of ``email:issued_at:nonce``.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

logger = logging.getLogger(__name__)

NONCE_BYTES = 16
DEFAULT_TTL = timedelta(hours=24)


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenPayload:
    """Verified contents of a login token."""

    email: str
    issued_at: int  # epoch milliseconds


class TokenCodec:
    """Issues and verifies login tokens with an injected secret."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta = DEFAULT_TTL,
        now: Callable[[], int] = _now_ms,
    ) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode()
        self.ttl = ttl
        self._now = now

    def _sign(self, email: str, issued_at: str, nonce: str) -> str:
        message = f"{email}:{issued_at}:{nonce}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def generate(self, email: str) -> str:
        """Create a token binding ``email`` to the current time."""
        issued_at = str(self._now())
        nonce = secrets.token_hex(NONCE_BYTES)
        signature = self._sign(email, issued_at, nonce)
        raw = f"{email}:{issued_at}:{nonce}:{signature}"
        return base64.b64encode(raw.encode()).decode("ascii")

    def verify(self, token: str) -> TokenPayload | None:
        """Return the payload of a valid token, or None.

        Never raises: malformed, expired and tampered tokens all yield None.
        """
        try:
            decoded = base64.b64decode(token.encode("ascii"), validate=True).decode()
        except (binascii.Error, UnicodeError, ValueError, AttributeError) as e:
            logger.debug(f"Token decode failed: {e!r}")
            return None

        parts = decoded.split(":")
        if len(parts) != 4:
            logger.debug("Token rejected: wrong number of fields")
            return None
        email, issued_at, nonce, signature = parts

        try:
            issued_ms = int(issued_at)
        except ValueError:
            logger.debug("Token rejected: bad timestamp")
            return None

        if self._now() - issued_ms > self.ttl.total_seconds() * 1000:
            logger.debug(f"Token rejected: expired for {email}")
            return None

        expected = self._sign(email, issued_at, nonce)
        if not hmac.compare_digest(expected.encode(), signature.encode()):
            logger.debug(f"Token rejected: signature mismatch for {email}")
            return None

        return TokenPayload(email=email, issued_at=issued_ms)
