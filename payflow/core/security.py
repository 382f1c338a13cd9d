"""
PayFlow - Security Module
Local credentials: bcrypt password hashing and signed, time-limited JWTs.

Core Principle:
- Passwords are only ever stored as bcrypt hashes
- Tokens carry the user id (``sub``) and expire after 7 days
- Validation fails closed and never says why a token was rejected
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

logger = logging.getLogger("payflow.security")

DEV_FALLBACK_SECRET = "development-only-key-not-for-production"

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72
PASSWORD_SPECIALS = "@$!%*?&"
_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"\d"), "one digit"),
    (re.compile(f"[{re.escape(PASSWORD_SPECIALS)}]"), f"one special character ({PASSWORD_SPECIALS})"),
)


class ConfigurationError(RuntimeError):
    """Raised when the server is missing configuration it cannot run without."""


# =============================================================================
# Password Policy
# =============================================================================

def password_policy_errors(password: str) -> list[str]:
    """Return the list of unmet password rules (empty when acceptable)."""
    problems = []
    if len(password) < 8:
        problems.append("at least 8 characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        problems.append(f"at most {MAX_PASSWORD_BYTES} bytes")
    for pattern, rule in _PASSWORD_RULES:
        if not pattern.search(password):
            problems.append(rule)
    return problems


# =============================================================================
# Credential Store
# =============================================================================

class CredentialStore:
    """
    Hashes/verifies passwords and issues/validates local identity tokens.

    When no signing secret is configured, development falls back to a fixed
    key (with a loud warning) while production refuses to issue tokens.
    """

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        expires_days: int = 7,
        rounds: int = 12,
        production: bool = False,
    ):
        self.algorithm = algorithm
        self.expires = timedelta(days=expires_days)
        self.rounds = rounds
        self.production = production

        if secret:
            self._secret: Optional[str] = secret
        elif production:
            logger.error("JWT_SECRET is not set; local tokens cannot be issued in production")
            self._secret = None
        else:
            logger.warning(
                "JWT_SECRET is not set! Using an insecure development key. "
                "Never run like this in production."
            )
            self._secret = DEV_FALLBACK_SECRET

    # -------------------------------------------------------------------------
    # Passwords
    # -------------------------------------------------------------------------

    def _hash_sync(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def _verify_sync(password: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError, AttributeError):
            return False

    async def hash_password(self, password: str) -> str:
        """One-way salted hash; runs off the event loop."""
        return await asyncio.to_thread(self._hash_sync, password)

    async def verify_password(self, password: str, hashed: Optional[str]) -> bool:
        """Constant-time check. Malformed input is a failed verification, never an error."""
        if not password or not hashed:
            return False
        return await asyncio.to_thread(self._verify_sync, password, hashed)

    # -------------------------------------------------------------------------
    # Tokens
    # -------------------------------------------------------------------------

    def issue_token(self, user_id: str) -> str:
        """Signed token embedding the user id and an expiry."""
        if self._secret is None:
            raise ConfigurationError("JWT_SECRET must be set in production")

        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "iat": now,
            "exp": now + self.expires,
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def validate_token(self, token: str) -> Optional[str]:
        """Return the user id for a valid, unexpired token, otherwise None."""
        if self._secret is None or not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError:
            return None

        user_id = payload.get("sub")
        if not isinstance(user_id, str) or not user_id:
            return None
        return user_id


__all__ = [
    "CredentialStore",
    "ConfigurationError",
    "password_policy_errors",
    "MAX_PASSWORD_BYTES",
    "PASSWORD_SPECIALS",
]
