"""Password hashing and JWT session token creation/verification."""

import re
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import bcrypt
import jwt

if TYPE_CHECKING:
    from app.core.config import Settings
    from app.models.user import User

# Bcrypt cost (rounds); 10 matches the hashes already stored by earlier deployments.
BCRYPT_ROUNDS = 10

# bcrypt only reads the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72

# Min/max lengths for password validation, shared by request schemas and services.
PASSWORD_MIN_LEN = 6
PASSWORD_MAX_LEN = 50

_BCRYPT_HASH_RE = re.compile(r"^\$2[abxy]?\$(\d{2})\$[./A-Za-z0-9]{53}$")

_TIMING_DUMMY_PASSWORD = b"keystone-timing-dummy"


@lru_cache(maxsize=None)
def _timing_dummy_hash(rounds: int) -> str:
    """Throwaway hash for one cost factor, computed once per process."""
    return bcrypt.hashpw(_TIMING_DUMMY_PASSWORD, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


class HashFormatError(ValueError):
    """Raised when a stored value is not a bcrypt hash."""


class TokenError(Exception):
    """Base class for session token verification failures."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TokenExpiredError(TokenError):
    """Signature is valid but the token is past its exp claim."""


class TokenInvalidError(TokenError):
    """Token is malformed, tampered with, or signed with another key."""


class PasswordHasher:
    """Salted one-way bcrypt hashing with a fixed work factor. Stateless apart from config."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        self.rounds = rounds
        # Hashed at construction so a failed login never pays for gensalt/hashpw
        self._dummy_hash = _timing_dummy_hash(rounds)

    @staticmethod
    def _encode(plain_password: str) -> bytes:
        return plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, plain_password: str) -> str:
        """Hash a plain-text password for storage. Empty input still yields a valid hash."""
        return bcrypt.hashpw(
            self._encode(plain_password), bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")

    def verify(self, plain_password: str, hashed: str) -> bool:
        """Verify a plain password against a stored hash. Corrupt hashes never match."""
        if not hashed or not _BCRYPT_HASH_RE.match(hashed):
            return False
        try:
            return bcrypt.checkpw(self._encode(plain_password), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    @staticmethod
    def check_format(hashed: str) -> int:
        """Return the cost factor of a bcrypt hash; raise HashFormatError if it is not one."""
        match = _BCRYPT_HASH_RE.match(hashed or "")
        if match is None:
            raise HashFormatError("Stored password hash is not a bcrypt hash")
        return int(match.group(1))

    def needs_rehash(self, hashed: str) -> bool:
        """True when the hash was produced with a different cost factor."""
        return self.check_format(hashed) != self.rounds

    def dummy_verify(self, plain_password: str) -> bool:
        """
        Run a full bcrypt check against a throwaway hash and return False.

        Called when the account does not exist so that login takes the same
        time whether or not the email is registered.
        """
        self.verify(plain_password, self._dummy_hash)
        return False


class TokenIssuer:
    """Signs and verifies stateless JWT session tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(hours=1),
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TokenIssuer":
        return cls(
            secret=settings.JWT_SECRET.get_secret_value(),
            algorithm=settings.JWT_ALGORITHM,
            ttl=timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
        )

    def issue(self, claims: dict[str, Any], ttl: timedelta | None = None) -> str:
        """Create a signed token embedding claims plus iat and exp."""
        now = datetime.now(UTC)
        payload: dict[str, Any] = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + (ttl if ttl is not None else self.ttl)
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def issue_session(self, user: "User") -> str:
        """Issue the login token for a user: sub (account id), email, role."""
        return self.issue({"sub": str(user.id), "email": user.email, "role": user.role})

    def verify(self, token: str) -> dict[str, Any]:
        """
        Decode and validate a token; return its claims.
        Raises TokenExpiredError for an expired token and TokenInvalidError otherwise.
        """
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token expired")
        except jwt.PyJWTError:
            raise TokenInvalidError("Invalid token")
