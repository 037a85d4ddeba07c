"""Single-use password reset tokens: generate, attach, expire, redeem."""

import logging
import secrets
from datetime import UTC, datetime, timedelta

from app.models.user import User
from app.services.errors import InvalidTokenError
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

# secrets.token_urlsafe(32) -> 256 random bits, 43 URL-safe characters.
RESET_TOKEN_BYTES = 32


def generate_reset_token() -> str:
    return secrets.token_urlsafe(RESET_TOKEN_BYTES)


class ResetTokenManager:
    """
    Owns the reset_token / reset_token_issued_at pair on a user.

    An account holds at most one token; attaching a new one replaces the old.
    ttl=None disables expiry (tokens stay valid until redeemed).
    """

    def __init__(self, store: UserStore, ttl: timedelta | None = timedelta(hours=1)) -> None:
        self.store = store
        self.ttl = ttl

    def generate(self) -> str:
        return generate_reset_token()

    def attach(self, user: User, token: str) -> None:
        user.reset_token = token
        user.reset_token_issued_at = datetime.now(UTC)
        self.store.save(user)

    def consume(self, user: User, token: str | None = None) -> bool:
        """
        Clear the user's reset token. Returns True if a token was cleared.

        With token given the clear is conditional: a token attached meanwhile
        by another request is left in place.
        """
        if token is not None:
            return self.store.clear_reset_token(user.id, token)
        user.reset_token = None
        user.reset_token_issued_at = None
        self.store.save(user)
        return True

    def is_expired(self, user: User, now: datetime | None = None) -> bool:
        if self.ttl is None:
            return False
        issued_at = user.reset_token_issued_at
        if issued_at is None:
            return True
        if issued_at.tzinfo is None:
            # SQLite drops tzinfo; values are always written in UTC
            issued_at = issued_at.replace(tzinfo=UTC)
        return (now or datetime.now(UTC)) - issued_at > self.ttl

    def redeem(self, token: str, password_hash: str) -> User:
        """
        Swap in a new password hash and clear the token, at most once per token.

        Raises InvalidTokenError when the token is unknown, expired (it is also
        cleared), or was consumed by a concurrent request first.
        """
        user = self.store.find_by_reset_token(token)
        if user is None:
            raise InvalidTokenError()
        if self.is_expired(user):
            logger.info("Expired reset token rejected for user_id=%s", user.id)
            self.consume(user, token)
            raise InvalidTokenError()
        if not self.store.consume_reset_token(user.id, token, password_hash):
            logger.warning("Reset token for user_id=%s was already consumed", user.id)
            raise InvalidTokenError()
        return user
