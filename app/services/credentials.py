"""
Credential operations: register, login, forgot-password, reset-password.

Storage and mail are reached only through the UserStore and Mailer
collaborators passed to CredentialService, so each can be replaced in tests.
"""

import html
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from app.core.security import (
    BCRYPT_MAX_BYTES,
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    PasswordHasher,
    TokenIssuer,
)
from app.models.user import User
from app.services.errors import (
    AccountNotFoundError,
    ConflictError,
    InvalidCredentialsError,
    MailError,
    PersistenceError,
    ValidationError,
)
from app.services.mailer import Mailer
from app.services.reset_tokens import ResetTokenManager
from app.services.user_store import UserStore

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "USER"

RESET_EMAIL_SUBJECT = "Reset password"
RESET_EMAIL_TEXT = (
    "This email is to reset your password. If you haven't requested it, ignore this email.\n\n"
    "Reset your password here: {link}"
)
RESET_EMAIL_HTML = (
    "<p>This email is to reset your password. "
    "If you haven't requested it, ignore this email.</p>"
    "<p>Click <a href='{link}'>here</a> to reset your password.</p>"
)


@dataclass(frozen=True)
class LoginResult:
    user: User
    token: str


def validate_new_password(password: str, confirm_password: str | None) -> None:
    """Length bounds and confirmation match; raises ValidationError."""
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        raise ValidationError(
            f"Password must be between {PASSWORD_MIN_LEN} and {PASSWORD_MAX_LEN} characters"
        )
    # Beyond 72 bytes bcrypt ignores the rest, so two different passwords would match
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    if confirm_password is not None and password != confirm_password:
        raise ValidationError("Passwords do not match")


class CredentialService:
    """Orchestrates the credential lifecycle. Holds no per-request state."""

    def __init__(
        self,
        store: UserStore,
        mailer: Mailer,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        reset_tokens: ResetTokenManager,
        reset_url_base: str,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.hasher = hasher
        self.issuer = issuer
        self.reset_tokens = reset_tokens
        self.reset_url_base = reset_url_base.rstrip("/")

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        store: UserStore,
        mailer: Mailer,
    ) -> "CredentialService":
        ttl = (
            timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
            if settings.RESET_TOKEN_EXPIRE_MINUTES > 0
            else None
        )
        return cls(
            store=store,
            mailer=mailer,
            hasher=PasswordHasher(rounds=settings.BCRYPT_ROUNDS),
            issuer=TokenIssuer.from_settings(settings),
            reset_tokens=ResetTokenManager(store, ttl=ttl),
            reset_url_base=f"{settings.ROOT_DOMAIN}{settings.API_V1_PREFIX}/auth/reset-password-form",
        )

    def register(
        self,
        email: str,
        password: str,
        name: str | None = None,
        confirm_password: str | None = None,
    ) -> User:
        """Create an inactive USER account. Raises ConflictError if the email is taken."""
        validate_new_password(password, confirm_password)
        if self.store.find_by_email(email) is not None:
            raise ConflictError("User already exists")
        user = self.store.create(
            {
                "email": email,
                "name": name or email,
                "password_hash": self.hasher.hash(password),
                "role": DEFAULT_ROLE,
                "active": False,
                "authenticated": False,
            }
        )
        logger.info("Registered user_id=%s", user.id)
        return user

    def login(self, email: str, password: str) -> LoginResult:
        """Check credentials and issue a session token. Unknown email and bad password look the same."""
        user = self.store.find_by_email(email)
        if user is None:
            self.hasher.dummy_verify(password)
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentialsError()
        token = self.issuer.issue_session(user)
        logger.info("Login succeeded for user_id=%s", user.id)
        return LoginResult(user=user, token=token)

    def forgot_password(self, email: str) -> None:
        """
        Attach a fresh reset token and mail the reset link.

        If the mail cannot be sent the token is cleared again and MailError
        propagates, so the caller never reports success without a mail.
        """
        user = self.store.find_by_email(email)
        if user is None:
            raise AccountNotFoundError()

        token = self.reset_tokens.generate()
        self.reset_tokens.attach(user, token)

        link = f"{self.reset_url_base}/{token}"
        try:
            self.mailer.send(
                to=user.email,
                subject=RESET_EMAIL_SUBJECT,
                text=RESET_EMAIL_TEXT.format(link=link),
                html=RESET_EMAIL_HTML.format(link=html.escape(link, quote=True)),
            )
        except MailError:
            logger.error("Reset email failed for user_id=%s; withdrawing token", user.id)
            try:
                self.reset_tokens.consume(user, token)
            except PersistenceError:
                logger.exception("Could not withdraw reset token for user_id=%s", user.id)
            raise
        logger.info("Reset email sent for user_id=%s", user.id)

    def reset_password(self, token: str, new_password: str, confirm_password: str) -> User:
        """Redeem a reset token once and set the new password."""
        validate_new_password(new_password, confirm_password)
        user = self.reset_tokens.redeem(token, self.hasher.hash(new_password))
        logger.info("Password reset for user_id=%s", user.id)
        return user
