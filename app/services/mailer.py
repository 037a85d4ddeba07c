"""Outbound mail: Mailer interface and the SMTP implementation used in production."""

import logging
import smtplib
import ssl
import time
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import TYPE_CHECKING, Protocol

from app.services.errors import MailError

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

# Port conventionally used for implicit TLS (SMTPS).
SMTPS_PORT = 465


def _is_transport_failure(error: OSError) -> bool:
    """True for errors reaching or logging into the server, as opposed to a rejected message."""
    if not isinstance(error, smtplib.SMTPException):
        return True
    return isinstance(
        error,
        (
            smtplib.SMTPAuthenticationError,
            smtplib.SMTPConnectError,
            smtplib.SMTPServerDisconnected,
        ),
    )


class Mailer(Protocol):
    def send(self, to: str, subject: str, text: str, html: str) -> None: ...


@dataclass(frozen=True)
class SmtpEndpoint:
    host: str
    port: int
    implicit_tls: bool


class SmtpMailer:
    """
    Sends multipart (text + HTML) mail over SMTP.

    Tries the primary endpoint first. If that fails to connect or authenticate
    and a fallback host is configured, the fallback is tried once. Any other
    failure raises MailError immediately.
    """

    def __init__(
        self,
        primary: SmtpEndpoint,
        username: str | None,
        password: str | None,
        from_name: str = "Keystone",
        fallback: SmtpEndpoint | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.username = username
        self._password = password
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: "Settings") -> "SmtpMailer":
        fallback = None
        if settings.SMTP_FALLBACK_HOST:
            fallback = SmtpEndpoint(
                host=settings.SMTP_FALLBACK_HOST,
                port=settings.SMTP_FALLBACK_PORT,
                implicit_tls=settings.SMTP_FALLBACK_PORT == SMTPS_PORT,
            )
        password = (
            settings.SMTP_EMAIL_PASSWORD.get_secret_value()
            if settings.SMTP_EMAIL_PASSWORD is not None
            else None
        )
        return cls(
            primary=SmtpEndpoint(
                host=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                implicit_tls=settings.SMTP_SECURE,
            ),
            username=settings.SMTP_EMAIL,
            password=password,
            from_name=settings.MAIL_FROM_NAME,
            fallback=fallback,
            timeout=settings.SMTP_TIMEOUT_SEC,
        )

    @property
    def configured(self) -> bool:
        return bool(self.username and self._password)

    def build_message(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.username or ""))
        msg["To"] = to
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    def send(self, to: str, subject: str, text: str, html: str) -> None:
        """Deliver one message. Raises MailError if no endpoint accepted it."""
        if not self.configured:
            logger.error("Email sending failed: SMTP credentials are not configured")
            raise MailError("Email credentials are not configured")

        msg = self.build_message(to, subject, text, html)
        start = time.monotonic()
        logger.info("Sending email subject=%r to=%s", subject, to)
        try:
            self._deliver(self.primary, msg)
        except OSError as e:
            # smtplib.SMTPException is an OSError; only transport failures fall back
            if not _is_transport_failure(e):
                logger.error("Email sending failed: %s", e)
                raise MailError(f"Failed to send email: {e}") from e
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning(
                "Email via %s:%s failed after %sms: %s",
                self.primary.host,
                self.primary.port,
                elapsed_ms,
                e,
            )
            if self.fallback is None:
                raise MailError(f"Failed to send email: {e}") from e
            try:
                self._deliver(self.fallback, msg)
            except OSError as fallback_error:
                logger.error(
                    "Both SMTP endpoints failed: primary=%s fallback=%s", e, fallback_error
                )
                raise MailError(f"Failed to send email: {e}") from fallback_error
            logger.info("Email sent via fallback %s to=%s", self.fallback.host, to)
            return

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info("Email sent in %sms to=%s", elapsed_ms, to)

    def check_connection(self) -> bool:
        """Connect and authenticate against each endpoint without sending; True if any works."""
        if not self.configured:
            logger.error("Cannot test SMTP connection: credentials missing")
            return False
        endpoints = [self.primary] + ([self.fallback] if self.fallback else [])
        for endpoint in endpoints:
            try:
                with self._connect(endpoint):
                    pass
            except OSError as e:
                logger.warning("SMTP check failed for %s:%s: %s", endpoint.host, endpoint.port, e)
                continue
            logger.info("SMTP connection OK: %s:%s", endpoint.host, endpoint.port)
            return True
        return False

    def _connect(self, endpoint: SmtpEndpoint) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if endpoint.implicit_tls:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                endpoint.host, endpoint.port, timeout=self.timeout, context=context
            )
        else:
            server = smtplib.SMTP(endpoint.host, endpoint.port, timeout=self.timeout)
        try:
            server.ehlo()
            if not endpoint.implicit_tls and server.has_extn("starttls"):
                server.starttls(context=context)
                server.ehlo()
            server.login(self.username or "", self._password or "")
        except Exception:
            server.close()
            raise
        return server

    def _deliver(self, endpoint: SmtpEndpoint, msg: EmailMessage) -> None:
        with self._connect(endpoint) as server:
            server.send_message(msg)
