"""
Verify SMTP settings by connecting and logging in (no mail is sent):

  python -m app.scripts.check_mail

Pass an address to also send a test message:

  python -m app.scripts.check_mail --send-to you@example.com
"""

import argparse
import logging
import sys

from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.errors import MailError
from app.services.mailer import SmtpMailer

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check outgoing mail configuration.")
    parser.add_argument("--send-to", default=None, help="Send a test message to this address")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    mailer = SmtpMailer.from_settings(settings)

    if not mailer.check_connection():
        logger.error(
            "SMTP check failed; verify SMTP_HOST, SMTP_PORT, SMTP_EMAIL and SMTP_EMAIL_PASSWORD "
            "(Gmail accounts need 2-step verification and an app password)"
        )
        return 1

    if args.send_to:
        try:
            mailer.send(
                to=args.send_to,
                subject="Keystone SMTP test",
                text="SMTP configuration works.",
                html="<p>SMTP configuration works.</p>",
            )
        except MailError as e:
            logger.error("Test message failed: %s", e.message)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
