"""
auth/mailer.py -- Outbound mail for verification and reset links.

AuthService depends on the Mailer protocol only: anything with
send(recipients, subject, body) works. SmtpMailer is the production
implementation (stdlib smtplib + email.message); tests pass a recorder.

Failures (SMTP protocol errors, refused connections, timeouts) are raised as
InternalError. There is no retry: the caller surfaces the failure.

Layer rule: stdlib + core/ only. No imports from api/ or sessions/.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.errors import InternalError

logger = logging.getLogger("keyward.mail")

VERIFY_EMAIL_TEMPLATE = """Hello,

Please confirm your email address by opening the link below:

{url}

If you did not create an account, you can ignore this message.
"""

RESET_PASSWORD_TEMPLATE = """Hello,

We received a request to reset your password. Open the link below to choose a
new one:

{url}

If you did not request a reset, you can ignore this message.
"""


class Mailer(Protocol):
    def send(self, recipients: list[str], subject: str, body: str) -> None: ...


class SmtpMailer:
    """Send plain-text mail through an SMTP relay.

    One connection per message. Volume is a handful of messages per signup or
    reset, so pooling is not worth the failure modes.
    """

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        starttls: bool = False,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def send(self, recipients: list[str], subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Mail to %d recipient(s) via %s:%d failed: %s", len(recipients), self.host, self.port, exc)
            raise InternalError(detail=f"mail delivery failed: {exc}") from exc
        logger.info("Mail sent to %d recipient(s): %r", len(recipients), subject)
