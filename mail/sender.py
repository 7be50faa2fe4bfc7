"""
mail/sender.py -- Mail dispatch.

Two senders satisfy the Mailer protocol:
  SmtpMailer -- real delivery over SMTP (implicit SSL or STARTTLS, optional login).
  LogMailer  -- development stand-in used when SMTP_HOST is empty. It logs the
                recipient and subject instead of sending, so the confirmation
                flow can be exercised locally without a mail server.

send() reports delivery as a bool and never raises for transport problems:
callers treat a failed dispatch as an outcome, not an error.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

logger = logging.getLogger("bridgeauth.mail")


class Mailer(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> bool: ...


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        use_ssl: bool = False,
        sender: str = "no-reply@localhost",
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, subject: str, html_body: str) -> bool:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if not self.use_ssl and self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send '%s' to %s via %s:%d", subject, to, self.host, self.port)
            return False

        logger.info("Sent '%s' to %s", subject, to)
        return True


class LogMailer:
    """Logs outbound mail instead of sending it."""

    def send(self, to: str, subject: str, html_body: str) -> bool:
        logger.info("[DEV] Mail not sent (no SMTP host configured): to=%s subject=%r", to, subject)
        logger.debug("[DEV] Mail body for %s:\n%s", to, html_body)
        return True


def build_mailer(settings) -> Mailer:
    """Pick SmtpMailer when SMTP_HOST is configured, LogMailer otherwise."""
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set -- outbound mail will be logged, not sent")
        return LogMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        use_ssl=settings.smtp_use_ssl,
        sender=settings.mail_from,
    )
