"""
auth/mailer.py -- Out-of-band delivery of OTP codes.

Mailers are constructed once in the API lifespan and handed to the OTP
service (no module-level transport). build_mailer() picks SmtpMailer when
SMTP_HOST is configured and LoggingMailer otherwise.

Delivery is fire-and-forget from the OTP flow's point of view: OtpService
wraps every send() and logs failures instead of surfacing them, so a broken
mail relay cannot turn into an account-existence oracle.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("deptconnect.mail")


class Mailer(Protocol):
    def send(self, to_address: str, subject: str, body: str) -> None: ...


class SmtpMailer:
    """Plain SMTP delivery with optional STARTTLS and login."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        sender: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to_address: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to_address
        msg["Subject"] = subject
        msg.set_content(body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


class LoggingMailer:
    """Development mailer: writes the message to the log instead of sending it."""

    def send(self, to_address: str, subject: str, body: str) -> None:
        logger.info("Mail to %s [%s]: %s", to_address, subject, body)


def build_mailer(settings: Settings) -> Mailer:
    if settings.smtp_host:
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.mail_from,
            use_tls=settings.smtp_use_tls,
        )
    logger.warning("SMTP_HOST not set -- OTP codes will be written to the log")
    return LoggingMailer()
