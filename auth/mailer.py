"""
auth/mailer.py -- Outbound verification mail.

Delivery is an external collaborator: the core only asks it to deliver a
verification token to an address. Two implementations:

  LoggingEmailSender -- dev default when SMTP_HOST is empty. Logs the
                        verification link with a redacted recipient.
  SmtpEmailSender    -- plain smtplib with optional STARTTLS.

Both raise EmailDeliveryError on failure. AuthService logs that and carries on:
the account stays pending and the user can ask for a new link.
"""

from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from urllib.parse import urlencode

from auth.errors import EmailDeliveryError
from core.config import Settings

logger = logging.getLogger("appstore.mail")


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailSender(ABC):
    """Interface: deliver a verification token to `email`."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def verification_link(self, token: str, role: str) -> str:
        # Developers verify on their own portal page, everyone else on the store's.
        area = "developer" if role == "DEVELOPER" else "user"
        return f"{self.base_url}/{area}/verify-email?{urlencode({'token': token})}"

    @abstractmethod
    def send_verification(self, email: str, token: str, role: str) -> None:
        """Deliver the link; raise EmailDeliveryError when that fails."""


class LoggingEmailSender(EmailSender):
    def send_verification(self, email: str, token: str, role: str) -> None:
        logger.info(
            "Verification mail (not sent, SMTP not configured) to=%s link=%s",
            redact_email(email),
            self.verification_link(token, role),
        )


class SmtpEmailSender(EmailSender):
    def __init__(
        self,
        base_url: str,
        host: str,
        port: int = 587,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "noreply@localhost",
    ) -> None:
        super().__init__(base_url)
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.sender = sender

    def send_verification(self, email: str, token: str, role: str) -> None:
        link = self.verification_link(token, role)
        msg = EmailMessage()
        msg["Subject"] = "Verify your email address"
        msg["From"] = self.sender
        msg["To"] = email
        msg.set_content(
            "Welcome!\n\n"
            f"Confirm your email address by opening this link:\n{link}\n\n"
            "If you did not create an account, you can ignore this message.\n"
        )
        try:
            with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"could not deliver verification mail to {redact_email(email)}") from exc
        logger.info("Verification mail sent to=%s", redact_email(email))


def build_email_sender(settings: Settings) -> EmailSender:
    """Pick the SMTP sender when SMTP_HOST is set, the logging sender otherwise."""
    if settings.smtp_host:
        return SmtpEmailSender(
            base_url=settings.public_base_url,
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.mail_from,
        )
    return LoggingEmailSender(settings.public_base_url)
