"""SMTP delivery for sign-in links."""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol, Sequence

from .config import AppConfig, get_config
from .errors import EmailDeliveryError

logger = logging.getLogger(__name__)

MAGIC_LINK_SUBJECT = "Sign in to ParentWise"


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> None:
        ...


class SmtpMailer:
    """Small wrapper around :mod:`smtplib` using STARTTLS when the server offers it."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("smtp delivery failed", extra={"smtp_host": self.host})
            raise EmailDeliveryError() from exc


def build_message(subject: str, body: str, *, sender: str, recipients: Sequence[str]) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = ", ".join(recipients)
    message.set_content(body)
    return message


def magic_link_message(email: str, url: str, *, sender: str) -> EmailMessage:
    body = (
        "Sign in to ParentWise\n\n"
        f"Click here to sign in: {url}\n\n"
        "This link will expire in 24 hours. "
        "If you did not request this email, you can safely ignore it."
    )
    return build_message(MAGIC_LINK_SUBJECT, body, sender=sender, recipients=[email])


def mailer_from_config(config: AppConfig) -> SmtpMailer:
    if not config.email_enabled:
        raise EmailDeliveryError("Email sign-in is not configured.")
    return SmtpMailer(
        config.email_server_host,
        config.email_server_port,
        username=config.email_server_user,
        password=config.email_server_password,
    )


def get_mailer() -> Mailer:
    return mailer_from_config(get_config())
