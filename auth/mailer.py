"""
auth/mailer.py -- Delivery collaborator for password-reset emails.

AuthService depends only on the PasswordResetMailer protocol:

    await mailer.send_password_reset_email(account, raw_token)

which must raise on failure. Two implementations:
  SMTPMailer   -- aiosmtplib, used when SMTP_HOST is configured.
  OutboxMailer -- keeps messages in memory; development and tests.

The raw token appears in the message body (that is the point of the email)
and nowhere else: neither implementation logs it.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from auth.models import Account
from core.config import Settings, get_settings

logger = logging.getLogger("natours.auth.mailer")

RESET_PATH = "/api/v1/auth/reset-password/{token}"
RESET_SUBJECT = "Your password reset token (valid for {minutes} min)"


class PasswordResetMailer(Protocol):
    async def send_password_reset_email(self, account: Account, raw_token: str) -> None: ...


def build_reset_url(raw_token: str, settings: Settings | None = None) -> str:
    cfg = settings or get_settings()
    return cfg.public_base_url.rstrip("/") + RESET_PATH.format(token=raw_token)


def build_reset_message(account: Account, raw_token: str, settings: Settings | None = None) -> EmailMessage:
    """Compose the plain-text reset email."""
    cfg = settings or get_settings()
    url = build_reset_url(raw_token, cfg)
    minutes = max(cfg.reset_token_expire_seconds // 60, 1)
    greeting = f"Hi {account.name.split()[0]}," if account.name else "Hi,"
    message = EmailMessage()
    message["Subject"] = RESET_SUBJECT.format(minutes=minutes)
    message["From"] = cfg.mail_from
    message["To"] = account.email
    message.set_content(
        f"{greeting}\n\n"
        "Forgot your password? Submit a PATCH request with your new password "
        f"and passwordConfirm to:\n\n{url}\n\n"
        "If you didn't forget your password, please ignore this email.\n"
    )
    return message


class SMTPMailer:
    """Send reset emails through an SMTP relay."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    async def send_password_reset_email(self, account: Account, raw_token: str) -> None:
        message = build_reset_message(account, raw_token, self.settings)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_username or None,
                password=self.settings.smtp_password or None,
                start_tls=self.settings.smtp_use_tls,
                timeout=self.settings.smtp_timeout,
            )
        except aiosmtplib.SMTPException:
            logger.error("SMTP delivery failed (host=%s account=%s)", self.settings.smtp_host, account.id)
            raise
        logger.info("Password reset email sent (account=%s)", account.id)


@dataclass
class OutboxEntry:
    to: str
    subject: str
    body: str
    raw_token: str


class OutboxMailer:
    """Collects reset emails in memory instead of sending them.

    Set ``fail`` to make the next sends raise, which exercises the rollback
    path in AuthService.request_password_reset().
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.outbox: list[OutboxEntry] = []
        self.fail = False

    async def send_password_reset_email(self, account: Account, raw_token: str) -> None:
        if self.fail:
            raise ConnectionError("outbox mailer configured to fail")
        message = build_reset_message(account, raw_token, self.settings)
        self.outbox.append(
            OutboxEntry(
                to=account.email,
                subject=message["Subject"],
                body=message.get_content(),
                raw_token=raw_token,
            )
        )
        logger.info("Password reset email queued in outbox (account=%s)", account.id)


def make_mailer(settings: Settings | None = None) -> PasswordResetMailer:
    cfg = settings or get_settings()
    if cfg.smtp_host:
        return SMTPMailer(cfg)
    logger.warning("SMTP_HOST not set -- password reset emails go to the in-memory outbox")
    return OutboxMailer(cfg)
