"""
Async SMTP email delivery via aiosmtplib.

Sends MIME-formatted HTML emails over implicit TLS (port 465) or STARTTLS.
Returns True on success, False on any delivery failure (never raises).
"""
from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from identity.config import Settings

logger = logging.getLogger(__name__)


def is_configured(settings: Settings) -> bool:
    """Return True when an SMTP host and a sender address are present."""
    return bool(settings.smtp_host and settings.smtp_from_email)


def build_message(
    to_email: str,
    subject: str,
    html: str,
    settings: Settings,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(html, subtype="html")
    return msg


async def deliver(
    to_email: str,
    subject: str,
    html: str,
    settings: Settings,
) -> bool:
    """Send an HTML email via SMTP.  Returns True on success, False on failure."""
    if not is_configured(settings):
        return False

    msg = build_message(to_email, subject, html, settings)
    try:
        await aiosmtplib.send(
            msg,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username or None,
            password=settings.smtp_password or None,
            use_tls=settings.smtp_use_tls,
            start_tls=settings.smtp_start_tls and not settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )
        return True
    except (aiosmtplib.SMTPException, OSError) as exc:
        logger.error("SMTP delivery failed (%s → %s): %s", settings.smtp_host, to_email, exc)
        return False
