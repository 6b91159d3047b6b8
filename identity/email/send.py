"""
Email notifications for the password reset flow.

send_password_reset_otp() is the notifier the auth controller awaits inline:
it reports delivery as a boolean so the controller can surface
EmailDeliveryFailed, and it never raises.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from identity.config import Settings
from identity.email import smtp

logger = logging.getLogger(__name__)

# (email, code) -> delivered?
Notifier = Callable[[str, str], Awaitable[bool]]


def _password_reset_html(otp_code: str, ttl_minutes: int, brand: str) -> str:
    year = datetime.now(timezone.utc).year
    return (
        "<table width='100%' cellspacing='0' cellpadding='0' "
        "style='background-color:#f5f5f5;padding:20px;font-family:Arial,Helvetica,sans-serif'>"
        "<tr><td align='center'>"
        "<table width='600' cellspacing='0' cellpadding='0' "
        "style='background-color:#ffffff;border-radius:8px;overflow:hidden'>"
        "<tr><td style='background-color:#000000;padding:20px;text-align:center'>"
        f"<h1 style='color:#ffffff;font-size:24px;margin:0'>{brand} Password Reset</h1>"
        "</td></tr>"
        "<tr><td style='padding:40px 20px;text-align:center'>"
        "<h2 style='color:#000000;font-size:20px;margin-bottom:20px'>Your Password Reset OTP</h2>"
        f"<p style='color:#333333;font-size:16px'>Use the code below to reset your {brand} "
        f"password. It is valid for the next <strong>{ttl_minutes} minutes</strong>.</p>"
        "<div style='background-color:#e0e0e0;display:inline-block;padding:15px 30px;"
        "border-radius:6px;font-size:24px;font-weight:bold;letter-spacing:2px'>"
        f"{otp_code}</div>"
        "<p style='color:#333333;font-size:14px;margin-top:20px'>"
        "If you didn't request a password reset, you can safely ignore this email.</p>"
        "</td></tr>"
        "<tr><td style='background-color:#f5f5f5;padding:20px;text-align:center'>"
        f"<p style='color:#333333;font-size:12px;margin:0'>&copy; {year} {brand}. "
        "All rights reserved.</p>"
        "</td></tr>"
        "</table></td></tr></table>"
    )


async def send_password_reset_otp(
    to_email: str,
    otp_code: str,
    settings: Settings,
) -> bool:
    """Email the reset code.  Returns False when no provider delivered it."""
    if not smtp.is_configured(settings):
        logger.warning("No email provider configured, cannot send reset code to %s", to_email)
        return False

    html = _password_reset_html(
        otp_code,
        ttl_minutes=settings.otp_expire_seconds // 60,
        brand=settings.smtp_from_name,
    )
    delivered = await smtp.deliver(
        to_email,
        f"Your {settings.smtp_from_name} Password Reset OTP",
        html,
        settings,
    )
    if delivered:
        logger.info("Password reset code sent to %s", to_email)
    return delivered
