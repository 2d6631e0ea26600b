"""
Email service: delivers login codes via SMTP.

In development (no SMTP configured), emails are logged to the console
so you can see what *would* be sent without configuring a mail server.
"""

from __future__ import annotations

import asyncio
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib

from storefront.config import (
    EMAIL_TIMEOUT_SECONDS,
    OTP_TTL_SECONDS,
    SMTP_FROM_EMAIL,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
    is_production,
    smtp_enabled,
)
from storefront.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

OTP_SUBJECT = "Your DigiInsta admin login code"


def _build_html_body(code: str, ttl_minutes: int) -> str:
    return f"""
    <html>
    <body style="font-family:sans-serif;color:#333">
      <h2>DigiInsta admin login</h2>
      <p>Use this code to sign in:</p>
      <p style="font-size:2em;font-weight:bold;letter-spacing:0.3em">{code}</p>
      <p>The code expires in {ttl_minutes} minutes and can be used once.</p>
      <p style="margin-top:1em;font-size:0.9em;color:#888">
        If you did not request this code you can ignore this email.
      </p>
    </body>
    </html>
    """


async def send_otp_email(to_email: str, code: str) -> None:
    """
    Send (or log) a login code.

    If SMTP is not configured, falls back to console output. Raises
    ``EmailDeliveryError`` when the SMTP server fails or times out.
    """
    ttl_minutes = max(1, OTP_TTL_SECONDS // 60)

    # ── Console fallback (dev mode) ───────────────────────────────────
    if not smtp_enabled():
        if is_production():
            logger.error("SMTP is not configured; cannot deliver login code to %s", to_email)
            raise EmailDeliveryError("Failed to send OTP. Please try again.")
        logger.info("📧 [DEV] Would send login code to %s: %s", to_email, code)
        return

    # ── Real SMTP send ────────────────────────────────────────────────
    msg = MIMEMultipart("alternative")
    msg["Subject"] = OTP_SUBJECT
    msg["From"] = SMTP_FROM_EMAIL
    msg["To"] = to_email

    plain = (
        f"Your DigiInsta admin login code is {code}.\n\n"
        f"It expires in {ttl_minutes} minutes and can be used once."
    )
    msg.attach(MIMEText(plain, "plain"))
    msg.attach(MIMEText(_build_html_body(code, ttl_minutes), "html"))

    try:
        await aiosmtplib.send(
            msg,
            hostname=SMTP_HOST,
            port=SMTP_PORT,
            username=SMTP_USERNAME,
            password=SMTP_PASSWORD,
            start_tls=SMTP_USE_TLS,
            timeout=EMAIL_TIMEOUT_SECONDS,
        )
    except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError) as exc:
        logger.exception("Failed to send login code to %s", to_email)
        raise EmailDeliveryError("Failed to send OTP. Please try again.") from exc

    logger.info("Login code email sent to %s", to_email)
