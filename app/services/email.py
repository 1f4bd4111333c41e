from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

import httpx

from app.core.config import settings
from app.core.errors import AppError

logger = logging.getLogger(__name__)

PRODUCT_NAME = "LexaChat"


class EmailDeliveryError(AppError):
    status_code = 503


@dataclass(slots=True)
class EmailDelivery:
    delivered: bool
    reason: str = ""


def build_reset_url(token: str) -> str:
    return f"{settings.client_base_url}/reset-password/{token}"


def build_verify_email_url(token: str) -> str:
    return f"{settings.client_base_url}/verify-email/{token}"


def _sender() -> str:
    return settings.email_from or settings.smtp_user


def _smtp_configured() -> bool:
    return bool(settings.smtp_host and settings.smtp_port and settings.smtp_user and settings.smtp_password)


async def _send_with_resend(to: str, subject: str, text: str) -> None:
    async with httpx.AsyncClient(timeout=15) as client:
        res = await client.post(
            settings.resend_api_url,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            json={"from": _sender(), "to": [to], "subject": subject, "text": text},
        )
        res.raise_for_status()


def _send_with_smtp(to: str, subject: str, text: str) -> None:
    message = EmailMessage()
    message["From"] = _sender()
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text)

    port = int(settings.smtp_port)
    timeout = settings.smtp_timeout_seconds
    if port == 465:
        with smtplib.SMTP_SSL(settings.smtp_host, port, timeout=timeout) as smtp:
            smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)
        return
    with smtplib.SMTP(settings.smtp_host, port, timeout=timeout) as smtp:
        smtp.starttls()
        smtp.login(settings.smtp_user, settings.smtp_password)
        smtp.send_message(message)


async def send_email(*, to: str, subject: str, text: str) -> EmailDelivery:
    if settings.resend_api_key and _sender():
        try:
            await _send_with_resend(to, subject, text)
            return EmailDelivery(delivered=True)
        except httpx.HTTPError as exc:
            logger.error("Resend delivery failed, falling back to SMTP: %s", exc)

    if not _smtp_configured():
        return EmailDelivery(delivered=False, reason="No email provider configured")

    try:
        await asyncio.wait_for(
            asyncio.to_thread(_send_with_smtp, to, subject, text),
            timeout=settings.smtp_timeout_seconds,
        )
    except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as exc:
        logger.exception("SMTP delivery to %s failed", to)
        raise EmailDeliveryError("Unable to send email right now. Please try again later.") from exc
    return EmailDelivery(delivered=True)


async def send_signup_otp_email(*, to: str, name: str | None, otp: str) -> EmailDelivery:
    text = "\n".join(
        [
            f"Hi {name or 'there'},",
            "",
            f"Your {PRODUCT_NAME} signup verification code is: {otp}",
            "",
            f"This code expires in {settings.signup_otp_ttl_minutes} minutes.",
            "If you did not request this, you can ignore this email.",
        ]
    )
    return await send_email(to=to, subject=f"Your {PRODUCT_NAME} verification code", text=text)


async def send_password_reset_email(*, to: str, name: str | None, reset_url: str) -> EmailDelivery:
    text = "\n".join(
        [
            f"Hi {name or 'there'},",
            "",
            f"You requested a password reset for your {PRODUCT_NAME} account.",
            f"Reset link: {reset_url}",
            "",
            f"This link expires in {settings.password_reset_ttl_minutes} minutes.",
            "If you did not request this, you can ignore this email.",
        ]
    )
    return await send_email(to=to, subject=f"Reset your {PRODUCT_NAME} password", text=text)


async def send_email_verification_email(*, to: str, name: str | None, verify_url: str) -> EmailDelivery:
    text = "\n".join(
        [
            f"Hi {name or 'there'},",
            "",
            f"Please confirm the email address for your {PRODUCT_NAME} account.",
            f"Verification link: {verify_url}",
            "",
            f"This link expires in {settings.email_verification_ttl_hours} hours.",
        ]
    )
    return await send_email(to=to, subject=f"Verify your {PRODUCT_NAME} email", text=text)
