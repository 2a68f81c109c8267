"""
Outbound email.

Transports:
  SESEmailSender   aioboto3 sesv2 send_email
  SMTPEmailSender  smtplib + STARTTLS, run in a thread executor

select_sender() picks one from EMAIL_METHOD:
  ses   → SES
  smtp  → SMTP
  auto  → SES when AWS keys are set, else SMTP when SMTP credentials are
          set, else ConfigurationError

EmailService composes the application's messages on top of a transport.
The transport is resolved on first send, so routes that never send mail
do not need email configured.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Protocol

import aioboto3

from study_assistant.core.config import settings
from study_assistant.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

APP_NAME = "AI Study Assistant"


class EmailDeliveryError(RuntimeError):
    """The transport refused or failed to deliver a message."""


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> None: ...


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------

class SESEmailSender:

    def __init__(self, from_address: str | None = None) -> None:
        self._from    = from_address or settings.email_from
        self._session = aioboto3.Session()

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> None:
        body: dict = {"Html": {"Data": html, "Charset": "UTF-8"}}
        if text:
            body["Text"] = {"Data": text, "Charset": "UTF-8"}

        try:
            async with self._session.client("sesv2", region_name=settings.aws_region) as ses:
                resp = await ses.send_email(
                    FromEmailAddress=self._from,
                    Destination={"ToAddresses": [to]},
                    Content={
                        "Simple": {
                            "Subject": {"Data": subject, "Charset": "UTF-8"},
                            "Body": body,
                        }
                    },
                )
        except Exception as exc:
            logger.error("SES send failed | to=%s error=%s", to, exc)
            raise EmailDeliveryError(f"Failed to send email via SES: {exc}") from exc

        logger.info("Email sent via SES | to=%s message_id=%s", to, resp.get("MessageId", ""))


class SMTPEmailSender:

    def __init__(
        self,
        host:     str | None = None,
        port:     int | None = None,
        username: str | None = None,
        password: str | None = None,
        from_address: str | None = None,
    ) -> None:
        self._host     = host or settings.smtp_host
        self._port     = port or settings.smtp_port
        self._username = username if username is not None else settings.smtp_user
        self._password = password if password is not None else settings.smtp_password
        self._from     = from_address or settings.email_from or self._username

    def _build(self, to: str, subject: str, html: str, text: str | None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"]    = f'"{APP_NAME}" <{self._from}>'
        msg["To"]      = to
        msg["Subject"] = subject
        msg.attach(MIMEText(text or "", "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_sync(self, to: str, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if self._port == 465:
            with smtplib.SMTP_SSL(self._host, self._port, context=context, timeout=30) as s:
                if self._username:
                    s.login(self._username, self._password or "")
                s.sendmail(self._from, [to], msg.as_string())
            return

        with smtplib.SMTP(self._host, self._port, timeout=30) as s:
            s.ehlo()
            s.starttls(context=context)
            s.ehlo()
            if self._username:
                s.login(self._username, self._password or "")
            s.sendmail(self._from, [to], msg.as_string())

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> None:
        msg = self._build(to, subject, html, text)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, to, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP send failed | to=%s host=%s error=%s", to, self._host, exc)
            raise EmailDeliveryError(f"Failed to send email via SMTP: {exc}") from exc

        logger.info("Email sent via SMTP | to=%s host=%s", to, self._host)


def select_sender() -> EmailSender:
    method = settings.email_method.lower()
    if method == "ses":
        return SESEmailSender()
    if method == "smtp":
        return SMTPEmailSender()

    if settings.has_aws_credentials:
        return SESEmailSender()
    if settings.smtp_host and settings.smtp_user and settings.smtp_password:
        return SMTPEmailSender()

    raise ConfigurationError("Email delivery is not configured")


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------

def verification_code_message(code: str) -> tuple[str, str, str]:
    subject = f"Email Verification Code - {APP_NAME}"
    html = f"""
  <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="color: #7c3aed;">Email Verification</h2>
    <p>Thank you for registering with {APP_NAME}!</p>
    <p>Your verification code is:</p>
    <div style="background-color: #f3f4f6; border: 2px solid #7c3aed; border-radius: 8px; padding: 20px; text-align: center; margin: 20px 0;">
      <h1 style="color: #7c3aed; font-size: 32px; letter-spacing: 8px; margin: 0;">{code}</h1>
    </div>
    <p style="color: #6b7280; font-size: 14px;">This code will expire in 10 minutes.</p>
    <p style="color: #6b7280; font-size: 14px;">If you didn't request this code, please ignore this email.</p>
  </div>
"""
    text = (
        f"Email Verification\n\n"
        f"Thank you for registering with {APP_NAME}!\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code will expire in 10 minutes.\n\n"
        f"If you didn't request this code, please ignore this email.\n"
    )
    return subject, html, text


def verification_link_message(name: str, link: str) -> tuple[str, str, str]:
    subject = f"Verify your email - {APP_NAME}"
    html = f"""
  <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="color: #7c3aed;">Welcome, {name}!</h2>
    <p>Please confirm your email address to activate your account.</p>
    <p style="margin: 24px 0;">
      <a href="{link}" style="background-color: #7c3aed; color: #ffffff; padding: 12px 24px; border-radius: 6px; text-decoration: none;">Verify email</a>
    </p>
    <p style="color: #6b7280; font-size: 14px;">This link will expire in 24 hours.</p>
  </div>
"""
    text = (
        f"Welcome, {name}!\n\n"
        f"Confirm your email address by opening this link:\n{link}\n\n"
        f"This link will expire in 24 hours.\n"
    )
    return subject, html, text


def email_change_message(old_email: str, new_email: str) -> tuple[str, str, str]:
    subject = f"Email Address Changed - {APP_NAME}"
    html = f"""
  <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="color: #7c3aed;">Email Address Changed</h2>
    <p>Your email address has been successfully changed.</p>
    <p><strong>Old email:</strong> {old_email}</p>
    <p><strong>New email:</strong> {new_email}</p>
    <p style="color: #dc2626; font-weight: bold;">If you didn't make this change, please contact us immediately.</p>
  </div>
"""
    text = (
        f"Your email address has been changed from {old_email} to {new_email}.\n"
        f"If you didn't make this change, please contact us immediately.\n"
    )
    return subject, html, text


# ---------------------------------------------------------------------------
# Application-facing service
# ---------------------------------------------------------------------------

class EmailService:

    def __init__(self, sender_factory: Callable[[], EmailSender] = select_sender) -> None:
        self._sender_factory = sender_factory
        self._sender: EmailSender | None = None

    def _transport(self) -> EmailSender:
        if self._sender is None:
            self._sender = self._sender_factory()
        return self._sender

    async def send_verification_code(self, email: str, code: str) -> None:
        subject, html, text = verification_code_message(code)
        await self._transport().send(email, subject, html, text)

    async def send_verification_link(self, email: str, name: str, token: str) -> None:
        link = f"{settings.public_base_url.rstrip('/')}/api/auth/verify-email?token={token}"
        subject, html, text = verification_link_message(name, link)
        await self._transport().send(email, subject, html, text)

    async def send_email_change_notice(self, old_email: str, new_email: str) -> None:
        subject, html, text = email_change_message(old_email, new_email)
        await self._transport().send(old_email, subject, html, text)


def get_email_service() -> EmailService:
    """FastAPI dependency; overridden in tests."""
    return EmailService()
