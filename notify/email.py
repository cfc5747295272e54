"""
notify/email.py -- Outbound email collaborator.

The lifecycle only depends on the EmailSender protocol:

    sender.send(EmailMessage(to, subject, html, text))   # raises EmailDeliveryError

Implementations:
  ResendEmailSender -- delivers through the Resend HTTP API. Used when
                       RESEND_API_KEY is configured.
  LogEmailSender    -- writes the message to the log instead of sending it.
                       Used in debug mode and when no API key is set.

build_sender() picks one from Settings. verification_message() renders the
registration / resend message; it is the only place the plaintext one-time
code is put into text.

Layer rule: no imports from api/, auth/, or rbac/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import resend

from core.config import Settings

logger = logging.getLogger("rolegate.notify")


class EmailDeliveryError(Exception):
    """Raised when a message could not be handed to the email provider."""


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


@runtime_checkable
class EmailSender(Protocol):
    def send(self, message: EmailMessage) -> None:
        """Deliver message or raise EmailDeliveryError."""
        ...


class LogEmailSender:
    """Development sender: logs the message instead of delivering it."""

    def send(self, message: EmailMessage) -> None:
        logger.info("[EMAIL] to=%s subject=%r", message.to, message.subject)
        logger.debug("[EMAIL] body:\n%s", message.text)


class ResendEmailSender:
    """Delivers messages through the Resend API."""

    def __init__(self, api_key: str, email_from: str) -> None:
        if not api_key:
            raise ValueError("ResendEmailSender requires an API key")
        self._api_key = api_key
        self._email_from = email_from

    def send(self, message: EmailMessage) -> None:
        resend.api_key = self._api_key
        params = {
            "from": self._email_from,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        try:
            response = resend.Emails.send(params)
        except Exception as exc:
            logger.error("[EMAIL] Resend rejected message to %s: %s", message.to, exc)
            raise EmailDeliveryError(str(exc)) from exc
        email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        if not email_id:
            raise EmailDeliveryError(f"Resend returned no message id: {response!r}")
        logger.info("[EMAIL] sent to %s (id=%s)", message.to, email_id)


def build_sender(settings: Settings) -> EmailSender:
    if settings.resend_api_key and not settings.debug:
        return ResendEmailSender(settings.resend_api_key, settings.email_from)
    logger.warning("RESEND_API_KEY not set (or DEBUG on) -- outbound email will only be logged")
    return LogEmailSender()


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def verification_message(to: str, code: str, firstname: str = "", app_name: str = "RoleGate") -> EmailMessage:
    """Render the email-verification message carrying the one-time code."""
    greeting = f"Hi {firstname}," if firstname else "Hi,"
    html = f"""
<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <p>{greeting}</p>
    <p>Welcome to {app_name}. Please verify your email address.</p>
    <p>Your one-time verification code is:</p>
    <p style="font-size: 24px; font-weight: bold; letter-spacing: 4px;">{code}</p>
    <p style="font-size: 12px; color: #6c757d;">If you did not create an account, you can ignore this email.</p>
</body>
</html>
    """.strip()
    text = f"""
{greeting}

Welcome to {app_name}. Please verify your email address.

Your one-time verification code is: {code}

If you did not create an account, you can ignore this email.
    """.strip()
    return EmailMessage(to=to, subject=f"{app_name} -- verify your email", html=html, text=text)
