"""Unit tests for notify/email.py -- sender selection, Resend delivery and the template."""

from __future__ import annotations

import pytest
import resend

from core.config import Settings
from notify.email import (
    EmailDeliveryError,
    EmailMessage,
    EmailSender,
    LogEmailSender,
    ResendEmailSender,
    build_sender,
    verification_message,
)

KEY = "k" * 40


def _settings(**overrides) -> Settings:
    return Settings(secret_key=KEY, **overrides)


def _message() -> EmailMessage:
    return EmailMessage(to="ada@example.com", subject="Hi", html="<p>Hi</p>", text="Hi")


class TestBuildSender:
    def test_log_sender_without_key(self):
        assert isinstance(build_sender(_settings(debug=False, resend_api_key="")), LogEmailSender)

    def test_log_sender_in_debug(self):
        assert isinstance(build_sender(_settings(debug=True, resend_api_key="re_123")), LogEmailSender)

    def test_resend_sender_with_key(self):
        sender = build_sender(_settings(debug=False, resend_api_key="re_123"))
        assert isinstance(sender, ResendEmailSender)
        assert isinstance(sender, EmailSender)


class TestResendEmailSender:
    def test_sends_params(self, monkeypatch):
        sent = {}

        def fake_send(params):
            sent.update(params)
            return {"id": "email_1"}

        monkeypatch.setattr(resend.Emails, "send", staticmethod(fake_send))
        ResendEmailSender("re_123", "RoleGate <no-reply@example.com>").send(_message())
        assert sent["to"] == ["ada@example.com"]
        assert sent["from"] == "RoleGate <no-reply@example.com>"
        assert sent["subject"] == "Hi"

    def test_provider_error_raises_delivery_error(self, monkeypatch):
        def fake_send(params):
            raise RuntimeError("503 from provider")

        monkeypatch.setattr(resend.Emails, "send", staticmethod(fake_send))
        with pytest.raises(EmailDeliveryError):
            ResendEmailSender("re_123", "x@example.com").send(_message())

    def test_missing_id_raises_delivery_error(self, monkeypatch):
        monkeypatch.setattr(resend.Emails, "send", staticmethod(lambda params: {}))
        with pytest.raises(EmailDeliveryError):
            ResendEmailSender("re_123", "x@example.com").send(_message())

    def test_requires_key(self):
        with pytest.raises(ValueError):
            ResendEmailSender("", "x@example.com")


def test_verification_message_carries_code():
    message = verification_message("ada@example.com", "482913", "Ada", "RoleGate")
    assert message.to == "ada@example.com"
    assert "482913" in message.text
    assert "482913" in message.html
    assert "Hi Ada," in message.text
