"""Tests for voicemail email notifications."""

from __future__ import annotations

import smtplib

import pytest

from callrouting.loader import EmailSettings
from callrouting.models import WebhookEvent
from callrouting.notify import NotificationError, VoicemailNotifier, compose_voicemail_email

EMAIL = EmailSettings(
    to_address="ops@example.com",
    from_address="calls@example.com",
    smtp_host="mail.example.com",
    smtp_port=2525,
)
EVENT = WebhookEvent(
    From="+15559999999",
    TranscriptionText="database is down",
    RecordingUrl="https://recordings.example.com/RE1",
)


class FakeSMTP:
    instances: list[FakeSMTP] = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def send_message(self, msg):
        self.sent.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


# ── compose ───────────────────────────────────────────────────────────────


def test_compose_with_transcript():
    """A transcribed voicemail includes the transcript and the recording link."""
    msg = compose_voicemail_email(EVENT, EMAIL, transcribed=True)
    body = msg.get_content()

    assert msg["Subject"] == "New Splunk On-Call Voicemail from: +15559999999"
    assert msg["To"] == "ops@example.com"
    assert "Transcription is: database is down" in body
    assert "Recording URL is: https://recordings.example.com/RE1" in body


def test_compose_without_transcript():
    """A failed transcription only links the recording."""
    body = compose_voicemail_email(EVENT, EMAIL, transcribed=False).get_content()

    assert "Transcription" not in body
    assert "Recording URL" in body


# ── send ──────────────────────────────────────────────────────────────────


def test_send(fake_smtp):
    """Sending goes through the configured SMTP relay."""
    VoicemailNotifier(EMAIL, timeout=3).send(EVENT, transcribed=True)

    (smtp,) = fake_smtp.instances
    assert (smtp.host, smtp.port, smtp.timeout) == ("mail.example.com", 2525, 3)
    assert smtp.sent[0]["From"] == "calls@example.com"


def test_send_without_addresses(fake_smtp):
    """Missing addresses are an error and nothing is sent."""
    with pytest.raises(NotificationError):
        VoicemailNotifier(EmailSettings()).send(EVENT, transcribed=True)

    assert fake_smtp.instances == []


def test_send_smtp_failure(monkeypatch):
    """Relay failures surface as NotificationError."""

    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("no relay")

    monkeypatch.setattr(smtplib, "SMTP", refuse)

    with pytest.raises(NotificationError, match="no relay"):
        VoicemailNotifier(EMAIL).send(EVENT, transcribed=False)
