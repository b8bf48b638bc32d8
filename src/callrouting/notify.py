"""Voicemail email notifications over SMTP."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from callrouting.loader import EmailSettings
from callrouting.models import WebhookEvent

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Exception raised when a voicemail email cannot be sent."""


def compose_voicemail_email(
    event: WebhookEvent, settings: EmailSettings, transcribed: bool
) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"New Splunk On-Call Voicemail from: {event.From}"
    msg["From"] = settings.from_address
    msg["To"] = settings.to_address

    lines = [f"New Splunk On-Call Voicemail from: {event.From}"]
    if transcribed:
        lines.append(f" Transcription is: {event.TranscriptionText}")
    lines.append(f" Recording URL is: {event.RecordingUrl}")
    msg.set_content("\n".join(lines))
    return msg


class VoicemailNotifier:
    def __init__(self, settings: EmailSettings, timeout: float = 10.0) -> None:
        self.settings = settings
        self.timeout = timeout

    def send(self, event: WebhookEvent, transcribed: bool) -> None:
        """Email a voicemail link, and the transcript when there is one.

        Raises:
            NotificationError: If the addresses are unset or SMTP fails.
        """
        if not (self.settings.to_address and self.settings.from_address):
            raise NotificationError("Voicemail email addresses are not configured")

        msg = compose_voicemail_email(event, self.settings, transcribed)
        try:
            with smtplib.SMTP(
                self.settings.smtp_host, self.settings.smtp_port, timeout=self.timeout
            ) as smtp:
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Voicemail email failed: {exc}") from exc
        logger.info("Voicemail email sent to %s", self.settings.to_address)
