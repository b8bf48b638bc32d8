"""Alert decisions and incident platform posting."""

from __future__ import annotations

import logging
from typing import NamedTuple

import httpx

from callrouting.loader import Settings
from callrouting.messages import Messages
from callrouting.models import (
    Alert,
    CallOutcome,
    ContinuationPayload,
    MessageType,
    WebhookEvent,
)

logger = logging.getLogger(__name__)

# Used when a leg reaches an answered/completed rule without a known responder.
UNKNOWN_RESPONDER = "on-call responder"


class IncidentPostError(Exception):
    """Exception raised when an alert cannot be delivered."""


class Decision(NamedTuple):
    outcome: CallOutcome
    alert: Alert


def _team_name(payload: ContinuationPayload) -> str:
    team = payload.team
    return team.name if team else "unknown"


def _responder(payload: ContinuationPayload) -> str:
    return payload.current.username if payload.current else UNKNOWN_RESPONDER


def decide_alert(
    event: WebhookEvent,
    payload: ContinuationPayload,
    settings: Settings,
    messages: Messages | None = None,
) -> Decision | None:
    """Choose the single alert transition for a concluded leg.

    Rules are checked in order and the first match wins; several conditions
    can hold at once, so the order matters:

    1. Straight to voicemail with voicemail disabled -> critical missed call.
    2. Non-empty transcription -> critical with the transcript.
    3. Transcription failed -> critical without a transcript.
    4. Callee confirmed by key press -> acknowledgement on the parent leg.
    5. Dial completed -> recovery on the original entity.
    6. Call in progress with voicemail disabled -> critical missed call.

    Returns ``None`` for intermediate legs where nothing is terminal yet.
    """
    messages = messages or Messages(no_call=settings.no_call)
    caller = payload.real_caller_id
    log = payload.detailed_log
    team = _team_name(payload)
    display = (
        messages.vo_message_direct(team)
        if payload.go_to_vm
        else messages.vo_message_after(team)
    )

    def alert(**fields) -> Alert:
        fields.setdefault("entity_id", event.CallSid)
        return Alert(caller_id=caller, **fields)

    if payload.go_to_vm and settings.no_voicemail:
        return Decision(
            CallOutcome.DIRECT_TO_VOICEMAIL,
            alert(
                message_type=MessageType.CRITICAL,
                state_message=messages.vo_call_not_answered(caller),
            ),
        )

    if event.TranscriptionText:
        return Decision(
            CallOutcome.TRANSCRIPTION_SUCCEEDED,
            alert(
                message_type=MessageType.CRITICAL,
                entity_display_name=display,
                state_message=messages.vo_transcription(event.TranscriptionText, log),
            ),
        )

    if event.TranscriptionStatus == "failed":
        return Decision(
            CallOutcome.TRANSCRIPTION_FAILED,
            alert(
                message_type=MessageType.CRITICAL,
                entity_display_name=display,
                state_message=messages.vo_transcription_failed(log),
            ),
        )

    if payload.call_answered_by_human:
        user = _responder(payload)
        return Decision(
            CallOutcome.ANSWERED,
            alert(
                message_type=MessageType.ACKNOWLEDGEMENT,
                state_message=messages.vo_call_answered(user, caller, log),
                ack_author=user,
                entity_id=event.ParentCallSid,
            ),
        )

    if event.DialCallStatus == "completed":
        user = _responder(payload)
        return Decision(
            CallOutcome.COMPLETED_BRIDGED,
            alert(
                message_type=MessageType.RECOVERY,
                state_message=messages.vo_call_completed(user, caller, log),
                ack_author=user,
                entity_id=payload.entity_id,
            ),
        )

    if event.CallStatus == "in-progress" and settings.no_voicemail:
        return Decision(
            CallOutcome.NO_ANSWER,
            alert(
                message_type=MessageType.CRITICAL,
                state_message=messages.vo_call_not_answered(caller),
            ),
        )

    return None


class IncidentClient:
    """Posts alerts to the incident platform's generic REST integration."""

    def __init__(
        self,
        alert_host: str,
        service_api_key: str | None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = (
            f"https://{alert_host}/integrations/generic/20131114/alert/{service_api_key}"
        )
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.Client | None = None
    ) -> IncidentClient:
        return cls(
            settings.alert_host,
            settings.service_api_key,
            timeout=settings.request_timeout,
            client=client,
        )

    def post(self, alert: Alert, routing_key: str) -> None:
        """Create or transition an incident. Not retried.

        Raises:
            IncidentPostError: On any transport or HTTP status failure.
        """
        url = f"{self.base_url}/{routing_key}"
        try:
            body = alert.model_dump(mode="json", exclude_none=True)
            response = self._client.post(url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IncidentPostError(f"Alert post to {routing_key} failed: {exc}") from exc
        logger.info(
            "Posted %s alert for entity %s to %s",
            alert.message_type.value,
            alert.entity_id,
            routing_key,
        )

    def close(self) -> None:
        self._client.close()
