"""Single-attempt dialing over the responder queue."""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple

from twilio.twiml.voice_response import Dial

from callrouting.models import Candidate, ContinuationPayload, State, WebhookEvent

# Seconds to ring a responder before the dial counts as unanswered.
DIAL_TIMEOUT = 30
# Seconds the callee has to press a key to prove a person picked up.
HUMAN_CHECK_TIMEOUT = 8


class DialAttempt(NamedTuple):
    candidate: Candidate
    remaining: list[Candidate]
    detailed_log: str


def log_entry(caller: str | None, candidate: Candidate) -> str:
    return f"\n\n{caller} calling {candidate.username}..."


def next_attempt(
    queue: list[Candidate], detailed_log: str, caller: str | None
) -> DialAttempt:
    """Take the head of the queue for one dial.

    The returned queue is always one shorter, so no responder is dialed twice
    unless the queue is rebuilt upstream.

    Raises:
        ValueError: If the queue is empty.
    """
    if not queue:
        raise ValueError("Cannot dial from an empty responder queue")
    head, *rest = queue
    return DialAttempt(head, rest, detailed_log + log_entry(caller, head))


def is_bridged_completion(event: WebhookEvent) -> bool:
    """True when the dialed responder answered and the bridged call ended."""
    return event.DialCallStatus == "completed" and event.DialBridged == "true"


def build_dial(
    attempt: DialAttempt,
    payload: ContinuationPayload,
    call_sid: str | None,
    uri: Callable[[ContinuationPayload], str],
) -> Dial:
    """Build the Dial verb for one attempt and arm its three callbacks.

    - ``action`` (caller leg, after the dial ends): next DIAL, or
      LEAVE_A_MESSAGE once the queue is exhausted. Carries the caller leg's
      sid as the entity id for the eventual recovery alert.
    - ``url`` (callee leg, on pickup): HUMAN_CHECK.
    - ``statusCallback`` (callee leg, on completion): ALERT_POST.
    """
    leg = payload.model_copy(
        update={
            "current": attempt.candidate,
            "responders": attempt.remaining,
            "detailed_log": attempt.detailed_log,
            "first_call": False,
        }
    )
    after = State.DIAL if attempt.remaining else State.LEAVE_A_MESSAGE

    dial = Dial(
        action=uri(leg.model_copy(update={"state": after, "entity_id": call_sid})),
        caller_id=payload.caller_id,
        timeout=DIAL_TIMEOUT,
    )
    dial.number(
        attempt.candidate.phone,
        url=uri(leg.model_copy(update={"state": State.HUMAN_CHECK})),
        status_callback=uri(leg.model_copy(update={"state": State.ALERT_POST})),
        status_callback_event="completed",
    )
    return dial
