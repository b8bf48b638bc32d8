"""Call-flow state machine driven by webhook legs."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from urllib.parse import urlencode

from twilio.twiml.voice_response import Gather, VoiceResponse

from callrouting.alerts import Decision, IncidentClient, IncidentPostError, decide_alert
from callrouting.audit import record_alert
from callrouting.continuation import PARAM, decode, encode
from callrouting.dialer import (
    HUMAN_CHECK_TIMEOUT,
    build_dial,
    is_bridged_completion,
    next_attempt,
)
from callrouting.loader import Settings
from callrouting.messages import Messages, join
from callrouting.models import (
    CallOutcome,
    ContinuationPayload,
    State,
    WebhookEvent,
)
from callrouting.notify import NotificationError, VoicemailNotifier
from callrouting.resolver import TeamResolutionError, resolve_responders, routable_teams
from callrouting.roster import RosterClient, RosterError

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/live-call-routing"

MENU_TIMEOUT = 10
TEAM_MENU_TIMEOUT = 5
RECORD_TIMEOUT = 10

# States that cannot run without a chosen (or offered) team.
TEAM_STATES = frozenset(
    {
        State.ASSIGN_TEAM,
        State.ROSTER_BUILD,
        State.DIAL,
        State.LEAVE_A_MESSAGE,
        State.ALERT_POST,
    }
)

Handler = Callable[[WebhookEvent, ContinuationPayload, VoiceResponse], VoiceResponse]


class CallFlow:
    """Routes each webhook leg to the handler named by its continuation."""

    def __init__(
        self,
        settings: Settings,
        roster: RosterClient,
        incidents: IncidentClient,
        notifier: VoicemailNotifier | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.roster = roster
        self.incidents = incidents
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.messages = Messages(no_call=settings.no_call)
        self._handlers: dict[State, Handler] = {
            State.MENU_SELECT: self.menu_select,
            State.TEAM_SELECT: self.team_select,
            State.ASSIGN_TEAM: self.assign_team,
            State.ROSTER_BUILD: self.roster_build,
            State.DIAL: self.dial,
            State.HUMAN_CHECK: self.human_check,
            State.LEAVE_A_MESSAGE: self.leave_a_message,
            State.ALERT_POST: self.alert_post,
        }

    # ── helpers ───────────────────────────────────────────────────────────

    def uri(self, payload: ContinuationPayload) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}{WEBHOOK_PATH}?{urlencode({PARAM: encode(payload)})}"

    def say(self, target: VoiceResponse | Gather, *parts: str) -> None:
        """Append a Say verb; suppressed phrases leave no empty verb behind."""
        text = join(*parts)
        if text:
            target.say(text, voice=self.settings.voice)

    def end(self, response: VoiceResponse, *parts: str) -> VoiceResponse:
        """Speak a closing phrase and hang up."""
        self.say(response, *parts)
        response.hangup()
        return response

    def initial_state(self) -> State:
        if self.settings.number_of_menus == 1:
            return State.MENU_SELECT
        return State.TEAM_SELECT

    # ── router ────────────────────────────────────────────────────────────

    def handle(self, event: WebhookEvent, token: str | None) -> VoiceResponse:
        """Handle one webhook leg and return the voice document for it."""
        response = VoiceResponse()

        missing = self.settings.missing_secrets()
        if missing:
            logger.error("Missing required configuration: %s", ", ".join(missing))
            self.say(response, self.messages.missing_config)
            return response

        payload = decode(token)
        if payload.caller_id is None:
            payload = payload.model_copy(update={"caller_id": event.To})

        state = payload.state or self.initial_state()
        if state in TEAM_STATES and payload.team is None:
            logger.warning("Continuation for %s carries no team; restarting", state.value)
            state = self.initial_state()
            payload = ContinuationPayload(caller_id=payload.caller_id)

        logger.debug("Call %s entering %s", event.CallSid, state.value)
        try:
            return self._handlers[state](event, payload, response)
        except Exception:
            logger.exception("Unhandled error in %s for call %s", state.value, event.CallSid)
            return self.end(
                VoiceResponse(), self.messages.unexpected_error, self.messages.goodbye
            )

    # ── states ────────────────────────────────────────────────────────────

    def menu_select(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Offer the call-or-message choice."""
        menu = self.messages.no_vm_menu if self.settings.no_voicemail else self.messages.menu
        gather = response.gather(
            input="dtmf",
            timeout=MENU_TIMEOUT,
            num_digits=1,
            action=self.uri(
                ContinuationPayload(
                    state=State.TEAM_SELECT,
                    caller_id=payload.caller_id,
                    from_call_or_message=True,
                    menu_retried=payload.menu_retried,
                )
            ),
        )
        self.say(gather, self.messages.greeting, menu, self.messages.zero_to_repeat)

        if payload.menu_retried:
            return self.end(response, self.messages.no_response, self.messages.goodbye)
        self.say(response, self.messages.no_response)
        response.redirect(
            self.uri(
                ContinuationPayload(
                    state=State.MENU_SELECT, caller_id=payload.caller_id, menu_retried=True
                )
            )
        )
        return response

    def team_select(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Fetch routable teams and offer them, or auto-pick one."""
        digit = event.digit
        if payload.from_call_or_message:
            if digit == 0:
                response.redirect(
                    self.uri(
                        ContinuationPayload(
                            state=State.MENU_SELECT, caller_id=payload.caller_id
                        )
                    )
                )
                return response
            if digit not in (1, 2):
                if payload.menu_retried:
                    return self.end(
                        response, self.messages.invalid_response, self.messages.goodbye
                    )
                self.say(response, self.messages.invalid_response)
                response.redirect(
                    self.uri(
                        ContinuationPayload(
                            state=State.MENU_SELECT,
                            caller_id=payload.caller_id,
                            menu_retried=True,
                        )
                    )
                )
                return response

        go_to_vm = payload.go_to_vm or (payload.from_call_or_message and digit == 2)

        try:
            teams = routable_teams(self.roster, self.settings.teams)
        except TeamResolutionError as exc:
            logger.error("%s", exc)
            return self.end(
                response, self.messages.no_team(exc.team_name), self.messages.goodbye
            )
        except RosterError:
            logger.exception("Could not list teams")
            return self.end(response, self.messages.no_teams_error, self.messages.goodbye)

        if not teams:
            return self.end(response, self.messages.no_teams_error, self.messages.goodbye)

        next_payload = ContinuationPayload(
            state=State.ASSIGN_TEAM,
            caller_id=payload.caller_id,
            real_caller_id=payload.real_caller_id or event.From,
            go_to_vm=go_to_vm,
        )

        if len(teams) == 1 or self.settings.number_of_menus == 0:
            response.redirect(
                self.uri(next_payload.model_copy(update={"teams": teams[:1], "auto_team": True}))
            )
            return response

        prompt = self.messages.team_menu([t.name for t in teams])
        if self.settings.number_of_menus == 2:
            prompt = join(self.messages.greeting, prompt)
        gather = response.gather(
            input="dtmf",
            timeout=TEAM_MENU_TIMEOUT,
            num_digits=len(str(len(teams))),
            action=self.uri(next_payload.model_copy(update={"teams": teams})),
        )
        self.say(gather, prompt, self.messages.zero_to_repeat)
        return self.end(response, self.messages.no_response, self.messages.goodbye)

    def assign_team(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Apply the caller's team choice."""
        digit = event.digit
        if digit == 0:
            response.redirect(
                self.uri(
                    ContinuationPayload(
                        state=State.TEAM_SELECT,
                        caller_id=payload.caller_id,
                        real_caller_id=payload.real_caller_id,
                        go_to_vm=payload.go_to_vm,
                    )
                )
            )
            return response

        if digit is None and not payload.auto_team:
            return self.end(response, self.messages.invalid_response, self.messages.goodbye)

        teams = payload.teams
        if len(teams) == 1:
            chosen = teams[0]
        elif digit is not None and 1 <= digit <= len(teams):
            chosen = teams[digit - 1]
        else:
            return self.end(response, self.messages.invalid_response, self.messages.goodbye)

        state = State.LEAVE_A_MESSAGE if payload.go_to_vm else State.ROSTER_BUILD
        response.redirect(
            self.uri(
                payload.model_copy(
                    update={
                        "state": state,
                        "teams": [chosen],
                        "auto_team": False,
                        "real_caller_id": payload.real_caller_id or event.From,
                    }
                )
            )
        )
        return response

    def roster_build(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Resolve who is on call and start dialing, or fall back to voicemail."""
        team = payload.team
        try:
            responders = resolve_responders(self.roster, team, self.rng)
        except RosterError:
            logger.exception("Could not resolve responders for %s", team.slug)
            return self.end(response, self.messages.error_getting_phone_numbers)

        logger.info(
            "Responders for %s: %s", team.slug, [c.username for c in responders]
        )
        if not responders:
            response.redirect(
                self.uri(
                    payload.model_copy(
                        update={"state": State.LEAVE_A_MESSAGE, "responders": []}
                    )
                )
            )
            return response

        message = self.messages.connecting(team.name)
        if self.settings.number_of_menus == 0:
            message = join(self.messages.greeting, message)
        self.say(response, message)
        response.redirect(
            self.uri(
                payload.model_copy(
                    update={
                        "state": State.DIAL,
                        "first_call": True,
                        "responders": responders,
                    }
                )
            )
        )
        return response

    def dial(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Dial the head of the responder queue once."""
        if self.settings.no_call:
            return self.leave_a_message(event, payload, response)

        if is_bridged_completion(event):
            return self._conclude_bridged(event, payload, response)

        if not payload.responders:
            return self.leave_a_message(event, payload, response)

        if not payload.first_call:
            self.say(response, self.messages.next_on_call)
        caller = payload.real_caller_id or event.From

        attempt = next_attempt(payload.responders, payload.detailed_log, caller)
        logger.info(
            "Dialing %s, %d responder(s) left", attempt.candidate.username, len(attempt.remaining)
        )
        base = payload.model_copy(update={"real_caller_id": caller})
        response.append(build_dial(attempt, base, event.CallSid, self.uri))
        return response

    def human_check(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Make sure a person, not a voicemail box, picked up."""
        if event.Digits is None:
            gather = response.gather(
                input="dtmf",
                timeout=HUMAN_CHECK_TIMEOUT,
                num_digits=1,
                action=self.uri(payload.model_copy(update={"state": State.HUMAN_CHECK})),
            )
            self.say(gather, self.messages.press_key_to_connect)
            return self.end(response, self.messages.no_response, self.messages.goodbye)

        self.say(response, self.messages.connected)
        response.redirect(
            self.uri(
                payload.model_copy(
                    update={"state": State.ALERT_POST, "call_answered_by_human": True}
                )
            )
        )
        return response

    def leave_a_message(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Record a message, or announce a callback when voicemail is off."""
        if is_bridged_completion(event):
            return self._conclude_bridged(event, payload, response)

        if payload.say_goodbye:
            return self.end(
                response, self.messages.attempt_transcription, self.messages.goodbye
            )

        team = payload.team.name
        prefix = "" if payload.go_to_vm else self.messages.no_answer

        if self.settings.no_voicemail:
            self.say(response, prefix, self.messages.no_voicemail(team))
            response.redirect(
                self.uri(payload.model_copy(update={"state": State.ALERT_POST}))
            )
            return response

        self.say(response, prefix, self.messages.voicemail(team))
        response.record(
            transcribe=True,
            transcribe_callback=self.uri(
                payload.model_copy(update={"state": State.ALERT_POST})
            ),
            timeout=RECORD_TIMEOUT,
            action=self.uri(
                payload.model_copy(
                    update={"state": State.LEAVE_A_MESSAGE, "say_goodbye": True}
                )
            ),
        )
        return response

    def alert_post(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        """Post the alert for a concluded leg."""
        self.post_alert(event, payload)
        if event.DialCallStatus == "completed" and event.TranscriptionStatus != "failed":
            self.say(response, self.messages.other_party_disconnect, self.messages.goodbye)
        return response

    # ── side effects ──────────────────────────────────────────────────────

    def _conclude_bridged(
        self,
        event: WebhookEvent,
        payload: ContinuationPayload,
        response: VoiceResponse,
    ) -> VoiceResponse:
        self.say(response, self.messages.other_party_disconnect, self.messages.goodbye)
        self.post_alert(event, payload)
        return response

    def post_alert(
        self, event: WebhookEvent, payload: ContinuationPayload
    ) -> Decision | None:
        """Decide and post the alert for this leg; failures are only logged."""
        decision = decide_alert(event, payload, self.settings, self.messages)
        if decision is None:
            logger.debug("No alert for call %s", event.CallSid)
            return None

        alert = decision.alert
        routing_key = payload.team.slug
        try:
            self.incidents.post(alert, routing_key)
        except IncidentPostError:
            logger.exception("Alert for %s was not delivered", alert.entity_id)
        else:
            record_alert(alert, routing_key, self.settings.audit)

        if self.settings.vm_email and decision.outcome in (
            CallOutcome.TRANSCRIPTION_SUCCEEDED,
            CallOutcome.TRANSCRIPTION_FAILED,
        ):
            self._email_voicemail(
                event, decision.outcome is CallOutcome.TRANSCRIPTION_SUCCEEDED
            )
        return decision

    def _email_voicemail(self, event: WebhookEvent, transcribed: bool) -> None:
        if self.notifier is None:
            logger.warning("VM_EMAIL is enabled but no notifier is configured")
            return
        try:
            self.notifier.send(event, transcribed)
        except NotificationError as exc:
            logger.warning("%s", exc)
