"""Pydantic models for teams, on-call schedules, call sessions, and alerts."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class State(str, Enum):
    """Call-flow states named by a continuation."""

    MENU_SELECT = "menuSelect"
    TEAM_SELECT = "teamSelect"
    ASSIGN_TEAM = "assignTeam"
    ROSTER_BUILD = "rosterBuild"
    DIAL = "dial"
    HUMAN_CHECK = "humanCheck"
    LEAVE_A_MESSAGE = "leaveAMessage"
    ALERT_POST = "alertPost"


class MessageType(str, Enum):
    CRITICAL = "critical"
    ACKNOWLEDGEMENT = "acknowledgement"
    RECOVERY = "recovery"


class CallOutcome(str, Enum):
    ANSWERED = "answered"
    COMPLETED_BRIDGED = "completed-bridged"
    NO_ANSWER = "no-answer"
    TRANSCRIPTION_SUCCEEDED = "transcription-succeeded"
    TRANSCRIPTION_FAILED = "transcription-failed"
    DIRECT_TO_VOICEMAIL = "direct-to-voicemail"


class _Camel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class Team(_Camel):
    name: str
    slug: str = ""
    escalation_policy: str | None = None


class Candidate(_Camel):
    username: str
    phone: str


# ── roster platform payloads ─────────────────────────────────────────────


class OnCallUser(_Camel):
    username: str


class Rotation(_Camel):
    rotation_name: str = ""
    on_call_user: OnCallUser | None = None
    override_on_call_user: OnCallUser | None = None


class Policy(_Camel):
    name: str
    slug: str | None = None


class PolicySchedule(_Camel):
    policy: Policy
    schedule: list[Rotation] = Field(default_factory=list)


class EscalationTier(_Camel):
    step: int
    schedules: list[PolicySchedule] = Field(default_factory=list)


# ── call session ─────────────────────────────────────────────────────────


class ContinuationPayload(_Camel):
    """Session state carried from one webhook leg to the next.

    Every field has a default so that partial or older tokens still decode.
    """

    state: State | None = None
    caller_id: str | None = None
    real_caller_id: str | None = None
    teams: list[Team] = Field(default_factory=list)
    auto_team: bool = False
    go_to_vm: bool = False
    from_call_or_message: bool = False
    menu_retried: bool = False
    first_call: bool = False
    responders: list[Candidate] = Field(default_factory=list)
    current: Candidate | None = None
    detailed_log: str = ""
    entity_id: str | None = None
    call_answered_by_human: bool = False
    say_goodbye: bool = False

    @property
    def team(self) -> Team | None:
        return self.teams[0] if self.teams else None


class WebhookEvent(BaseModel):
    """Form fields posted by the telephony gateway on each leg."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    Digits: str | None = None
    From: str | None = None
    To: str | None = None
    CallSid: str | None = None
    ParentCallSid: str | None = None
    DialCallStatus: str | None = None
    DialBridged: str | None = None
    CallStatus: str | None = None
    TranscriptionStatus: str | None = None
    TranscriptionText: str | None = None
    RecordingUrl: str | None = None

    @property
    def digit(self) -> int | None:
        """The pressed digits as an integer, or ``None`` when not numeric."""
        if self.Digits is None:
            return None
        try:
            return int(self.Digits.strip())
        except ValueError:
            return None


class Alert(BaseModel):
    entity_id: str | None
    entity_display_name: str = "Twilio Live Call Routing Details"
    message_type: MessageType
    state_message: str
    ack_author: str | None = None
    caller_id: str | None = None
    monitoring_tool: str = "Twilio"
