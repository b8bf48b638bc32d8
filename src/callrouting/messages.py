"""Spoken phrases and incident timeline text.

Edit these to change what callers hear. Methods prefixed with ``vo_`` produce
text that shows up in incident timeline alerts.
"""

from __future__ import annotations


class Messages:
    missing_config = (
        "There is a missing configuration value. "
        "Please contact your administrator to fix the problem."
    )
    greeting = "Welcome to Splunk Lyve Call Routing."
    menu = "Please press 1 to reach an on-call representative or press 2 to leave a message."
    no_vm_menu = (
        "Please press 1 to reach an on-call representative "
        "or press 2 to request a callback from the team"
    )
    zero_to_repeat = "Press zero to repeat this menu."
    no_response = "We did not receive a response."
    invalid_response = "We did not receive a valid response."
    goodbye = "Goodbye."
    no_teams_error = "There was an error retrieving the list of teams for your organization."
    other_party_disconnect = "The other party has disconnected."
    attempt_transcription = (
        "Twilio will attempt to transcribe your message "
        "and create an incident in Splunk On-Call."
    )
    press_key_to_connect = "This is Splunk Lyve Call Routing. Press any number to connect."
    error_getting_phone_numbers = (
        "There was an error retrieving the on-call phone numbers. Please try again."
    )
    next_on_call = "Trying next on-call representative."
    connected = "You are now connected."
    unexpected_error = "Sorry, something went wrong while routing your call."

    def __init__(self, no_call: bool = False) -> None:
        self.no_call = no_call

    @property
    def no_answer(self) -> str:
        return "" if self.no_call else "We were unable to reach an on-call representative."

    def voicemail(self, team: str) -> str:
        return f"Please leave a message for the {team} team and hang up when you are finished."

    def no_voicemail(self, team: str) -> str:
        return f"We are creating an incident for the {team} team.  Someone will call you back shortly."

    def connecting(self, team: str) -> str:
        if self.no_call:
            return ""
        return f"We are connecting you to the representative on-call for the {team} team - Please hold."

    def no_team(self, team: str) -> str:
        return f"Team {team} does not exist. Please contact your administrator to fix the problem."

    def team_menu(self, team_names: list[str]) -> str:
        options = " ".join(f"{i} for {name}." for i, name in enumerate(team_names, 1))
        return f"Please press {options}"

    def vo_message_direct(self, team: str) -> str:
        return f"Twilio: message left for the {team} team"

    def vo_message_after(self, team: str) -> str:
        if self.no_call:
            return "Twilio: New Voicemail"
        return f"Twilio: unable to reach on-call for the {team} team"

    def vo_transcription(self, transcription: str, log: str = "") -> str:
        return f"Transcribed message from Twilio:\n{transcription}{log}"

    def vo_transcription_failed(self, log: str = "") -> str:
        return f"Twilio was unable to transcribe message.{log}"

    def vo_call_answered(self, user: str, caller: str | None, log: str = "") -> str:
        return f"{user} answered a call from {caller}.{log}"

    def vo_call_not_answered(self, caller: str | None) -> str:
        return f"Missed call from {caller}."

    def vo_call_completed(self, user: str, caller: str | None, log: str = "") -> str:
        return f"{user} answered a call from {caller}. {log}"


def join(*parts: str) -> str:
    """Join spoken fragments, skipping empty ones."""
    return " ".join(p for p in parts if p)
