"""Rich output formatting for CLI results."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from callrouting.models import Candidate, Team

console = Console()

TIER_COLORS: dict[int, str] = {
    1: "red bold",
    2: "yellow",
    3: "green",
}


def render_responders(team: Team, responders: list[Candidate]) -> None:
    """Render the current responder queue as a Rich table.

    Args:
        team: The team that was resolved.
        responders: Candidates in dialing order.
    """
    header_text = Text()
    header_text.append("On Call: ")
    header_text.append(team.name, style="bold")
    if team.escalation_policy:
        header_text.append(f" [{team.escalation_policy}]")

    if not responders:
        console.print(
            Panel(
                Text("Nobody reachable. Calls go to voicemail.", style="yellow"),
                title=header_text,
                border_style="blue",
            )
        )
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Attempt", justify="center", width=9)
    table.add_column("User", min_width=18)
    table.add_column("Phone", min_width=16)

    for attempt, candidate in enumerate(responders, 1):
        table.add_row(
            Text(str(attempt), style=TIER_COLORS.get(attempt, "white")),
            candidate.username,
            candidate.phone,
        )

    console.print(Panel(table, title=header_text, border_style="blue"))


def render_responders_json(team: Team, responders: list[Candidate]) -> None:
    data = {
        "team": team.model_dump(),
        "responders": [c.model_dump() for c in responders],
    }
    console.print_json(json.dumps(data))


def render_team_list(teams: list[Team]) -> None:
    """Render a table of routable teams in menu order."""
    table = Table(title="Routable Teams", show_header=True, header_style="bold")
    table.add_column("Key", justify="center")
    table.add_column("Name")
    table.add_column("Slug")
    table.add_column("Escalation Policy")

    for key, team in enumerate(teams, 1):
        table.add_row(
            str(key),
            team.name,
            team.slug,
            team.escalation_policy or Text("first listed", style="dim"),
        )

    console.print(table)


def render_validation_errors(errors: list[str]) -> None:
    """Render settings validation results.

    Args:
        errors: List of validation error messages. Empty means success.
    """
    if not errors:
        console.print(
            Text("Configuration is valid.", style="green bold")
        )
        return

    console.print(
        Text(f"Validation failed with {len(errors)} error(s):", style="red bold")
    )
    for error in errors:
        console.print(Text(f"  • {error}", style="red"))


def render_audit_entries(entries: list[dict]) -> None:
    if not entries:
        console.print(Text("No audit entries found.", style="dim"))
        return

    table = Table(title="Audit Log", show_header=True, header_style="bold")
    table.add_column("Timestamp")
    table.add_column("Action")
    table.add_column("Subject")
    table.add_column("Detail")
    table.add_column("User")
    table.add_column("Hostname")

    for entry in entries:
        table.add_row(
            *(
                str(entry.get(key, ""))
                for key in ("timestamp", "action", "subject", "detail", "user", "hostname")
            )
        )

    console.print(table)
