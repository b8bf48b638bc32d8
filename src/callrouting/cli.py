"""CLI interface for live call routing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from callrouting.audit import audit_path, export_audit_log, read_audit_log, record_event
from callrouting.loader import ConfigError, Settings, load_settings, validate_settings
from callrouting.output import (
    render_audit_entries,
    render_responders,
    render_responders_json,
    render_team_list,
    render_validation_errors,
)
from callrouting.resolver import TeamResolutionError, resolve_responders, routable_teams
from callrouting.roster import RosterClient, RosterError

console = Console()

app = typer.Typer(
    name="callrouting",
    help="Live call routing: connect callers to whoever is on call.",
    no_args_is_help=True,
)

audit_app = typer.Typer(help="Audit trail commands.")
app.add_typer(audit_app, name="audit")

ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="Path to YAML settings file.")
]


def _settings(config: Path | None) -> Settings:
    try:
        return load_settings(config)
    except ConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
        force=True,
    )


@app.command("serve")
def serve_cmd(
    config: ConfigOption = None,
    host: Annotated[str, typer.Option("--host", help="Bind address.")] = "0.0.0.0",
    port: Annotated[int, typer.Option("--port", help="Bind port.")] = 8000,
) -> None:
    """Run the webhook server."""
    import uvicorn

    from callrouting.app import create_app

    settings = _settings(config)
    setup_logging(settings.log_level)
    for problem in validate_settings(settings):
        logging.getLogger(__name__).warning("%s", problem)
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


@app.command("teams")
def teams_cmd(config: ConfigOption = None) -> None:
    """List the teams callers can be routed to."""
    settings = _settings(config)
    roster = RosterClient.from_settings(settings)
    try:
        render_team_list(routable_teams(roster, settings.teams))
    except (RosterError, TeamResolutionError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)
    finally:
        roster.close()


@app.command("whois")
def whois_cmd(
    team_name: Annotated[str, typer.Argument(help="Team name to resolve.")],
    config: ConfigOption = None,
    as_json: Annotated[
        bool, typer.Option("--json", help="Output as JSON.")
    ] = False,
) -> None:
    """Show who would be dialed, in order, for a team right now."""
    settings = _settings(config)
    roster = RosterClient.from_settings(settings)
    try:
        teams = {t.name: t for t in routable_teams(roster, settings.teams)}
        team = teams.get(team_name)
        if team is None:
            available = ", ".join(sorted(teams))
            console.print(
                f"[red]Error:[/red] Team '{team_name}' not found. "
                f"Available teams: {available}"
            )
            raise typer.Exit(code=1)
        responders = resolve_responders(roster, team)
    except (RosterError, TeamResolutionError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1)
    finally:
        roster.close()

    record_event("whois", team.name, f"{len(responders)} responder(s)", settings.audit)
    if as_json:
        render_responders_json(team, responders)
    else:
        render_responders(team, responders)


@app.command("validate")
def validate_cmd(config: ConfigOption = None) -> None:
    """Validate settings for missing secrets and inconsistencies."""
    settings = _settings(config)
    errors = validate_settings(settings)
    render_validation_errors(errors)
    if errors:
        raise typer.Exit(code=1)


AuditPathOption = Annotated[
    Optional[Path],
    typer.Option("--path", help="Audit log file (default: from settings)."),
]


def _audit_file(path: Path | None, config: Path | None) -> Path:
    if path is not None:
        return path
    return audit_path(_settings(config).audit)


@audit_app.command("show")
def audit_show(
    path: AuditPathOption = None,
    config: ConfigOption = None,
) -> None:
    """Show audit log entries."""
    render_audit_entries(read_audit_log(_audit_file(path, config)))


@audit_app.command("export")
def audit_export(
    fmt: Annotated[
        str, typer.Option("--format", "-f", help="Export format: json or csv.")
    ] = "json",
    path: AuditPathOption = None,
    config: ConfigOption = None,
) -> None:
    """Export audit log entries in JSON or CSV format."""
    entries = read_audit_log(_audit_file(path, config))
    if not entries:
        console.print("[dim]No audit entries to export.[/dim]")
        raise typer.Exit(code=0)
    console.print(export_audit_log(entries, fmt=fmt))
