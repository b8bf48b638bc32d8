"""Audit trail of posted alerts and operator lookups."""

from __future__ import annotations

import csv
import getpass
import io
import json
import socket
from datetime import UTC, datetime
from pathlib import Path

from callrouting.loader import AuditSettings
from callrouting.models import Alert

DEFAULT_AUDIT_PATH = Path("./audit_logs/audit.jsonl")


def audit_path(audit: AuditSettings) -> Path:
    """Return the JSONL file that entries for these settings go to."""
    return Path(audit.output) / "audit.jsonl"


def _get_user() -> str:
    """Return the current username, or 'unknown' on failure."""
    try:
        return getpass.getuser()
    except Exception:
        return "unknown"


def _get_hostname() -> str:
    """Return the current hostname, or 'unknown' on failure."""
    try:
        return socket.gethostname()
    except Exception:
        return "unknown"


def record_event(
    action: str,
    subject: str | None,
    detail: str,
    audit: AuditSettings,
) -> None:
    """Append an audit entry to the JSONL log file.

    Args:
        action: What happened (``alert``, ``whois``).
        subject: Entity id for alerts, team name for lookups.
        detail: Short free-form description.
        audit: Audit settings; nothing is written unless enabled.
    """
    if not audit.enabled:
        return

    path = audit_path(audit)
    path.parent.mkdir(parents=True, exist_ok=True)

    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "action": action,
        "subject": subject or "",
        "detail": detail,
        "user": _get_user(),
        "hostname": _get_hostname(),
    }

    with open(path, "a") as f:
        f.write(json.dumps(entry) + "\n")


def record_alert(alert: Alert, routing_key: str, audit: AuditSettings) -> None:
    record_event(
        "alert",
        alert.entity_id,
        f"{alert.message_type.value} -> {routing_key}",
        audit,
    )


def read_audit_log(audit_path: Path | None = None) -> list[dict]:
    """Read all entries from a JSONL audit log file."""
    if audit_path is None:
        audit_path = DEFAULT_AUDIT_PATH

    if not audit_path.is_file():
        return []

    entries: list[dict] = []
    with open(audit_path) as f:
        for line in f:
            line = line.strip()
            if line:
                entries.append(json.loads(line))
    return entries


def export_audit_log(entries: list[dict], fmt: str = "json") -> str:
    """Export audit entries as ``json``, ``csv``, or JSONL for anything else."""
    if fmt == "json":
        return json.dumps(entries, indent=2)

    if fmt == "csv":
        if not entries:
            return ""
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=list(entries[0].keys()))
        writer.writeheader()
        writer.writerows(entries)
        return output.getvalue()

    return "\n".join(json.dumps(e) for e in entries)
