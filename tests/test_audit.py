"""Tests for the audit logging module."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

from callrouting.audit import (
    audit_path,
    export_audit_log,
    read_audit_log,
    record_alert,
    record_event,
)
from callrouting.loader import AuditSettings
from callrouting.models import Alert, MessageType


def _make_audit(tmp_path: Path, *, enabled: bool = True) -> AuditSettings:
    """Build audit settings with output pointing at tmp_path."""
    return AuditSettings(enabled=enabled, output=str(tmp_path / "audit_logs"))


def _audit_file(tmp_path: Path) -> Path:
    return tmp_path / "audit_logs" / "audit.jsonl"


# ── record / read tests ───────────────────────────────────────────────────


def test_record_and_read(tmp_path: Path):
    """Writing 2 entries then reading should return exactly 2 entries."""
    audit = _make_audit(tmp_path)

    record_event("whois", "Platform", "2 responder(s)", audit)
    record_alert(
        Alert(entity_id="CA1", message_type=MessageType.CRITICAL, state_message="x"),
        "platform",
        audit,
    )

    entries = read_audit_log(_audit_file(tmp_path))

    assert len(entries) == 2
    assert entries[0]["action"] == "whois"
    assert entries[0]["subject"] == "Platform"
    assert entries[1]["action"] == "alert"
    assert entries[1]["subject"] == "CA1"
    assert entries[1]["detail"] == "critical -> platform"


def test_record_disabled(tmp_path: Path):
    """When audit is disabled, no file should be created."""
    record_event("whois", "Platform", "", _make_audit(tmp_path, enabled=False))

    assert not _audit_file(tmp_path).exists()


def test_read_empty_log(tmp_path: Path):
    """Reading a non-existent log file should return an empty list."""
    assert read_audit_log(tmp_path / "does_not_exist.jsonl") == []


def test_audit_entry_has_expected_fields(tmp_path: Path):
    """Every entry carries who, where and when."""
    record_event("alert", None, "recovery -> db", _make_audit(tmp_path))

    entry = read_audit_log(_audit_file(tmp_path))[0]

    assert set(entry) == {"timestamp", "action", "subject", "detail", "user", "hostname"}
    assert entry["subject"] == ""


# ── export tests ───────────────────────────────────────────────────────────


def test_export_json(tmp_path: Path):
    """Export to JSON: output should be parseable and contain the entry."""
    record_event("whois", "Platform", "1 responder(s)", _make_audit(tmp_path))

    output = export_audit_log(read_audit_log(_audit_file(tmp_path)), fmt="json")

    parsed = json.loads(output)
    assert len(parsed) == 1
    assert parsed[0]["subject"] == "Platform"


def test_export_csv(tmp_path: Path):
    """Export to CSV: output should contain headers and data rows."""
    record_event("whois", "Platform", "1 responder(s)", _make_audit(tmp_path))

    output = export_audit_log(read_audit_log(_audit_file(tmp_path)), fmt="csv")
    rows = list(csv.reader(io.StringIO(output)))

    # First row is the header
    assert "action" in rows[0]
    assert "Platform" in rows[1]


def test_export_jsonl(tmp_path: Path):
    """Any other format exports one JSON object per line."""
    audit = _make_audit(tmp_path)
    record_event("whois", "A", "", audit)
    record_event("whois", "B", "", audit)

    output = export_audit_log(read_audit_log(_audit_file(tmp_path)), fmt="jsonl")

    assert [json.loads(line)["subject"] for line in output.splitlines()] == ["A", "B"]


def test_export_csv_empty():
    """Exporting nothing as CSV yields an empty string."""
    assert export_audit_log([], fmt="csv") == ""


def test_audit_path_follows_output(tmp_path: Path):
    """Entries land in audit.jsonl under the configured output directory."""
    audit = AuditSettings(enabled=True, output=str(tmp_path / "elsewhere"))
    record_event("whois", "Platform", "", audit)

    assert audit_path(audit) == tmp_path / "elsewhere" / "audit.jsonl"
    assert read_audit_log(audit_path(audit))[0]["subject"] == "Platform"
