"""YAML + environment settings loader and validator."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from callrouting.models import Team

DEFAULT_CONFIG_PATH = Path("callrouting.yaml")

DEFAULT_VOICE = "Polly.Salli"
ALLOWED_VOICES = ("alice", "man", "Polly.Salli", "Polly.Matthew", "Polly.Joanna")

# Environment variable -> settings field. Later entries win.
ENV_KEYS: dict[str, str] = {
    "ALERT_HOST": "alert_host",
    "API_HOST": "api_host",
    "NUMBER_OF_MENUS": "number_of_menus",
    "voice": "voice",
    "VOICE": "voice",
    "NO_VOICEMAIL": "no_voicemail",
    "NO_CALL": "no_call",
    "VM_EMAIL": "vm_email",
    "VICTOROPS_API_ID": "api_id",
    "VICTOROPS_API_KEY": "api_key",
    "VICTOROPS_TWILIO_SERVICE_API_KEY": "service_api_key",
    "PUBLIC_BASE_URL": "public_base_url",
    "REQUEST_TIMEOUT": "request_timeout",
    "LOG_LEVEL": "log_level",
}

EMAIL_ENV_KEYS: dict[str, str] = {
    "TO_EMAIL_ADDRESS": "to_address",
    "FROM_EMAIL_ADDRESS": "from_address",
    "SMTP_HOST": "smtp_host",
    "SMTP_PORT": "smtp_port",
}

REQUIRED_SECRETS: dict[str, str] = {
    "api_id": "VICTOROPS_API_ID",
    "api_key": "VICTOROPS_API_KEY",
    "service_api_key": "VICTOROPS_TWILIO_SERVICE_API_KEY",
}

_cache: dict[str, Settings] = {}


class ConfigError(Exception):
    """Exception raised for errors during settings loading."""


class EmailSettings(BaseModel):
    to_address: str | None = None
    from_address: str | None = None
    smtp_host: str = "localhost"
    smtp_port: int = 25


class AuditSettings(BaseModel):
    enabled: bool = False
    output: str = "./audit_logs/"


class Settings(BaseModel):
    """Runtime options for live call routing."""

    alert_host: str = "alert.victorops.com"
    api_host: str = "api.victorops.com"
    number_of_menus: int = 0
    voice: str = DEFAULT_VOICE
    no_voicemail: bool = False
    no_call: bool = False
    vm_email: bool = False
    api_id: str | None = None
    api_key: str | None = None
    service_api_key: str | None = None
    public_base_url: str = ""
    request_timeout: float = Field(default=10.0, gt=0)
    log_level: str = "INFO"
    teams: list[Team] = Field(default_factory=list)
    email: EmailSettings = Field(default_factory=EmailSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    @field_validator("number_of_menus", mode="before")
    @classmethod
    def _normalize_menus(cls, v: Any) -> int:
        """Only 1 and 2 are meaningful; everything else means no menus."""
        value = str(v).strip() if v is not None else ""
        return int(value) if value in ("1", "2") else 0

    @field_validator("voice", mode="before")
    @classmethod
    def _restrict_voice(cls, v: Any) -> str:
        return v if v in ALLOWED_VOICES else DEFAULT_VOICE

    @field_validator("no_voicemail", "no_call", "vm_email", mode="before")
    @classmethod
    def _parse_flag(cls, v: Any) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() == "true"

    def missing_secrets(self) -> list[str]:
        """Return the environment names of required secrets that are unset."""
        return [
            env for field, env in REQUIRED_SECRETS.items()
            if not getattr(self, field)
        ]


def _overlay_env(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    merged = dict(data)
    for env_key, field in ENV_KEYS.items():
        if env_key in environ:
            merged[field] = environ[env_key]

    email = dict(merged.get("email") or {})
    for env_key, field in EMAIL_ENV_KEYS.items():
        if env_key in environ:
            email[field] = environ[env_key]
    if email:
        merged["email"] = email
    return merged


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load, overlay, validate and cache settings.

    Args:
        config_path: YAML file to read. A missing default file is not an
            error; a missing explicit file is.
        environ: Environment mapping (default: ``os.environ``).

    Returns:
        A validated Settings instance.

    Raises:
        ConfigError: If the file is missing, unreadable or fails validation.
    """
    explicit = config_path is not None
    path = config_path or DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    resolved = str(path.resolve())
    # Cache only what comes from the real environment.
    if environ is None and resolved in _cache:
        return _cache[resolved]

    data: dict[str, Any] = {}
    if path.is_file():
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        data = loaded or {}
    elif explicit:
        raise ConfigError(f"Config file not found: {path}")

    try:
        settings = Settings.model_validate(_overlay_env(data, env))
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    if environ is None:
        _cache[resolved] = settings
    return settings


def clear_cache() -> None:
    """Clear the in-memory settings cache."""
    _cache.clear()


def validate_settings(settings: Settings) -> list[str]:
    """Check a loaded configuration for problems.

    Returns a list of error messages. An empty list means the configuration
    is usable.
    """
    errors: list[str] = []

    for env in settings.missing_secrets():
        errors.append(f"Missing required secret {env}")

    seen: set[str] = set()
    for team in settings.teams:
        if team.name in seen:
            errors.append(f"Team '{team.name}' is configured more than once")
        seen.add(team.name)

    if settings.vm_email and not (
        settings.email.to_address and settings.email.from_address
    ):
        errors.append(
            "VM_EMAIL is enabled but TO_EMAIL_ADDRESS or FROM_EMAIL_ADDRESS is unset"
        )

    return errors
