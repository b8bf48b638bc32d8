"""Read-only client for the on-call roster API."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from callrouting.loader import Settings
from callrouting.models import EscalationTier, PolicySchedule, Team

logger = logging.getLogger(__name__)


class RosterError(Exception):
    """Exception raised when the roster API cannot be reached or parsed."""


class RosterClient:
    """Thin wrapper over the roster platform's public API."""

    def __init__(
        self,
        api_host: str,
        api_id: str | None,
        api_key: str | None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = f"https://{api_host}/api-public"
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Content-Type": "application/json",
            "X-VO-Api-Id": api_id or "",
            "X-VO-Api-Key": api_key or "",
        }

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.Client | None = None
    ) -> RosterClient:
        return cls(
            settings.api_host,
            settings.api_id,
            settings.api_key,
            timeout=settings.request_timeout,
            client=client,
        )

    def _get(self, path: str, **params: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._client.get(url, headers=self._headers, params=params or None)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Roster request to %s failed: %s", url, exc)
            raise RosterError(f"Roster request to {url} failed: {exc}") from exc

    def list_teams(self) -> list[Team]:
        body = self._get("/v1/team")
        try:
            return [Team(name=t["name"], slug=t["slug"]) for t in body]
        except (KeyError, TypeError) as exc:
            raise RosterError(f"Unexpected team list payload: {exc}") from exc

    def escalation_tier(self, team_slug: str, step: int) -> EscalationTier:
        """Fetch the on-call schedules for one escalation step of a team."""
        body = self._get(f"/v2/team/{team_slug}/oncall/schedule", step=step)
        try:
            schedules = [
                PolicySchedule.model_validate(s) for s in body.get("schedules") or []
            ]
        except (AttributeError, ValidationError) as exc:
            raise RosterError(f"Unexpected schedule payload: {exc}") from exc
        return EscalationTier(step=step, schedules=schedules)

    def phone_numbers(self, username: str) -> list[str]:
        body = self._get(f"/v1/user/{username}/contact-methods/phones")
        try:
            return [m["value"] for m in body.get("contactMethods") or []]
        except (AttributeError, KeyError, TypeError) as exc:
            raise RosterError(f"Unexpected contact payload: {exc}") from exc

    def close(self) -> None:
        self._client.close()
