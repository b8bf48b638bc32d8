"""Shared fixtures: a fake roster/incident platform and TwiML helpers."""

from __future__ import annotations

import json
import random
import xml.etree.ElementTree as ET
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import respx

from callrouting.alerts import IncidentClient
from callrouting.continuation import PARAM, decode
from callrouting.flow import CallFlow
from callrouting.loader import Settings, clear_cache
from callrouting.models import ContinuationPayload
from callrouting.roster import RosterClient

API_HOST = "api.victorops.com"
ALERT_HOST = "alert.victorops.com"
ANA_PHONE = "+15550000001"

SECRETS = {
    "api_id": "api-id",
    "api_key": "api-key",
    "service_api_key": "service-key",
}


def rotation(name: str, user: str | None = None, override: str | None = None) -> dict:
    entry: dict = {"rotationName": name}
    if user is not None:
        entry["onCallUser"] = {"username": user}
    if override is not None:
        entry["overrideOnCallUser"] = {"username": override}
    return entry


def policy_schedule(policy: str, *rotations: dict) -> dict:
    return {
        "policy": {"name": policy, "slug": policy.lower().replace(" ", "-")},
        "schedule": list(rotations),
    }


class FakePlatform:
    """Roster and alert endpoints served through respx."""

    def __init__(self, mock: respx.MockRouter) -> None:
        self.teams: list[dict] = []
        self.tiers: dict[int, list[dict]] = {}
        self.phones: dict[str, list[str]] = {}
        self.alert_status = 200
        self.schedule_status = 200
        self.team_status = 200

        self.team_route = mock.get(host=API_HOST, path="/api-public/v1/team").mock(
            side_effect=lambda request: httpx.Response(self.team_status, json=self.teams)
        )
        self.schedule_route = mock.get(
            host=API_HOST, path__regex=r"^/api-public/v2/team/[^/]+/oncall/schedule$"
        ).mock(side_effect=self._schedule)
        self.phone_route = mock.get(
            host=API_HOST, path__regex=r"^/api-public/v1/user/[^/]+/contact-methods/phones$"
        ).mock(side_effect=self._phones)
        self.alert_route = mock.post(
            host=ALERT_HOST, path__startswith="/integrations/generic/20131114/alert/"
        ).mock(side_effect=lambda request: httpx.Response(self.alert_status, json={}))

    def _schedule(self, request: httpx.Request) -> httpx.Response:
        if self.schedule_status != 200:
            return httpx.Response(self.schedule_status)
        step = int(request.url.params["step"])
        return httpx.Response(200, json={"schedules": self.tiers.get(step, [])})

    def _phones(self, request: httpx.Request) -> httpx.Response:
        username = request.url.path.split("/")[4]
        methods = [{"value": v} for v in self.phones.get(username, [])]
        return httpx.Response(200, json={"contactMethods": methods})

    def add_team(self, name: str, slug: str) -> None:
        self.teams.append({"name": name, "slug": slug})

    def on_call(self, step: int, user: str, phone: str | None = None, policy: str = "Primary") -> None:
        """Put a single user on call for a tier."""
        self.tiers.setdefault(step, []).append(
            policy_schedule(policy, rotation(f"{policy} rotation {step}", user))
        )
        if phone is not None:
            self.phones[user] = [phone]

    @property
    def alerts(self) -> list[dict]:
        return [json.loads(call.request.content) for call in self.alert_route.calls]

    @property
    def alert_urls(self) -> list[str]:
        return [str(call.request.url) for call in self.alert_route.calls]


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def platform():
    with respx.mock(assert_all_called=False) as mock:
        yield FakePlatform(mock)


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        data = {**SECRETS, **overrides}
        return Settings(**data)

    return _make


@pytest.fixture
def make_flow(make_settings):
    def _make(notifier=None, seed: int = 7, **overrides) -> CallFlow:
        settings = make_settings(**overrides)
        return CallFlow(
            settings,
            roster=RosterClient.from_settings(settings),
            incidents=IncidentClient.from_settings(settings),
            notifier=notifier,
            rng=random.Random(seed),
        )

    return _make


# ── TwiML helpers ─────────────────────────────────────────────────────────


def parse(twiml) -> ET.Element:
    return ET.fromstring(str(twiml).encode("utf-8"))


def said(root: ET.Element) -> list[str]:
    return [el.text or "" for el in root.iter("Say")]


def token_of(url: str) -> str:
    return parse_qs(urlparse(url).query)[PARAM][0]


def payload_of(url: str) -> ContinuationPayload:
    return decode(token_of(url))


def redirect_url(root: ET.Element) -> str:
    redirect = root.find("Redirect")
    assert redirect is not None, "expected a Redirect verb"
    return redirect.text or ""
