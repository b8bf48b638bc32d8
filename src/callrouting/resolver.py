"""On-call responder resolution across escalation tiers."""

from __future__ import annotations

import logging
import random

from callrouting.models import Candidate, EscalationTier, Rotation, Team
from callrouting.roster import RosterClient

logger = logging.getLogger(__name__)

# Escalation steps 0, 1 and 2 are consulted; this is not configurable.
MAX_TIERS = 3


def collect_overrides(tier: EscalationTier) -> dict[str, str]:
    """Map rotation name to overriding username for every active override.

    Only the first tier is scanned by callers; the result is applied to
    rotations with the same name in every tier, so an override on a rotation
    that is not itself listed (e.g. a hidden secondary) still takes effect.
    """
    overrides: dict[str, str] = {}
    for policy_schedule in tier.schedules:
        for rotation in policy_schedule.schedule:
            if rotation.override_on_call_user is not None:
                overrides[rotation.rotation_name] = rotation.override_on_call_user.username
    return overrides


def select_schedule(
    tier: EscalationTier, policy_name: str | None
) -> list[Rotation] | None:
    """Pick the rotations to use from a tier.

    - A configured policy name selects the schedule with that policy name.
    - Otherwise the first schedule is used.
    - ``None`` means no usable schedule.
    """
    if policy_name is not None:
        for policy_schedule in tier.schedules:
            if policy_schedule.policy.name == policy_name:
                return policy_schedule.schedule
        return None
    if tier.schedules:
        return tier.schedules[0].schedule
    return None


def eligible_users(rotations: list[Rotation], overrides: dict[str, str]) -> list[str]:
    """Return the on-duty username per rotation, overrides first."""
    users: list[str] = []
    for rotation in rotations:
        if rotation.rotation_name in overrides:
            users.append(overrides[rotation.rotation_name])
        elif rotation.on_call_user is not None:
            users.append(rotation.on_call_user.username)
    return users


def resolve_tier(
    roster: RosterClient,
    tier: EscalationTier,
    policy_name: str | None,
    overrides: dict[str, str],
    rng: random.Random,
) -> Candidate | None:
    """Resolve a single tier to at most one candidate."""
    rotations = select_schedule(tier, policy_name)
    if rotations is None:
        logger.debug("Tier %d has no usable schedule", tier.step)
        return None

    users = eligible_users(rotations, overrides)
    if not users:
        logger.debug("Tier %d has nobody on call", tier.step)
        return None

    # TODO: confirm whether first-listed selection was intended here
    username = rng.choice(users)
    phones = roster.phone_numbers(username)
    if not phones:
        logger.info("On-call user %s has no phone contact method", username)
        return None
    return Candidate(username=username, phone=phones[0])


def resolve_responders(
    roster: RosterClient,
    team: Team,
    rng: random.Random | None = None,
) -> list[Candidate]:
    """Build the ordered responder queue for a team.

    Args:
        roster: Client for the roster API.
        team: The team whose escalation tiers are consulted.
        rng: Random source for tie-breaks (default: a fresh ``random.Random``).

    Returns:
        One candidate per tier that has someone reachable, in tier order.

    Raises:
        RosterError: If any roster request fails.
    """
    rng = rng or random.Random()

    tiers = [roster.escalation_tier(team.slug, step) for step in range(MAX_TIERS)]
    overrides = collect_overrides(tiers[0])
    if overrides:
        logger.info("Active overrides for %s: %s", team.slug, overrides)

    responders: list[Candidate] = []
    for tier in tiers:
        candidate = resolve_tier(roster, tier, team.escalation_policy, overrides, rng)
        if candidate is not None:
            responders.append(candidate)
    return responders


class TeamResolutionError(Exception):
    """Exception raised when a configured team is missing from the roster."""

    def __init__(self, team_name: str) -> None:
        super().__init__(f"Team '{team_name}' not found in roster")
        self.team_name = team_name


def routable_teams(roster: RosterClient, configured: list[Team]) -> list[Team]:
    """Return the teams a caller can be routed to.

    With no configured teams every roster team is routable. Otherwise each
    configured team is matched by name to its roster slug, keeping the
    configured order and escalation policy.

    Raises:
        TeamResolutionError: On the first configured team with no roster match.
        RosterError: If the team list cannot be fetched.
    """
    roster_teams = roster.list_teams()
    if not configured:
        return roster_teams

    slugs = {t.name: t.slug for t in roster_teams}
    resolved: list[Team] = []
    for team in configured:
        if team.name not in slugs:
            raise TeamResolutionError(team.name)
        resolved.append(team.model_copy(update={"slug": slugs[team.name]}))
    return resolved
