from __future__ import annotations

from typing import Any

from teams.core.config import Settings, get_settings
from teams.services.membership_validator import find_membership
from teams.services.roles import Role, parse_role
from teams.services.team_store import TeamStore, create_team_store


class IdentityDirectory:
    """Resolves the configured super-admin teams and their memberships."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        team_store: TeamStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.team_store = team_store or create_team_store(self.settings)

    def super_admin_team_urns(self) -> list[str]:
        return list(self.settings.super_admin_team_urns)

    def find_membership(self, team_urn: str, person_urn: str) -> dict[str, Any] | None:
        team = self.team_store.get_team_by_urn(team_urn)
        if not team:
            return None
        memberships = self.team_store.list_memberships_for_team(str(team.get("_id", "")))
        membership = find_membership(memberships, person_urn)
        return dict(membership) if membership else None

    def is_super_admin(self, person_urn: str) -> bool:
        # Any non-OWNER membership in one of the super-admin teams elevates.
        for team_urn in self.super_admin_team_urns():
            membership = self.find_membership(team_urn, person_urn)
            if not membership or not membership.get("role"):
                continue
            if parse_role(membership.get("role")) != Role.OWNER:
                return True
        return False
