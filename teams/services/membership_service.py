from __future__ import annotations

import logging
from typing import Any

from teams.core.config import Settings, get_settings
from teams.core.exceptions import NotFoundError
from teams.schemas.identity import FederatedUser
from teams.schemas.team import MembershipView
from teams.services.membership_validator import (
    actor_role,
    can_not_upgrade_to_more_important_then_yourself,
    find_membership,
    guests_can_not_be_admin,
    members_can_not_change_roles,
    members_can_not_remove_others,
    one_admin_is_required,
)
from teams.services.person_store import PersonStore, create_person_store
from teams.services.roles import Role
from teams.services.team_store import TeamStore, create_team_store
from teams.services.team_views import map_membership

logger = logging.getLogger(__name__)


class MembershipService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        person_store: PersonStore | None = None,
        team_store: TeamStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.person_store = person_store or create_person_store(self.settings)
        self.team_store = team_store or create_team_store(self.settings)

    def change_role(
        self,
        *,
        federated_user: FederatedUser,
        team_id: str,
        person_urn: str,
        role: Role,
    ) -> MembershipView:
        team = self._require_team(team_id)
        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            role_of_actor = actor_role(memberships, federated_user, team)
            members_can_not_change_roles(role_of_actor)
            can_not_upgrade_to_more_important_then_yourself(role_of_actor, role)

            target = self._require_membership(memberships, person_urn)
            one_admin_is_required(memberships, person_urn, role)
            person = self.person_store.get_person_by_id(str(target.get("person_id", "")))
            if person:
                guests_can_not_be_admin(person, role)

            updated = self.team_store.update_membership_role(str(target["_id"]), Role(role).value)
            if not updated:
                raise NotFoundError("Membership", person_urn)

        logger.info(
            "Membership of %s in team %s changed to %s by %s",
            person_urn,
            team.get("urn"),
            Role(role).value,
            federated_user.urn,
        )
        return map_membership(updated, person)

    def remove_membership(
        self,
        *,
        federated_user: FederatedUser,
        team_id: str,
        person_urn: str,
    ) -> None:
        team = self._require_team(team_id)
        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            role_of_actor = actor_role(memberships, federated_user, team)
            target = self._require_membership(memberships, person_urn)
            members_can_not_remove_others(role_of_actor, person_urn, federated_user)
            one_admin_is_required(memberships, person_urn, None)
            self.team_store.delete_membership(str(target["_id"]))

        logger.info(
            "Membership of %s in team %s removed by %s",
            person_urn,
            team.get("urn"),
            federated_user.urn,
        )

    def _require_team(self, team_id: str) -> dict[str, Any]:
        team = self.team_store.get_team(team_id.strip())
        if not team:
            raise NotFoundError("Team", team_id)
        return team

    def _require_membership(self, memberships: list[dict[str, Any]], person_urn: str) -> dict[str, Any]:
        membership = find_membership(memberships, person_urn)
        if not membership:
            raise NotFoundError("Membership", person_urn)
        return dict(membership)
