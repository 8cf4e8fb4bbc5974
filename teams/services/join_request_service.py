from __future__ import annotations

import logging
from typing import Any

from teams.core.config import Settings, get_settings
from teams.core.exceptions import IllegalJoinRequestError, NotAllowedError, NotFoundError
from teams.schemas.identity import FederatedUser
from teams.schemas.team import JoinRequestView, MembershipView
from teams.services.membership_validator import (
    actor_role,
    members_can_not_change_roles,
    membership_not_allowed,
    private_team_does_not_allow_members,
)
from teams.services.person_store import PersonStore, create_person_store
from teams.services.roles import Role, parse_role
from teams.services.team_store import TeamStore, create_team_store
from teams.services.team_views import map_join_request, map_membership

logger = logging.getLogger(__name__)


class JoinRequestService:
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

    def request_join(
        self,
        *,
        federated_user: FederatedUser,
        team_id: str,
        message: str | None,
    ) -> JoinRequestView:
        team = self._require_team(team_id)
        private_team_does_not_allow_members(team, federated_user.urn)
        person = self._require_person(federated_user.person.id, federated_user.urn)

        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            membership_not_allowed(memberships, federated_user.urn)
            join_request = self.team_store.create_or_update_pending_join_request(
                team_id=str(team["_id"]),
                person=person,
                message=(message or "").strip(),
                role=Role.MEMBER.value,
            )
        logger.info("Join request for team %s by %s", team.get("urn"), federated_user.urn)
        return map_join_request(join_request, person=person, team=team)

    def approve_join_request(
        self,
        *,
        federated_user: FederatedUser,
        join_request_id: str,
    ) -> MembershipView:
        team = self._team_of(self._require_join_request(join_request_id))

        with self.team_store.team_lock(str(team["_id"])):
            join_request = self._require_join_request(join_request_id)
            requester = self._require_person(
                str(join_request.get("person_id", "")),
                str(join_request.get("person_urn", "")),
            )
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            members_can_not_change_roles(actor_role(memberships, federated_user, team))
            membership_not_allowed(memberships, str(requester.get("urn", "")))
            self._claim_join_request(join_request)
            try:
                membership = self.team_store.create_membership(
                    team=team,
                    person=requester,
                    role=parse_role(join_request.get("role")).value,
                    origin="join_request_accepted",
                )
            except ValueError as exc:
                raise IllegalJoinRequestError(
                    f"{requester.get('urn')} is already a member of this team.",
                    {"person_urn": str(requester.get("urn", ""))},
                ) from exc

        logger.info(
            "Join request %s for team %s approved by %s",
            join_request_id,
            team.get("urn"),
            federated_user.urn,
        )
        return map_membership(membership, requester)

    def reject_join_request(
        self,
        *,
        federated_user: FederatedUser,
        join_request_id: str,
    ) -> JoinRequestView:
        team = self._team_of(self._require_join_request(join_request_id))

        with self.team_store.team_lock(str(team["_id"])):
            join_request = self._require_join_request(join_request_id)
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            members_can_not_change_roles(actor_role(memberships, federated_user, team))
            self._claim_join_request(join_request)

        logger.info(
            "Join request %s for team %s rejected by %s",
            join_request_id,
            team.get("urn"),
            federated_user.urn,
        )
        requester = self.person_store.get_person_by_id(str(join_request.get("person_id", "")))
        return map_join_request(join_request, person=requester, team=team, status="rejected")

    def withdraw_join_request(self, *, federated_user: FederatedUser, join_request_id: str) -> None:
        team = self._team_of(self._require_join_request(join_request_id))

        with self.team_store.team_lock(str(team["_id"])):
            join_request = self._require_join_request(join_request_id)
            if str(join_request.get("person_id", "")) != federated_user.person.id:
                raise NotAllowedError(
                    "Only the requester can delete a join request.",
                    {"join_request_id": join_request_id},
                )
            self._claim_join_request(join_request)
        logger.info("Join request %s withdrawn by %s", join_request_id, federated_user.urn)

    def _claim_join_request(self, join_request: dict[str, Any]) -> None:
        if not self.team_store.delete_join_request(str(join_request["_id"])):
            raise IllegalJoinRequestError(
                "Join request is no longer pending.",
                {"join_request_id": str(join_request.get("_id", ""))},
            )

    def _team_of(self, join_request: dict[str, Any]) -> dict[str, Any]:
        return self._require_team(str(join_request.get("team_id", "")))

    def _require_team(self, team_id: str) -> dict[str, Any]:
        team = self.team_store.get_team(team_id.strip())
        if not team:
            raise NotFoundError("Team", team_id)
        return team

    def _require_join_request(self, join_request_id: str) -> dict[str, Any]:
        join_request = self.team_store.get_join_request(join_request_id.strip())
        if not join_request:
            raise NotFoundError("JoinRequest", join_request_id)
        return join_request

    def _require_person(self, person_id: str, person_urn: str) -> dict[str, Any]:
        person = self.person_store.get_person_by_id(person_id)
        if not person:
            raise NotFoundError("Person", person_urn or person_id)
        return person
