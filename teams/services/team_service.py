from __future__ import annotations

import logging
import re
import secrets
from collections.abc import Mapping
from typing import Any

from teams.core.config import Settings, get_settings
from teams.core.exceptions import DuplicateTeamNameError, NotAllowedError, NotFoundError, TeamsError
from teams.schemas.identity import FederatedUser
from teams.schemas.team import (
    AdminContact,
    ExternalTeamLinkRequest,
    ExternalTeamView,
    Language,
    MyTeamsResponse,
    PublicTeam,
    TeamCreateRequest,
    TeamDetail,
    TeamSummary,
    TeamUpdateRequest,
    TeamViewVariant,
)
from teams.services.invitation_service import InvitationService
from teams.services.membership_validator import (
    actor_role,
    find_membership,
    guests_not_allowed,
    only_admin_allowed,
    team_view_variant,
)
from teams.services.person_store import PersonStore, create_person_store
from teams.services.roles import Role, at_least, parse_role
from teams.services.team_store import TeamStore, create_team_store
from teams.services.team_views import (
    as_datetime,
    invitation_status,
    map_external_team,
    map_invitation,
    map_join_request,
    map_membership,
    membership_count,
)

logger = logging.getLogger(__name__)

_URN_UNSAFE_CHARACTERS = re.compile(r"[ ']")


class TeamService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        person_store: PersonStore | None = None,
        team_store: TeamStore | None = None,
        invitation_service: InvitationService | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.person_store = person_store or create_person_store(self.settings)
        self.team_store = team_store or create_team_store(self.settings)
        self.invitation_service = invitation_service or InvitationService(
            self.settings,
            person_store=self.person_store,
            team_store=self.team_store,
        )

    def construct_urn(self, name: str) -> str:
        return _URN_UNSAFE_CHARACTERS.sub("_", f"{self.settings.default_stem_name}:{name.lower().strip()}")

    def team_exists_by_name(self, name: str) -> bool:
        return self.team_store.get_team_by_urn(self.construct_urn(name)) is not None

    def create_team(
        self,
        *,
        federated_user: FederatedUser,
        payload: TeamCreateRequest,
        language: Language,
    ) -> TeamDetail:
        guests_not_allowed(federated_user, "create")
        urn = self.construct_urn(payload.name)
        person = self.person_store.get_person_by_id(federated_user.person.id)
        if not person:
            raise NotFoundError("Person", federated_user.urn)

        team_record = {
            "urn": urn,
            "name": payload.name.strip(),
            "description": _clean_text(payload.description),
            "personal_note": _clean_text(payload.personal_note),
            "viewable": payload.viewable,
            "hide_members": payload.hide_members,
            "public_link": _new_public_link() if payload.viewable else None,
            "public_link_disabled": not payload.viewable,
        }
        try:
            team = self.team_store.create_team(team=team_record, admin=person)
        except ValueError as exc:
            raise DuplicateTeamNameError(
                f"Team with name {payload.name} already exists.",
                {"name": payload.name, "urn": urn},
            ) from exc

        logger.info("Team %s created by %s", urn, federated_user.urn)

        if payload.email and payload.email.strip():
            try:
                self.invitation_service.invite(
                    federated_user=federated_user,
                    team_id=str(team["_id"]),
                    email=payload.email,
                    intended_role=Role.ADMIN,
                    message=payload.invitation_message,
                    language=payload.language or language,
                )
            except TeamsError as exc:
                logger.warning("Unable to invite admin %s for team %s: %s", payload.email, urn, exc)

        return self._full_view(team, federated_user)

    def update_team(self, *, federated_user: FederatedUser, payload: TeamUpdateRequest) -> TeamDetail:
        guests_not_allowed(federated_user, "update")
        team = self._require_team(payload.id)
        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            only_admin_allowed(actor_role(memberships, federated_user, team), federated_user, team, "update")

            updates: dict[str, Any] = {
                "description": _clean_text(payload.description),
                "personal_note": _clean_text(payload.personal_note),
                "viewable": payload.viewable,
                "hide_members": payload.hide_members,
            }
            was_viewable = bool(team.get("viewable", False))
            if was_viewable and not payload.viewable:
                updates["public_link_disabled"] = True
            elif payload.viewable and not was_viewable:
                updates["public_link"] = _new_public_link()
                updates["public_link_disabled"] = False
            updated = self.team_store.update_team(str(team["_id"]), updates)
            if not updated:
                raise NotFoundError("Team", payload.id)

        logger.info("Team %s updated by %s", team.get("urn"), federated_user.urn)
        return self._full_view(updated, federated_user)

    def reset_public_link(self, *, federated_user: FederatedUser, team_id: str) -> TeamDetail:
        team = self._require_team(team_id)
        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            only_admin_allowed(
                actor_role(memberships, federated_user, team),
                federated_user,
                team,
                "reset the public link of",
            )
            updated = self.team_store.update_team(
                str(team["_id"]),
                {"public_link": _new_public_link(), "public_link_disabled": False, "viewable": True},
            )
            if not updated:
                raise NotFoundError("Team", team_id)

        logger.info("Public link of team %s reset by %s", team.get("urn"), federated_user.urn)
        return self._full_view(updated, federated_user)

    def delete_team(self, *, federated_user: FederatedUser, team_id: str) -> None:
        guests_not_allowed(federated_user, "delete")
        team = self._require_team(team_id)
        record_id = str(team["_id"])
        with self.team_store.team_lock(record_id):
            memberships = self.team_store.list_memberships_for_team(record_id)
            only_admin_allowed(actor_role(memberships, federated_user, team), federated_user, team, "delete")

            for external_team in self.team_store.list_external_teams_for_team(record_id):
                self.team_store.unlink_external_team(str(external_team["_id"]), record_id)
            join_requests = self.team_store.delete_join_requests_for_team(record_id)
            invitations = self.team_store.delete_invitations_for_team(record_id)
            removed_memberships = self.team_store.delete_memberships_for_team(record_id)
            self.team_store.delete_team(record_id)

        logger.info(
            "Team %s deleted by %s (%d memberships, %d invitations, %d join requests)",
            team.get("urn"),
            federated_user.urn,
            removed_memberships,
            invitations,
            join_requests,
        )

    def get_team(self, *, federated_user: FederatedUser, team_id: str) -> TeamDetail | PublicTeam:
        team = self._require_team(team_id)
        memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
        membership = find_membership(memberships, federated_user.urn)
        variant = team_view_variant(membership, team, federated_user)
        if variant == TeamViewVariant.FULL:
            return self._full_view(team, federated_user, memberships=memberships)
        if variant == TeamViewVariant.PUBLIC:
            return self._public_view(team, federated_user, memberships)
        raise NotAllowedError(
            f"Team {team.get('urn')} is private.",
            {"team_id": str(team["_id"]), "person_urn": federated_user.urn},
        )

    def my_teams(self, *, federated_user: FederatedUser) -> MyTeamsResponse:
        own_memberships = self.team_store.list_memberships_for_person(federated_user.person.id)
        role_by_team_id = {
            str(membership.get("team_id", "")): parse_role(membership.get("role"))
            for membership in own_memberships
        }
        teams = self.team_store.list_teams_by_ids(list(role_by_team_id))
        managed_team_ids = [
            team_id for team_id, role in role_by_team_id.items() if at_least(role, Role.MANAGER)
        ]
        teams_by_id = {str(team["_id"]): team for team in teams}

        pending_join_requests = self.team_store.list_join_requests_for_teams(managed_team_ids)
        join_request_counts: dict[str, int] = {}
        for join_request in pending_join_requests:
            team_id = str(join_request.get("team_id", ""))
            join_request_counts[team_id] = join_request_counts.get(team_id, 0) + 1

        summaries: list[TeamSummary] = []
        for team in teams:
            team_id = str(team["_id"])
            role = role_by_team_id[team_id]
            manages = at_least(role, Role.MANAGER)
            invitations_count = 0
            if manages:
                invitations_count = sum(
                    1
                    for invitation in self.team_store.list_invitations_for_team(team_id)
                    if invitation_status(invitation, self.settings.invitation_expiry_days) == "pending"
                )
            summaries.append(
                TeamSummary(
                    id=team_id,
                    urn=str(team.get("urn", "")),
                    name=str(team.get("name", "")),
                    description=team.get("description"),
                    role=role,
                    membership_count=membership_count(self.team_store.list_memberships_for_team(team_id)),
                    join_requests_count=join_request_counts.get(team_id, 0) if manages else 0,
                    invitations_count=invitations_count,
                ),
            )
        summaries.sort(key=lambda summary: summary.name.lower())

        requesters = self._persons_by_id(str(jr.get("person_id", "")) for jr in pending_join_requests)
        my_join_requests = self.team_store.list_join_requests_for_person(federated_user.person.id)
        return MyTeamsResponse(
            team_summaries=summaries,
            my_join_requests=[
                map_join_request(join_request, team=self.team_store.get_team(str(join_request.get("team_id", ""))))
                for join_request in my_join_requests
            ],
            join_requests=[
                map_join_request(
                    join_request,
                    person=requesters.get(str(join_request.get("person_id", ""))),
                    team=teams_by_id.get(str(join_request.get("team_id", ""))),
                )
                for join_request in pending_join_requests
            ],
            invitations_received=[
                map_invitation(
                    invitation,
                    expiry_days=self.settings.invitation_expiry_days,
                    team=self.team_store.get_team(str(invitation.get("team_id", ""))),
                )
                for invitation in self.team_store.list_invitations_for_email(federated_user.person.email)
            ],
            invitations_sent=[
                map_invitation(
                    invitation,
                    expiry_days=self.settings.invitation_expiry_days,
                    team=self.team_store.get_team(str(invitation.get("team_id", ""))),
                )
                for invitation in self.team_store.list_invitations_sent_by(federated_user.person.id)
            ],
        )

    def link_external_team(
        self,
        *,
        federated_user: FederatedUser,
        payload: ExternalTeamLinkRequest,
    ) -> list[ExternalTeamView]:
        team = self._require_team(payload.team_id)
        record_id = str(team["_id"])
        with self.team_store.team_lock(record_id):
            memberships = self.team_store.list_memberships_for_team(record_id)
            only_admin_allowed(actor_role(memberships, federated_user, team), federated_user, team, "link")
            external_team = self.team_store.upsert_external_team(
                identifier=payload.identifier,
                name=payload.name or payload.identifier,
                description=payload.description,
                group_provider=payload.group_provider,
            )
            self.team_store.link_external_team(str(external_team["_id"]), record_id)

        logger.info(
            "External team %s linked to team %s by %s",
            payload.identifier,
            team.get("urn"),
            federated_user.urn,
        )
        return self._external_teams(record_id)

    def unlink_external_team(
        self,
        *,
        federated_user: FederatedUser,
        payload: ExternalTeamLinkRequest,
    ) -> list[ExternalTeamView]:
        team = self._require_team(payload.team_id)
        record_id = str(team["_id"])
        with self.team_store.team_lock(record_id):
            memberships = self.team_store.list_memberships_for_team(record_id)
            only_admin_allowed(actor_role(memberships, federated_user, team), federated_user, team, "unlink")
            external_team = self.team_store.get_external_team_by_identifier(payload.identifier)
            if not external_team:
                raise NotFoundError("ExternalTeam", payload.identifier)
            self.team_store.unlink_external_team(str(external_team["_id"]), record_id)

        logger.info(
            "External team %s unlinked from team %s by %s",
            payload.identifier,
            team.get("urn"),
            federated_user.urn,
        )
        return self._external_teams(record_id)

    def _full_view(
        self,
        team: Mapping[str, Any],
        federated_user: FederatedUser,
        *,
        memberships: list[dict[str, Any]] | None = None,
    ) -> TeamDetail:
        team_id = str(team["_id"])
        if memberships is None:
            memberships = self.team_store.list_memberships_for_team(team_id)
        own_membership = find_membership(memberships, federated_user.urn)
        role = parse_role(own_membership.get("role")) if own_membership else None
        effective_role = role or (Role.ADMIN if federated_user.is_super_admin else Role.GUEST)
        manages = at_least(effective_role, Role.MANAGER)

        visible_memberships = memberships
        if bool(team.get("hide_members", False)) and not manages:
            visible_memberships = [own_membership] if own_membership else []
        persons = self._persons_by_id(str(membership.get("person_id", "")) for membership in visible_memberships)

        invitations = []
        join_requests = []
        if manages:
            invitations = [
                map_invitation(invitation, expiry_days=self.settings.invitation_expiry_days, team=team)
                for invitation in self.team_store.list_invitations_for_team(team_id)
            ]
            raw_join_requests = self.team_store.list_join_requests_for_teams([team_id])
            requesters = self._persons_by_id(str(jr.get("person_id", "")) for jr in raw_join_requests)
            join_requests = [
                map_join_request(
                    join_request,
                    person=requesters.get(str(join_request.get("person_id", ""))),
                    team=team,
                )
                for join_request in raw_join_requests
            ]

        return TeamDetail(
            view=TeamViewVariant.FULL,
            id=team_id,
            urn=str(team.get("urn", "")),
            name=str(team.get("name", "")),
            description=team.get("description"),
            personal_note=team.get("personal_note"),
            viewable=bool(team.get("viewable", False)),
            hide_members=bool(team.get("hide_members", False)),
            public_link=team.get("public_link") if manages else None,
            public_link_disabled=bool(team.get("public_link_disabled", True)),
            created_at=as_datetime(team.get("created_at")),
            role=role,
            membership_count=membership_count(memberships),
            memberships=[
                map_membership(membership, persons.get(str(membership.get("person_id", ""))))
                for membership in visible_memberships
            ],
            invitations=invitations,
            join_requests=join_requests,
            external_teams=self._external_teams(team_id),
        )

    def _public_view(
        self,
        team: Mapping[str, Any],
        federated_user: FederatedUser,
        memberships: list[dict[str, Any]],
    ) -> PublicTeam:
        team_id = str(team["_id"])
        admins: list[AdminContact] = []
        if not bool(team.get("hide_members", False)):
            admin_memberships = [
                membership for membership in memberships if parse_role(membership.get("role")) == Role.ADMIN
            ]
            persons = self._persons_by_id(str(membership.get("person_id", "")) for membership in admin_memberships)
            for membership in admin_memberships:
                person = persons.get(str(membership.get("person_id", "")))
                if person:
                    admins.append(AdminContact(name=str(person.get("name", "")), email=str(person.get("email", ""))))

        pending_join_request = None
        for join_request in self.team_store.list_join_requests_for_person(federated_user.person.id):
            if str(join_request.get("team_id", "")) == team_id:
                pending_join_request = map_join_request(join_request, team=team)
                break

        return PublicTeam(
            id=team_id,
            urn=str(team.get("urn", "")),
            name=str(team.get("name", "")),
            description=team.get("description"),
            viewable=bool(team.get("viewable", False)),
            membership_count=membership_count(memberships),
            admins=admins,
            pending_join_request=pending_join_request,
        )

    def _external_teams(self, team_id: str) -> list[ExternalTeamView]:
        return [map_external_team(external_team) for external_team in self.team_store.list_external_teams_for_team(team_id)]

    def _persons_by_id(self, person_ids: Any) -> dict[str, dict[str, Any]]:
        unique_ids = list(dict.fromkeys(person_id for person_id in person_ids if person_id))
        if not unique_ids:
            return {}
        return {str(person["_id"]): person for person in self.person_store.list_persons_by_ids(unique_ids)}

    def _require_team(self, team_id: str) -> dict[str, Any]:
        team = self.team_store.get_team(team_id.strip())
        if not team:
            raise NotFoundError("Team", team_id)
        return team


def _new_public_link() -> str:
    return secrets.token_hex(16)


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None
