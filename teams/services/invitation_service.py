from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime
from typing import Any

from teams.core.config import Settings, get_settings
from teams.core.exceptions import IllegalJoinRequestError, NotFoundError
from teams.schemas.identity import FederatedUser
from teams.schemas.team import InvitationView, Language, MembershipView
from teams.services.invitation_notifier import (
    InvitationDeliveryError,
    InvitationNotifier,
    LoggingInvitationNotifier,
)
from teams.services.membership_validator import (
    actor_role,
    can_not_upgrade_to_more_important_then_yourself,
    members_can_not_change_roles,
    membership_not_allowed,
)
from teams.services.person_store import PersonStore, create_person_store
from teams.services.roles import Role, at_least, parse_role
from teams.services.team_store import TeamStore, create_team_store
from teams.services.team_views import invitation_status, map_invitation, map_membership

logger = logging.getLogger(__name__)


class InvitationService:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        person_store: PersonStore | None = None,
        team_store: TeamStore | None = None,
        notifier: InvitationNotifier | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.person_store = person_store or create_person_store(self.settings)
        self.team_store = team_store or create_team_store(self.settings)
        self.notifier = notifier or LoggingInvitationNotifier()

    def invite(
        self,
        *,
        federated_user: FederatedUser,
        team_id: str,
        email: str,
        intended_role: Role,
        message: str | None,
        language: Language,
    ) -> InvitationView:
        team = self._require_team(team_id)
        normalized_email = email.strip().lower()
        if "@" not in normalized_email:
            raise IllegalJoinRequestError(
                "Invalid invitation email.",
                {"email": email},
            )

        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            role = actor_role(memberships, federated_user, team)
            members_can_not_change_roles(role)
            can_not_upgrade_to_more_important_then_yourself(role, intended_role)

            invitation_message = self._invitation_message(federated_user, message)
            existing = self._pending_invitation(str(team["_id"]), normalized_email)
            if existing:
                # The latest invitation decides the role the invitee gets.
                invitation = self.team_store.add_invitation_message(
                    str(existing["_id"]),
                    invitation_message,
                    intended_role=Role(intended_role).value,
                )
            else:
                invitation = self.team_store.create_invitation(
                    team_id=str(team["_id"]),
                    email=normalized_email,
                    intended_role=Role(intended_role).value,
                    language=language.value,
                    invitation_hash=secrets.token_urlsafe(32),
                    message=invitation_message,
                )

        logger.info(
            "Invitation for team %s to %s as %s created by %s",
            team.get("urn"),
            normalized_email,
            Role(intended_role).value,
            federated_user.urn,
        )
        self._deliver(invitation or {}, team, federated_user, language)
        return map_invitation(invitation or {}, expiry_days=self.settings.invitation_expiry_days, team=team)

    def resend_invitation(
        self,
        *,
        federated_user: FederatedUser,
        invitation_id: str,
        message: str | None,
    ) -> InvitationView:
        invitation = self._require_invitation(invitation_id)
        team = self._require_team(str(invitation.get("team_id", "")))
        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            members_can_not_change_roles(actor_role(memberships, federated_user, team))

            updated = self.team_store.add_invitation_message(
                str(invitation["_id"]),
                self._invitation_message(federated_user, message),
            )
            if not updated:
                raise NotFoundError("Invitation", invitation_id)

        logger.info("Invitation %s resent by %s", invitation_id, federated_user.urn)
        language = _parse_language(updated.get("language"))
        self._deliver(updated, team, federated_user, language)
        return map_invitation(updated, expiry_days=self.settings.invitation_expiry_days, team=team)

    def invitation_info(self, invitation_hash: str) -> InvitationView:
        invitation = self._require_invitation_by_hash(invitation_hash)
        team = self.team_store.get_team(str(invitation.get("team_id", "")))
        return map_invitation(invitation, expiry_days=self.settings.invitation_expiry_days, team=team)

    def accept_invitation(
        self,
        *,
        federated_user: FederatedUser,
        invitation_hash: str,
    ) -> MembershipView:
        pending = self._require_invitation_by_hash(invitation_hash)
        team = self._require_team(str(pending.get("team_id", "")))
        person = self._require_person(federated_user)

        with self.team_store.team_lock(str(team["_id"])):
            invitation = self._require_invitation_by_hash(invitation_hash)
            self._assert_pending(invitation)
            role = parse_role(invitation.get("intended_role"))
            if bool(person.get("guest", False)) and at_least(role, Role.ADMIN):
                role = Role.MANAGER

            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            membership_not_allowed(memberships, federated_user.urn)
            self._claim_invitation(invitation)
            try:
                membership = self.team_store.create_membership(
                    team=team,
                    person=person,
                    role=role.value,
                    origin="invitation_accepted",
                )
            except ValueError as exc:
                raise IllegalJoinRequestError(
                    f"{federated_user.urn} is already a member of this team.",
                    {"person_urn": federated_user.urn},
                ) from exc

        logger.info(
            "Invitation %s for team %s accepted by %s as %s",
            invitation.get("_id"),
            team.get("urn"),
            federated_user.urn,
            role.value,
        )
        return map_membership(membership, person)

    def decline_invitation(
        self,
        *,
        federated_user: FederatedUser,
        invitation_hash: str,
    ) -> InvitationView:
        pending = self._require_invitation_by_hash(invitation_hash)
        team = self._require_team(str(pending.get("team_id", "")))
        with self.team_store.team_lock(str(team["_id"])):
            invitation = self._require_invitation_by_hash(invitation_hash)
            self._assert_pending(invitation)
            self._claim_invitation(invitation)
        logger.info("Invitation %s declined by %s", invitation.get("_id"), federated_user.urn)
        return map_invitation(
            invitation,
            expiry_days=self.settings.invitation_expiry_days,
            team=team,
            status="declined",
        )

    def delete_invitation(self, *, federated_user: FederatedUser, invitation_id: str) -> None:
        invitation = self._require_invitation(invitation_id)
        team = self._require_team(str(invitation.get("team_id", "")))
        with self.team_store.team_lock(str(team["_id"])):
            memberships = self.team_store.list_memberships_for_team(str(team["_id"]))
            members_can_not_change_roles(actor_role(memberships, federated_user, team))
            self._claim_invitation(self._require_invitation(invitation_id))
        logger.info("Invitation %s deleted by %s", invitation_id, federated_user.urn)

    def _claim_invitation(self, invitation: dict[str, Any]) -> None:
        # Deleting is the claim: only one caller can consume an invitation.
        if not self.team_store.delete_invitation(str(invitation["_id"])):
            raise IllegalJoinRequestError(
                "Invitation is no longer pending.",
                {"invitation_id": str(invitation.get("_id", ""))},
            )

    def _deliver(
        self,
        invitation: dict[str, Any],
        team: dict[str, Any],
        inviter: FederatedUser,
        language: Language,
    ) -> None:
        try:
            self.notifier.send_invitation(
                invitation=invitation,
                team=team,
                inviter=inviter,
                language=language,
            )
        except InvitationDeliveryError as exc:
            logger.warning("Unable to deliver invitation %s: %s", invitation.get("_id"), exc)

    def _pending_invitation(self, team_id: str, email: str) -> dict[str, Any] | None:
        for invitation in self.team_store.list_invitations_for_team(team_id):
            if invitation.get("email") != email:
                continue
            if invitation_status(invitation, self.settings.invitation_expiry_days) == "pending":
                return invitation
        return None

    def _assert_pending(self, invitation: dict[str, Any]) -> None:
        status = invitation_status(invitation, self.settings.invitation_expiry_days)
        if status != "pending":
            raise IllegalJoinRequestError(
                f"Invitation is {status}.",
                {"invitation_id": str(invitation.get("_id", "")), "status": status},
            )

    def _invitation_message(self, federated_user: FederatedUser, message: str | None) -> dict[str, Any]:
        return {
            "person_id": federated_user.person.id,
            "person_name": federated_user.person.name,
            "message": (message or "").strip() or None,
            "created_at": datetime.now(UTC),
        }

    def _require_team(self, team_id: str) -> dict[str, Any]:
        team = self.team_store.get_team(team_id.strip())
        if not team:
            raise NotFoundError("Team", team_id)
        return team

    def _require_invitation(self, invitation_id: str) -> dict[str, Any]:
        invitation = self.team_store.get_invitation(invitation_id.strip())
        if not invitation:
            raise NotFoundError("Invitation", invitation_id)
        return invitation

    def _require_invitation_by_hash(self, invitation_hash: str) -> dict[str, Any]:
        invitation = self.team_store.get_invitation_by_hash(invitation_hash.strip())
        if not invitation:
            raise NotFoundError("Invitation", invitation_hash)
        return invitation

    def _require_person(self, federated_user: FederatedUser) -> dict[str, Any]:
        person = self.person_store.get_person_by_id(federated_user.person.id)
        if not person:
            raise NotFoundError("Person", federated_user.urn)
        return person


def _parse_language(value: object) -> Language:
    try:
        return Language(str(value))
    except ValueError:
        return Language.ENGLISH
