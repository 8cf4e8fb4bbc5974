"""Authorization rules for team membership.

Each rule is an independent check that returns ``None`` when the action is
permitted and raises a typed error carrying the reason otherwise. Callers
compose the subset of rules that applies to their action.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from teams.core.exceptions import IllegalJoinRequestError, IllegalMembershipError, NotAllowedError
from teams.schemas.identity import FederatedUser
from teams.schemas.team import TeamViewVariant
from teams.services.roles import Role, at_least, parse_role, rank


def members_can_not_change_roles(actor_role: Role) -> None:
    if not at_least(actor_role, Role.MANAGER):
        raise IllegalMembershipError(
            f"Members with role {Role(actor_role).value} are not allowed to change roles.",
            {"actor_role": Role(actor_role).value},
        )


def one_admin_is_required(
    memberships: Iterable[Mapping[str, Any]],
    person_urn: str,
    new_role: Role | None,
) -> None:
    """A team keeps at least one ADMIN; ``new_role=None`` means removal."""
    if new_role is not None and Role(new_role) == Role.ADMIN:
        return
    admins = [
        membership
        for membership in memberships
        if parse_role(membership.get("role")) == Role.ADMIN
    ]
    if len(admins) == 1 and _same_urn(admins[0].get("person_urn"), person_urn):
        raise IllegalMembershipError(
            "One admin is required for a team.",
            {"person_urn": person_urn},
        )


def can_not_upgrade_to_more_important_then_yourself(actor_role: Role, requested_role: Role) -> None:
    if rank(requested_role) > rank(actor_role):
        raise IllegalMembershipError(
            f"Role {Role(actor_role).value} can not grant role {Role(requested_role).value}.",
            {"actor_role": Role(actor_role).value, "requested_role": Role(requested_role).value},
        )


def members_can_not_remove_others(
    actor_role: Role,
    person_urn: str,
    federated_user: FederatedUser,
) -> None:
    if at_least(actor_role, Role.ADMIN):
        return
    if _same_urn(person_urn, federated_user.urn):
        return
    raise IllegalMembershipError(
        f"Members with role {Role(actor_role).value} can only remove themselves.",
        {"actor_role": Role(actor_role).value, "person_urn": person_urn},
    )


def membership_not_allowed(memberships: Iterable[Mapping[str, Any]], person_urn: str) -> None:
    if find_membership(memberships, person_urn):
        raise IllegalJoinRequestError(
            f"{person_urn} is already a member of this team.",
            {"person_urn": person_urn},
        )


def private_team_does_not_allow_members(team: Mapping[str, Any], person_urn: str) -> None:
    if not bool(team.get("viewable", False)):
        raise IllegalJoinRequestError(
            f"Team {team.get('urn')} is private and does not accept join requests.",
            {"team_urn": str(team.get("urn", "")), "person_urn": person_urn},
        )


def only_admin_allowed(
    actor_role: Role,
    federated_user: FederatedUser,
    team: Mapping[str, Any],
    action_name: str,
) -> None:
    if federated_user.is_super_admin:
        return
    if Role(actor_role) != Role.ADMIN:
        raise IllegalMembershipError(
            f"Only ADMIN members are allowed to {action_name} team {team.get('urn')}.",
            {"actor_role": Role(actor_role).value, "action": action_name},
        )


def guests_not_allowed(federated_user: FederatedUser, action_name: str) -> None:
    if federated_user.is_guest:
        raise NotAllowedError(
            f"Guests are not allowed to {action_name} a team.",
            {"person_urn": federated_user.urn, "action": action_name},
        )


def guests_can_not_be_admin(person: Mapping[str, Any], role: Role) -> None:
    if bool(person.get("guest", False)) and at_least(role, Role.ADMIN):
        raise IllegalMembershipError(
            f"Guest {person.get('urn')} can not become {Role(role).value}.",
            {"person_urn": str(person.get("urn", "")), "role": Role(role).value},
        )


def actor_role(
    memberships: Iterable[Mapping[str, Any]],
    federated_user: FederatedUser,
    team: Mapping[str, Any],
) -> Role:
    """Role the actor acts with; super-admins without a membership act as ADMIN."""
    membership = find_membership(memberships, federated_user.urn)
    if membership:
        return parse_role(membership.get("role"))
    if federated_user.is_super_admin:
        return Role.ADMIN
    raise NotAllowedError(
        f"{federated_user.urn} is not a member of team {team.get('urn')}.",
        {"person_urn": federated_user.urn, "team_urn": str(team.get("urn", ""))},
    )


def team_view_variant(
    membership: Mapping[str, Any] | None,
    team: Mapping[str, Any],
    federated_user: FederatedUser,
) -> TeamViewVariant:
    if membership or federated_user.is_super_admin:
        return TeamViewVariant.FULL
    if bool(team.get("viewable", False)):
        return TeamViewVariant.PUBLIC
    return TeamViewVariant.DENIED


def find_membership(
    memberships: Iterable[Mapping[str, Any]],
    person_urn: str,
) -> Mapping[str, Any] | None:
    for membership in memberships:
        if _same_urn(membership.get("person_urn"), person_urn):
            return membership
    return None


def _same_urn(urn: object, other: object) -> bool:
    return str(urn or "").strip().lower() == str(other or "").strip().lower()
