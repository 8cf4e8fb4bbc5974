from typing import Any

import pytest

from teams.core.exceptions import IllegalJoinRequestError, IllegalMembershipError, NotAllowedError
from teams.schemas.identity import FederatedUser, PersonSummary
from teams.schemas.team import TeamViewVariant
from teams.services.membership_validator import (
    actor_role,
    can_not_upgrade_to_more_important_then_yourself,
    guests_can_not_be_admin,
    guests_not_allowed,
    members_can_not_change_roles,
    members_can_not_remove_others,
    membership_not_allowed,
    one_admin_is_required,
    only_admin_allowed,
    private_team_does_not_allow_members,
    team_view_variant,
)
from teams.services.roles import Role


def _federated_user(urn: str, *, guest: bool = False, super_admin: bool = False) -> FederatedUser:
    return FederatedUser(
        person=PersonSummary(id=urn, urn=urn, name=urn, email=f"{urn}@example.org", guest=guest),
        is_super_admin=super_admin,
    )


def _membership(person_urn: str, role: Role) -> dict[str, Any]:
    return {"_id": f"m-{person_urn}", "team_id": "1", "person_urn": person_urn, "role": role.value}


def _team(*, viewable: bool = True) -> dict[str, Any]:
    return {"_id": "1", "urn": "demo:openconext:org:riders", "name": "riders", "viewable": viewable}


def test_members_can_not_change_roles() -> None:
    with pytest.raises(IllegalMembershipError):
        members_can_not_change_roles(Role.MEMBER)


def test_managers_can_change_roles() -> None:
    members_can_not_change_roles(Role.MANAGER)


def test_one_admin_is_required() -> None:
    memberships = [_membership("urn", Role.ADMIN)]

    with pytest.raises(IllegalMembershipError):
        one_admin_is_required(memberships, "urn", Role.MEMBER)


def test_one_admin_is_required_on_removal() -> None:
    memberships = [_membership("urn", Role.ADMIN), _membership("member", Role.MEMBER)]

    with pytest.raises(IllegalMembershipError):
        one_admin_is_required(memberships, "URN", None)


def test_one_admin_is_required_allows_keeping_admin_role() -> None:
    one_admin_is_required([_membership("urn", Role.ADMIN)], "urn", Role.ADMIN)


def test_one_admin_is_required_allows_demotion_with_other_admin() -> None:
    memberships = [_membership("urn", Role.ADMIN), _membership("admin", Role.ADMIN)]

    one_admin_is_required(memberships, "urn", Role.MEMBER)


def test_can_not_upgrade_to_more_important_then_yourself_allowed() -> None:
    can_not_upgrade_to_more_important_then_yourself(Role.MANAGER, Role.MANAGER)
    can_not_upgrade_to_more_important_then_yourself(Role.MANAGER, Role.MEMBER)


def test_can_not_upgrade_to_more_important_then_yourself() -> None:
    with pytest.raises(IllegalMembershipError):
        can_not_upgrade_to_more_important_then_yourself(Role.MANAGER, Role.ADMIN)


def test_admins_can_remove_others() -> None:
    members_can_not_remove_others(Role.ADMIN, "urn", _federated_user("diff"))


def test_members_can_remove_themselves() -> None:
    members_can_not_remove_others(Role.MEMBER, "urn", _federated_user("urn"))


def test_members_can_not_remove_others() -> None:
    with pytest.raises(IllegalMembershipError):
        members_can_not_remove_others(Role.MEMBER, "urn", _federated_user("diff"))


def test_membership_not_allowed_for_existing_member() -> None:
    with pytest.raises(IllegalJoinRequestError):
        membership_not_allowed([_membership("urn", Role.ADMIN)], "urn")


def test_private_team_does_not_allow_members() -> None:
    with pytest.raises(IllegalJoinRequestError):
        private_team_does_not_allow_members(_team(viewable=False), "urn")


def test_only_admin_allowed_rejects_members_but_not_super_admins() -> None:
    with pytest.raises(IllegalMembershipError):
        only_admin_allowed(Role.MEMBER, _federated_user("urn"), _team(), "update")

    only_admin_allowed(Role.ADMIN, _federated_user("urn"), _team(), "update")
    only_admin_allowed(Role.MEMBER, _federated_user("urn", super_admin=True), _team(), "update")


def test_guests_not_allowed() -> None:
    with pytest.raises(NotAllowedError):
        guests_not_allowed(_federated_user("urn", guest=True), "create")

    guests_not_allowed(_federated_user("urn"), "create")


def test_guests_can_not_be_admin() -> None:
    with pytest.raises(IllegalMembershipError):
        guests_can_not_be_admin({"urn": "urn", "guest": True}, Role.ADMIN)

    guests_can_not_be_admin({"urn": "urn", "guest": True}, Role.MANAGER)
    guests_can_not_be_admin({"urn": "urn", "guest": False}, Role.ADMIN)


def test_actor_role_requires_membership_unless_super_admin() -> None:
    memberships = [_membership("urn", Role.MANAGER)]

    assert actor_role(memberships, _federated_user("URN"), _team()) == Role.MANAGER
    assert actor_role(memberships, _federated_user("boss", super_admin=True), _team()) == Role.ADMIN
    with pytest.raises(NotAllowedError):
        actor_role(memberships, _federated_user("stranger"), _team())


def test_team_view_variant() -> None:
    member = _membership("urn", Role.MEMBER)

    assert team_view_variant(member, _team(viewable=False), _federated_user("urn")) == TeamViewVariant.FULL
    assert team_view_variant(None, _team(), _federated_user("other")) == TeamViewVariant.PUBLIC
    assert team_view_variant(None, _team(viewable=False), _federated_user("other")) == TeamViewVariant.DENIED
    assert (
        team_view_variant(None, _team(viewable=False), _federated_user("boss", super_admin=True))
        == TeamViewVariant.FULL
    )
