from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from teams.schemas.team import (
    ExternalTeamView,
    InvitationMessageView,
    InvitationView,
    JoinRequestView,
    Language,
    MemberPerson,
    MembershipView,
)
from teams.services.roles import Role, parse_role


def membership_count(memberships: Iterable[Mapping[str, Any]]) -> int:
    return sum(1 for membership in memberships if parse_role(membership.get("role")) != Role.OWNER)


def invitation_status(invitation: Mapping[str, Any], expiry_days: int) -> str:
    status = str(invitation.get("status", "pending")).strip().lower()
    if status != "pending":
        return status
    expiry_reset_at = as_datetime(invitation.get("expiry_reset_at") or invitation.get("created_at"))
    if expiry_reset_at + timedelta(days=expiry_days) < datetime.now(UTC):
        return "expired"
    return status


def map_member_person(person: Mapping[str, Any] | None, fallback_urn: str = "") -> MemberPerson:
    if not person:
        return MemberPerson(id="", urn=fallback_urn, name=fallback_urn, email="")
    return MemberPerson(
        id=str(person.get("_id", "")),
        urn=str(person.get("urn", "")),
        name=str(person.get("name", "")),
        email=str(person.get("email", "")),
        guest=bool(person.get("guest", False)),
    )


def map_membership(membership: Mapping[str, Any], person: Mapping[str, Any] | None) -> MembershipView:
    return MembershipView(
        id=str(membership.get("_id", "")),
        team_id=str(membership.get("team_id", "")),
        role=parse_role(membership.get("role")),
        origin=str(membership.get("origin", "")),
        created_at=as_datetime(membership.get("created_at")),
        person=map_member_person(person, str(membership.get("person_urn", ""))),
    )


def map_invitation(
    invitation: Mapping[str, Any],
    *,
    expiry_days: int,
    team: Mapping[str, Any] | None = None,
    status: str | None = None,
) -> InvitationView:
    created_at = as_datetime(invitation.get("created_at"))
    try:
        language = Language(str(invitation.get("language", Language.ENGLISH.value)))
    except ValueError:
        language = Language.ENGLISH
    return InvitationView(
        id=str(invitation.get("_id", "")),
        team_id=str(invitation.get("team_id", "")),
        team_name=str(team.get("name", "")) if team else None,
        email=str(invitation.get("email", "")),
        intended_role=parse_role(invitation.get("intended_role")),
        language=language,
        status=status or invitation_status(invitation, expiry_days),
        created_at=created_at,
        expiry_reset_at=as_datetime(invitation.get("expiry_reset_at") or created_at),
        invitation_messages=[
            InvitationMessageView(
                person_id=str(message.get("person_id", "")),
                person_name=str(message.get("person_name", "")),
                message=message.get("message"),
                created_at=as_datetime(message.get("created_at")),
            )
            for message in invitation.get("messages", [])
        ],
    )


def map_join_request(
    join_request: Mapping[str, Any],
    *,
    person: Mapping[str, Any] | None = None,
    team: Mapping[str, Any] | None = None,
    status: str | None = None,
) -> JoinRequestView:
    return JoinRequestView(
        id=str(join_request.get("_id", "")),
        team_id=str(join_request.get("team_id", "")),
        team_name=str(team.get("name", "")) if team else None,
        team_description=team.get("description") if team else None,
        person=map_member_person(person, str(join_request.get("person_urn", ""))) if person else None,
        message=join_request.get("message"),
        role=parse_role(join_request.get("role")),
        status=status or str(join_request.get("status", "pending")),
        created_at=as_datetime(join_request.get("created_at")),
    )


def map_external_team(external_team: Mapping[str, Any]) -> ExternalTeamView:
    return ExternalTeamView(
        id=str(external_team.get("_id", "")),
        identifier=str(external_team.get("identifier", "")),
        name=str(external_team.get("name", "")),
        description=str(external_team.get("description", "")),
        group_provider=str(external_team.get("group_provider", "")),
    )


def as_datetime(value: Any) -> datetime:
    if not isinstance(value, datetime):
        return datetime.now(UTC)
    if value.tzinfo is None:
        # MongoDB hands back naive UTC datetimes.
        return value.replace(tzinfo=UTC)
    return value
