from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from teams.services.roles import Role


class Language(str, Enum):
    ENGLISH = "ENGLISH"
    DUTCH = "DUTCH"
    PORTUGUESE = "PORTUGUESE"


class TeamViewVariant(str, Enum):
    FULL = "FULL"
    PUBLIC = "PUBLIC"
    DENIED = "DENIED"


class MemberPerson(BaseModel):
    id: str
    urn: str
    name: str
    email: str
    guest: bool = False


class MembershipView(BaseModel):
    id: str
    team_id: str
    role: Role
    origin: str
    created_at: datetime
    person: MemberPerson


class InvitationMessageView(BaseModel):
    person_id: str
    person_name: str
    message: str | None = None
    created_at: datetime


class InvitationView(BaseModel):
    id: str
    team_id: str
    team_name: str | None = None
    email: str
    intended_role: Role
    language: Language
    status: str
    created_at: datetime
    expiry_reset_at: datetime
    invitation_messages: list[InvitationMessageView] = Field(default_factory=list)


class JoinRequestView(BaseModel):
    id: str
    team_id: str
    team_name: str | None = None
    team_description: str | None = None
    person: MemberPerson | None = None
    message: str | None = None
    role: Role = Role.MEMBER
    status: str = "pending"
    created_at: datetime


class ExternalTeamView(BaseModel):
    id: str
    identifier: str
    name: str
    description: str = ""
    group_provider: str = ""


class AdminContact(BaseModel):
    name: str
    email: str


class TeamDetail(BaseModel):
    view: TeamViewVariant = TeamViewVariant.FULL
    id: str
    urn: str
    name: str
    description: str | None = None
    personal_note: str | None = None
    viewable: bool
    hide_members: bool = False
    public_link: str | None = None
    public_link_disabled: bool = True
    created_at: datetime
    role: Role | None = None
    membership_count: int = 0
    memberships: list[MembershipView] = Field(default_factory=list)
    invitations: list[InvitationView] = Field(default_factory=list)
    join_requests: list[JoinRequestView] = Field(default_factory=list)
    external_teams: list[ExternalTeamView] = Field(default_factory=list)


class PublicTeam(BaseModel):
    view: TeamViewVariant = TeamViewVariant.PUBLIC
    id: str
    urn: str
    name: str
    description: str | None = None
    viewable: bool = True
    membership_count: int = 0
    admins: list[AdminContact] = Field(default_factory=list)
    pending_join_request: JoinRequestView | None = None


class TeamSummary(BaseModel):
    id: str
    urn: str
    name: str
    description: str | None = None
    role: Role
    membership_count: int = 0
    join_requests_count: int = 0
    invitations_count: int = 0


class MyTeamsResponse(BaseModel):
    team_summaries: list[TeamSummary] = Field(default_factory=list)
    my_join_requests: list[JoinRequestView] = Field(default_factory=list)
    join_requests: list[JoinRequestView] = Field(default_factory=list)
    invitations_received: list[InvitationView] = Field(default_factory=list)
    invitations_sent: list[InvitationView] = Field(default_factory=list)


class TeamCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, pattern=r"^[\w '.-]+$")
    description: str | None = None
    personal_note: str | None = None
    viewable: bool = True
    hide_members: bool = False
    email: str | None = None
    invitation_message: str | None = None
    language: Language | None = None


class TeamUpdateRequest(BaseModel):
    id: str
    description: str | None = None
    personal_note: str | None = None
    viewable: bool = True
    hide_members: bool = False


class MembershipRoleUpdateRequest(BaseModel):
    team_id: str
    person_urn: str
    role: Role


class JoinRequestCreateRequest(BaseModel):
    team_id: str
    message: str | None = None


class InvitationCreateRequest(BaseModel):
    team_id: str
    email: str
    intended_role: Role = Role.MEMBER
    message: str | None = None
    language: Language | None = None


class InvitationResendRequest(BaseModel):
    id: str
    message: str | None = None


class ExternalTeamLinkRequest(BaseModel):
    team_id: str
    identifier: str
    name: str = ""
    description: str = ""
    group_provider: str = ""
