from fastapi import APIRouter, Depends, Query, status

from teams.schemas.identity import FederatedUser
from teams.schemas.team import (
    Language,
    MyTeamsResponse,
    PublicTeam,
    TeamCreateRequest,
    TeamDetail,
    TeamUpdateRequest,
)
from teams.services.identity_provisioner import require_federated_user, require_non_guest_user
from teams.services.language_service import request_language
from teams.services.membership_service import MembershipService
from teams.services.team_service import TeamService

router = APIRouter(tags=["teams"])


@router.get("/my-teams", response_model=MyTeamsResponse)
def get_my_teams(
    federated_user: FederatedUser = Depends(require_federated_user),
) -> MyTeamsResponse:
    service = TeamService()
    return service.my_teams(federated_user=federated_user)


@router.get("/team-exists-by-name", response_model=bool)
def team_exists_by_name(
    name: str = Query(..., min_length=1),
    federated_user: FederatedUser = Depends(require_federated_user),
) -> bool:
    service = TeamService()
    return service.team_exists_by_name(name)


@router.get("/teams/{team_id}", response_model=TeamDetail | PublicTeam)
def get_team(
    team_id: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> TeamDetail | PublicTeam:
    service = TeamService()
    return service.get_team(federated_user=federated_user, team_id=team_id)


@router.post(
    "/teams",
    response_model=TeamDetail,
    status_code=status.HTTP_201_CREATED,
)
def create_team(
    payload: TeamCreateRequest,
    federated_user: FederatedUser = Depends(require_non_guest_user),
    language: Language = Depends(request_language),
) -> TeamDetail:
    service = TeamService()
    return service.create_team(federated_user=federated_user, payload=payload, language=language)


@router.put("/teams", response_model=TeamDetail)
def update_team(
    payload: TeamUpdateRequest,
    federated_user: FederatedUser = Depends(require_non_guest_user),
) -> TeamDetail:
    service = TeamService()
    return service.update_team(federated_user=federated_user, payload=payload)


@router.put("/teams/reset-public-link/{team_id}", response_model=TeamDetail)
def reset_public_link(
    team_id: str,
    federated_user: FederatedUser = Depends(require_non_guest_user),
) -> TeamDetail:
    service = TeamService()
    return service.reset_public_link(federated_user=federated_user, team_id=team_id)


@router.delete("/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_team(
    team_id: str,
    federated_user: FederatedUser = Depends(require_non_guest_user),
) -> None:
    service = TeamService()
    service.delete_team(federated_user=federated_user, team_id=team_id)


@router.delete("/teams/{team_id}/memberships", status_code=status.HTTP_204_NO_CONTENT)
def remove_membership(
    team_id: str,
    person_urn: str = Query(..., min_length=1),
    federated_user: FederatedUser = Depends(require_federated_user),
) -> None:
    service = MembershipService()
    service.remove_membership(federated_user=federated_user, team_id=team_id, person_urn=person_urn)
