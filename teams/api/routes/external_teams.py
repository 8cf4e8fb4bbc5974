from fastapi import APIRouter, Depends

from teams.schemas.identity import FederatedUser
from teams.schemas.team import ExternalTeamLinkRequest, ExternalTeamView
from teams.services.identity_provisioner import require_non_guest_user
from teams.services.team_service import TeamService

router = APIRouter(prefix="/external-teams", tags=["external-teams"])


@router.put("/link", response_model=list[ExternalTeamView])
def link_external_team(
    payload: ExternalTeamLinkRequest,
    federated_user: FederatedUser = Depends(require_non_guest_user),
) -> list[ExternalTeamView]:
    service = TeamService()
    return service.link_external_team(federated_user=federated_user, payload=payload)


@router.put("/unlink", response_model=list[ExternalTeamView])
def unlink_external_team(
    payload: ExternalTeamLinkRequest,
    federated_user: FederatedUser = Depends(require_non_guest_user),
) -> list[ExternalTeamView]:
    service = TeamService()
    return service.unlink_external_team(federated_user=federated_user, payload=payload)
