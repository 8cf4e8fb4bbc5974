from fastapi import APIRouter, Depends

from teams.schemas.identity import FederatedUser
from teams.schemas.team import MembershipRoleUpdateRequest, MembershipView
from teams.services.identity_provisioner import require_federated_user
from teams.services.membership_service import MembershipService

router = APIRouter(prefix="/memberships", tags=["memberships"])


@router.put("", response_model=MembershipView)
def change_role(
    payload: MembershipRoleUpdateRequest,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> MembershipView:
    service = MembershipService()
    return service.change_role(
        federated_user=federated_user,
        team_id=payload.team_id,
        person_urn=payload.person_urn,
        role=payload.role,
    )
