from fastapi import APIRouter, Depends

from teams.schemas.identity import FederatedUser
from teams.services.identity_provisioner import require_federated_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=FederatedUser)
def get_me(
    federated_user: FederatedUser = Depends(require_federated_user),
) -> FederatedUser:
    return federated_user
