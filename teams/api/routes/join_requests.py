from fastapi import APIRouter, Depends, status

from teams.schemas.identity import FederatedUser
from teams.schemas.team import JoinRequestCreateRequest, JoinRequestView, MembershipView
from teams.services.identity_provisioner import require_federated_user
from teams.services.join_request_service import JoinRequestService

router = APIRouter(prefix="/join-requests", tags=["join-requests"])


@router.post(
    "",
    response_model=JoinRequestView,
    status_code=status.HTTP_201_CREATED,
)
def request_join(
    payload: JoinRequestCreateRequest,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> JoinRequestView:
    service = JoinRequestService()
    return service.request_join(
        federated_user=federated_user,
        team_id=payload.team_id,
        message=payload.message,
    )


@router.put("/{join_request_id}/approve", response_model=MembershipView)
def approve_join_request(
    join_request_id: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> MembershipView:
    service = JoinRequestService()
    return service.approve_join_request(federated_user=federated_user, join_request_id=join_request_id)


@router.put("/{join_request_id}/reject", response_model=JoinRequestView)
def reject_join_request(
    join_request_id: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> JoinRequestView:
    service = JoinRequestService()
    return service.reject_join_request(federated_user=federated_user, join_request_id=join_request_id)


@router.delete("/{join_request_id}", status_code=status.HTTP_204_NO_CONTENT)
def withdraw_join_request(
    join_request_id: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> None:
    service = JoinRequestService()
    service.withdraw_join_request(federated_user=federated_user, join_request_id=join_request_id)
