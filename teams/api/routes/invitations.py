from fastapi import APIRouter, Depends, Query, status

from teams.schemas.identity import FederatedUser
from teams.schemas.team import (
    InvitationCreateRequest,
    InvitationResendRequest,
    InvitationView,
    Language,
    MembershipView,
)
from teams.services.identity_provisioner import require_federated_user
from teams.services.invitation_service import InvitationService
from teams.services.language_service import request_language

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.post(
    "",
    response_model=InvitationView,
    status_code=status.HTTP_201_CREATED,
)
def invite(
    payload: InvitationCreateRequest,
    federated_user: FederatedUser = Depends(require_federated_user),
    language: Language = Depends(request_language),
) -> InvitationView:
    service = InvitationService()
    return service.invite(
        federated_user=federated_user,
        team_id=payload.team_id,
        email=payload.email,
        intended_role=payload.intended_role,
        message=payload.message,
        language=payload.language or language,
    )


@router.put("/resend", response_model=InvitationView)
def resend_invitation(
    payload: InvitationResendRequest,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> InvitationView:
    service = InvitationService()
    return service.resend_invitation(
        federated_user=federated_user,
        invitation_id=payload.id,
        message=payload.message,
    )


@router.get("/info", response_model=InvitationView)
def invitation_info(
    key: str = Query(..., min_length=1),
    federated_user: FederatedUser = Depends(require_federated_user),
) -> InvitationView:
    service = InvitationService()
    return service.invitation_info(key)


@router.put("/accept/{key}", response_model=MembershipView)
def accept_invitation(
    key: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> MembershipView:
    service = InvitationService()
    return service.accept_invitation(federated_user=federated_user, invitation_hash=key)


@router.put("/decline/{key}", response_model=InvitationView)
def decline_invitation(
    key: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> InvitationView:
    service = InvitationService()
    return service.decline_invitation(federated_user=federated_user, invitation_hash=key)


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invitation(
    invitation_id: str,
    federated_user: FederatedUser = Depends(require_federated_user),
) -> None:
    service = InvitationService()
    service.delete_invitation(federated_user=federated_user, invitation_id=invitation_id)
