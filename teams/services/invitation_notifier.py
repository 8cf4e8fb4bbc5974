from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from teams.schemas.identity import FederatedUser
from teams.schemas.team import Language

logger = logging.getLogger(__name__)


class InvitationDeliveryError(Exception):
    pass


class InvitationNotifier(ABC):
    @abstractmethod
    def send_invitation(
        self,
        *,
        invitation: Mapping[str, Any],
        team: Mapping[str, Any],
        inviter: FederatedUser,
        language: Language,
    ) -> None:
        """Deliver the invitation; raise InvitationDeliveryError on failure."""
        raise NotImplementedError


class LoggingInvitationNotifier(InvitationNotifier):
    def send_invitation(
        self,
        *,
        invitation: Mapping[str, Any],
        team: Mapping[str, Any],
        inviter: FederatedUser,
        language: Language,
    ) -> None:
        recipient = str(invitation.get("email", "")).strip()
        if "@" not in recipient:
            raise InvitationDeliveryError(f"Invalid recipient address: {recipient!r}")
        logger.info(
            "Invitation %s for team %s sent to %s by %s in %s",
            invitation.get("_id"),
            team.get("urn"),
            recipient,
            inviter.urn,
            language.value,
        )
