"""Domain errors raised by the teams services.

Every error is a user-facing validation failure. They propagate unchanged to
the HTTP boundary, where ``status_code`` picks the response status.
"""

from __future__ import annotations

from typing import Any


class TeamsError(Exception):
    """Base exception for all team management errors."""

    status_code: int = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MissingAttributesError(TeamsError):
    """Raised when the identity headers are incomplete."""

    status_code = 401

    def __init__(self, missing_attributes: list[str]) -> None:
        super().__init__(
            f"Missing attributes: {', '.join(missing_attributes)}",
            {"missing_attributes": list(missing_attributes)},
        )
        self.missing_attributes = list(missing_attributes)


class IllegalMembershipError(TeamsError):
    """Raised when a role or membership rule is violated."""

    pass


class IllegalJoinRequestError(TeamsError):
    """Raised when a join or invitation precondition is violated."""

    pass


class NotAllowedError(TeamsError):
    """Raised when the actor lacks any standing for the action."""

    pass


class DuplicateTeamNameError(TeamsError):
    """Raised when the urn derived from a team name is already taken."""

    pass


class NotFoundError(TeamsError):
    """Raised when a referenced entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, identifier: Any) -> None:
        super().__init__(
            f"{entity} {identifier} not found",
            {"entity": entity, "id": str(identifier)},
        )


class ConcurrentModificationError(TeamsError):
    """Raised when a team stays locked by another request for too long."""

    status_code = 409
