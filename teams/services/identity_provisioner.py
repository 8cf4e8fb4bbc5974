from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel

from teams.core.config import Settings, get_settings
from teams.core.exceptions import MissingAttributesError
from teams.schemas.identity import FederatedUser, PersonSummary
from teams.services.identity_directory import IdentityDirectory
from teams.services.person_store import PersonStore, create_person_store

logger = logging.getLogger(__name__)

NAME_ID_HEADER = "name-id"
DISPLAY_NAME_HEADER = "displayName"
EMAIL_HEADER = "Shib-InetOrgPerson-mail"
MEMBER_OF_HEADER = "is-member-of"


class IdentityAttributes(BaseModel):
    name_id: str | None = None
    display_name: str | None = None
    email: str | None = None
    member_of: str | None = None

    def missing_attributes(self) -> list[str]:
        missing: list[str] = []
        if not _has_text(self.name_id):
            missing.append("name-id")
        if not _has_text(self.display_name):
            missing.append("name")
        if not _has_text(self.email):
            missing.append("email")
        return missing


class IdentityProvisioner:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        person_store: PersonStore | None = None,
        identity_directory: IdentityDirectory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.person_store = person_store or create_person_store(self.settings)
        self.identity_directory = identity_directory or IdentityDirectory(self.settings)

    def provision(self, attributes: IdentityAttributes) -> FederatedUser:
        logger.info("Person %s is attempting authentication", attributes.name_id)
        missing_attributes = attributes.missing_attributes()
        if missing_attributes:
            raise MissingAttributesError(missing_attributes)

        guest = self.is_guest(attributes.member_of)
        existing = self.person_store.get_person_by_urn(str(attributes.name_id))
        person = self.person_store.upsert_person(
            urn=str(attributes.name_id),
            name=str(attributes.display_name),
            email=str(attributes.email),
            guest=guest,
            last_login_date=datetime.now(UTC),
        )
        if existing:
            logger.info("Updating existing person after login %s", person.get("urn"))
        else:
            logger.info("Provisioned new person %s", person.get("urn"))

        return FederatedUser(
            person=to_person_summary(person),
            is_super_admin=self.identity_directory.is_super_admin(str(person.get("urn", ""))),
            product_name=self.settings.product_name,
        )

    def is_guest(self, member_of: str | None) -> bool:
        return member_of != self.settings.non_guest_member_of


def read_identity_attributes(headers: Mapping[str, str]) -> IdentityAttributes:
    return IdentityAttributes(
        name_id=_decode_header(headers.get(NAME_ID_HEADER)),
        display_name=_decode_header(headers.get(DISPLAY_NAME_HEADER)),
        email=_decode_header(headers.get(EMAIL_HEADER)),
        member_of=_decode_header(headers.get(MEMBER_OF_HEADER)),
    )


def to_person_summary(person: Mapping[str, Any]) -> PersonSummary:
    return PersonSummary(
        id=str(person.get("_id", "")),
        urn=str(person.get("urn", "")),
        name=str(person.get("name", "")),
        email=str(person.get("email", "")),
        guest=bool(person.get("guest", True)),
        created_at=person.get("created_at"),
        last_login_date=person.get("last_login_date"),
    )


def require_federated_user(request: Request) -> FederatedUser:
    attributes = read_identity_attributes(request.headers)
    provisioner = IdentityProvisioner()
    return provisioner.provision(attributes)


def require_non_guest_user(
    federated_user: FederatedUser = Depends(require_federated_user),
) -> FederatedUser:
    if federated_user.is_guest:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Guests are not allowed to manage teams.",
        )
    return federated_user


def _decode_header(value: str | None) -> str | None:
    # Header bytes are UTF-8 but arrive decoded as ISO-8859-1.
    if not _has_text(value):
        return value
    try:
        return str(value).encode("iso-8859-1").decode("utf-8")
    except UnicodeError:
        return value


def _has_text(value: str | None) -> bool:
    return bool(value and value.strip())
