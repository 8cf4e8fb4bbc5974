from datetime import datetime

from pydantic import BaseModel


class PersonSummary(BaseModel):
    id: str
    urn: str
    name: str
    email: str
    guest: bool = True
    created_at: datetime | None = None
    last_login_date: datetime | None = None


class FederatedUser(BaseModel):
    person: PersonSummary
    is_super_admin: bool = False
    product_name: str = ""

    @property
    def urn(self) -> str:
        return self.person.urn

    @property
    def is_guest(self) -> bool:
        return self.person.guest
