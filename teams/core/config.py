from functools import lru_cache
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Teams API"
    app_env: str = "development"
    app_version: str = "0.1.0"
    api_prefix: str = "/api"
    allowed_origins: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    product_name: str = "OpenConext"
    team_data_store: str = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "teams"
    mongodb_persons_collection: str = "persons"
    mongodb_teams_collection: str = "teams"
    mongodb_memberships_collection: str = "memberships"
    mongodb_invitations_collection: str = "invitations"
    mongodb_join_requests_collection: str = "join_requests"
    mongodb_external_teams_collection: str = "external_teams"
    mongodb_connect_timeout_ms: int = 2000
    default_stem_name: str = "demo:openconext:org"
    non_guest_member_of: str = "urn:collab:org:surf.nl"
    super_admin_team_urns: Annotated[list[str], NoDecode] = []
    invitation_expiry_days: int = 30
    team_lock_timeout_seconds: float = 5.0
    supported_language_codes: Annotated[list[str], NoDecode] = ["en", "nl", "pt"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("allowed_origins", "super_admin_team_urns", mode="before")
    @classmethod
    def parse_comma_separated(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("supported_language_codes", mode="before")
    @classmethod
    def parse_language_codes(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            value = value.split(",")
        return [code.strip().lower() for code in value if code and code.strip()]

    @field_validator("team_data_store", mode="before")
    @classmethod
    def normalize_team_data_store(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("default_stem_name", mode="before")
    @classmethod
    def normalize_default_stem_name(cls, value: str) -> str:
        return value.strip().rstrip(":")

    @field_validator("invitation_expiry_days", mode="before")
    @classmethod
    def normalize_invitation_expiry_days(cls, value: int | str) -> int:
        parsed_value = int(value)
        if parsed_value <= 0:
            return 30
        return parsed_value

    @field_validator("team_lock_timeout_seconds", mode="before")
    @classmethod
    def normalize_team_lock_timeout(cls, value: float | str) -> float:
        parsed_value = float(value)
        if parsed_value <= 0:
            return 5.0
        return parsed_value


@lru_cache
def get_settings() -> Settings:
    return Settings()
