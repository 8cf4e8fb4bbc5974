from collections.abc import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from teams.core.config import get_settings
from teams.main import app
from teams.services.person_store import clear_person_store_cache
from teams.services.team_store import clear_team_store_cache

NON_GUEST_MEMBER_OF = "urn:collab:org:surf.nl"


def _clear_caches() -> None:
    clear_person_store_cache()
    clear_team_store_cache()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_team_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("TEAM_DATA_STORE", "memory")
    monkeypatch.setenv("NON_GUEST_MEMBER_OF", NON_GUEST_MEMBER_OF)
    monkeypatch.setenv("DEFAULT_STEM_NAME", "demo:openconext:org")
    monkeypatch.delenv("SUPER_ADMIN_TEAM_URNS", raising=False)
    _clear_caches()
    yield
    _clear_caches()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def identity_headers(
    urn: str,
    *,
    name: str | None = None,
    email: str | None = None,
    guest: bool = False,
) -> dict[str, str]:
    local_part = urn.rsplit(":", 1)[-1]
    headers = {
        "name-id": urn,
        "displayName": name or local_part.title(),
        "Shib-InetOrgPerson-mail": email or f"{local_part}@example.org",
    }
    if not guest:
        headers["is-member-of"] = NON_GUEST_MEMBER_OF
    return headers


@pytest.fixture
def headers_for() -> Callable[..., dict[str, str]]:
    return identity_headers
