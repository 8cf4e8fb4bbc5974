from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

ADMIN_URN = "urn:collab:person:surfnet.nl:jdoe"
REQUESTER_URN = "urn:collab:person:surfnet.nl:requester"
OTHER_URN = "urn:collab:person:surfnet.nl:other"

HeadersFor = Callable[..., dict[str, str]]


@pytest.fixture
def team_id(client: TestClient, headers_for: HeadersFor) -> str:
    response = client.post(
        "/api/teams/teams",
        json={"name": "riders", "description": "we are riders"},
        headers=headers_for(ADMIN_URN),
    )
    assert response.status_code == 201
    return response.json()["id"]


def _request_join(client: TestClient, headers: dict[str, str], team_id: str, message: str = "let me in"):
    return client.post(
        "/api/teams/join-requests",
        json={"team_id": team_id, "message": message},
        headers=headers,
    )


def test_join_request_is_pending_until_approved(
    client: TestClient,
    headers_for: HeadersFor,
    team_id: str,
) -> None:
    response = _request_join(client, headers_for(REQUESTER_URN), team_id)

    assert response.status_code == 201
    join_request = response.json()
    assert join_request["status"] == "pending"
    assert join_request["role"] == "MEMBER"
    assert join_request["person"]["urn"] == REQUESTER_URN

    team = client.get(f"/api/teams/teams/{team_id}", headers=headers_for(ADMIN_URN)).json()
    assert [pending["id"] for pending in team["join_requests"]] == [join_request["id"]]
    assert team["membership_count"] == 1


def test_repeated_join_request_updates_message(
    client: TestClient,
    headers_for: HeadersFor,
    team_id: str,
) -> None:
    first = _request_join(client, headers_for(REQUESTER_URN), team_id, "first").json()
    second = _request_join(client, headers_for(REQUESTER_URN), team_id, "second").json()

    assert second["id"] == first["id"]
    assert second["message"] == "second"


def test_approve_creates_membership_and_removes_request(
    client: TestClient,
    headers_for: HeadersFor,
    team_id: str,
) -> None:
    join_request = _request_join(client, headers_for(REQUESTER_URN), team_id).json()

    response = client.put(f"/api/teams/join-requests/{join_request['id']}/approve", headers=headers_for(ADMIN_URN))

    assert response.status_code == 200
    membership = response.json()
    assert membership["role"] == "MEMBER"
    assert membership["origin"] == "join_request_accepted"
    assert membership["person"]["urn"] == REQUESTER_URN
    team = client.get(f"/api/teams/teams/{team_id}", headers=headers_for(ADMIN_URN)).json()
    assert team["join_requests"] == []
    assert team["membership_count"] == 2


def test_reject_removes_request_without_membership(
    client: TestClient,
    headers_for: HeadersFor,
    team_id: str,
) -> None:
    join_request = _request_join(client, headers_for(REQUESTER_URN), team_id).json()

    response = client.put(f"/api/teams/join-requests/{join_request['id']}/reject", headers=headers_for(ADMIN_URN))

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    team = client.get(f"/api/teams/teams/{team_id}", headers=headers_for(ADMIN_URN)).json()
    assert team["join_requests"] == []
    assert team["membership_count"] == 1


def test_members_can_not_approve(client: TestClient, headers_for: HeadersFor, team_id: str) -> None:
    join_request = _request_join(client, headers_for(REQUESTER_URN), team_id).json()

    response = client.put(f"/api/teams/join-requests/{join_request['id']}/approve", headers=headers_for(OTHER_URN))

    assert response.status_code == 400
    assert response.json()["exception"] == "NotAllowedError"


def test_members_can_not_request_to_join_again(
    client: TestClient,
    headers_for: HeadersFor,
    team_id: str,
) -> None:
    response = _request_join(client, headers_for(ADMIN_URN), team_id)

    assert response.status_code == 400
    assert response.json()["exception"] == "IllegalJoinRequestError"


def test_private_team_does_not_accept_join_requests(client: TestClient, headers_for: HeadersFor) -> None:
    private_team = client.post(
        "/api/teams/teams",
        json={"name": "secret", "viewable": False},
        headers=headers_for(ADMIN_URN),
    ).json()

    response = _request_join(client, headers_for(REQUESTER_URN), private_team["id"])

    assert response.status_code == 400
    assert response.json()["exception"] == "IllegalJoinRequestError"


def test_only_requester_can_withdraw(client: TestClient, headers_for: HeadersFor, team_id: str) -> None:
    join_request = _request_join(client, headers_for(REQUESTER_URN), team_id).json()

    forbidden = client.delete(f"/api/teams/join-requests/{join_request['id']}", headers=headers_for(OTHER_URN))
    withdrawn = client.delete(f"/api/teams/join-requests/{join_request['id']}", headers=headers_for(REQUESTER_URN))

    assert forbidden.status_code == 400
    assert forbidden.json()["exception"] == "NotAllowedError"
    assert withdrawn.status_code == 204
    my_teams = client.get("/api/teams/my-teams", headers=headers_for(REQUESTER_URN)).json()
    assert my_teams["my_join_requests"] == []
