from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

ADMIN_URN = "urn:collab:person:surfnet.nl:jdoe"
MEMBER_URN = "urn:collab:person:surfnet.nl:rdoe"
STRANGER_URN = "urn:collab:person:surfnet.nl:stranger"
GUEST_URN = "urn:collab:person:example.com:guest"

HeadersFor = Callable[..., dict[str, str]]


def _create_team(
    client: TestClient,
    headers: dict[str, str],
    name: str = "riders",
    **extra: object,
) -> dict[str, object]:
    response = client.post(
        "/api/teams/teams",
        json={"name": name, "description": f"we are {name}", **extra},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def _join_and_approve(
    client: TestClient,
    team_id: str,
    admin_headers: dict[str, str],
    member_headers: dict[str, str],
) -> None:
    join_response = client.post(
        "/api/teams/join-requests",
        json={"team_id": team_id, "message": "please"},
        headers=member_headers,
    )
    assert join_response.status_code == 201
    approve_response = client.put(
        f"/api/teams/join-requests/{join_response.json()['id']}/approve",
        headers=admin_headers,
    )
    assert approve_response.status_code == 200


@pytest.fixture
def riders(client: TestClient, headers_for: HeadersFor) -> dict[str, object]:
    team = _create_team(client, headers_for(ADMIN_URN))
    _join_and_approve(client, str(team["id"]), headers_for(ADMIN_URN), headers_for(MEMBER_URN))
    return team


def test_create_team_derives_urn_and_makes_creator_admin(client: TestClient, headers_for: HeadersFor) -> None:
    team = _create_team(client, headers_for(ADMIN_URN), name="New Team Name")

    assert team["urn"] == "demo:openconext:org:new_team_name"
    assert team["name"] == "New Team Name"
    assert team["role"] == "ADMIN"
    assert team["membership_count"] == 1
    assert team["public_link_disabled"] is False
    assert len(str(team["public_link"])) == 32
    assert [membership["person"]["urn"] for membership in team["memberships"]] == [ADMIN_URN]
    assert team["memberships"][0]["origin"] == "initial_admin"


def test_create_team_with_apostrophe_in_name(client: TestClient, headers_for: HeadersFor) -> None:
    team = _create_team(client, headers_for(ADMIN_URN), name="Rider's Club")

    assert team["urn"] == "demo:openconext:org:rider_s_club"


def test_create_team_rejects_duplicate_name(client: TestClient, headers_for: HeadersFor) -> None:
    _create_team(client, headers_for(ADMIN_URN))

    response = client.post(
        "/api/teams/teams",
        json={"name": "Riders"},
        headers=headers_for(MEMBER_URN),
    )

    assert response.status_code == 400
    assert response.json()["exception"] == "DuplicateTeamNameError"


def test_create_team_rejects_invalid_name(client: TestClient, headers_for: HeadersFor) -> None:
    response = client.post(
        "/api/teams/teams",
        json={"name": "<script>"},
        headers=headers_for(ADMIN_URN),
    )

    assert response.status_code == 422


def test_create_team_as_guest_is_forbidden(client: TestClient, headers_for: HeadersFor) -> None:
    response = client.post(
        "/api/teams/teams",
        json={"name": "guests"},
        headers=headers_for(GUEST_URN, guest=True),
    )

    assert response.status_code == 403


def test_create_team_with_admin_invitation(client: TestClient, headers_for: HeadersFor) -> None:
    team = _create_team(
        client,
        headers_for(ADMIN_URN),
        name="gliders",
        email="second.admin@example.org",
        invitation_message="Please help",
    )

    assert len(team["invitations"]) == 1
    invitation = team["invitations"][0]
    assert invitation["email"] == "second.admin@example.org"
    assert invitation["intended_role"] == "ADMIN"
    assert invitation["status"] == "pending"
    assert invitation["invitation_messages"][0]["message"] == "Please help"


def test_team_exists_by_name(client: TestClient, headers_for: HeadersFor) -> None:
    _create_team(client, headers_for(ADMIN_URN))

    exists = client.get("/api/teams/team-exists-by-name", params={"name": "RIDERS "}, headers=headers_for(ADMIN_URN))
    missing = client.get("/api/teams/team-exists-by-name", params={"name": "masters"}, headers=headers_for(ADMIN_URN))

    assert exists.json() is True
    assert missing.json() is False


def test_riders_scenario(client: TestClient, headers_for: HeadersFor, riders: dict[str, object]) -> None:
    response = client.get(f"/api/teams/teams/{riders['id']}", headers=headers_for(MEMBER_URN))

    assert response.status_code == 200
    team = response.json()
    assert team["view"] == "FULL"
    assert team["role"] == "MEMBER"
    assert team["membership_count"] == 2
    assert team["invitations"] == []
    assert team["join_requests"] == []
    assert team["public_link"] is None
    assert {membership["person"]["urn"]: membership["role"] for membership in team["memberships"]} == {
        ADMIN_URN: "ADMIN",
        MEMBER_URN: "MEMBER",
    }


def test_team_public_view_for_non_member(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    response = client.get(f"/api/teams/teams/{riders['id']}", headers=headers_for(STRANGER_URN))

    assert response.status_code == 200
    team = response.json()
    assert team["view"] == "PUBLIC"
    assert team["description"] == "we are riders"
    assert team["membership_count"] == 2
    assert [admin["email"] for admin in team["admins"]] == ["jdoe@example.org"]
    assert "memberships" not in team


def test_private_team_is_denied_for_non_member(client: TestClient, headers_for: HeadersFor) -> None:
    team = _create_team(client, headers_for(ADMIN_URN), name="secret", viewable=False)

    response = client.get(f"/api/teams/teams/{team['id']}", headers=headers_for(STRANGER_URN))

    assert response.status_code == 400
    assert response.json()["exception"] == "NotAllowedError"


def test_unknown_team_is_not_found(client: TestClient, headers_for: HeadersFor) -> None:
    response = client.get("/api/teams/teams/999", headers=headers_for(ADMIN_URN))

    assert response.status_code == 404
    assert response.json()["exception"] == "NotFoundError"


def test_update_team_keeps_name(client: TestClient, headers_for: HeadersFor, riders: dict[str, object]) -> None:
    response = client.put(
        "/api/teams/teams",
        json={"id": riders["id"], "description": "changed", "viewable": False, "hide_members": True},
        headers=headers_for(ADMIN_URN),
    )

    assert response.status_code == 200
    team = response.json()
    assert team["name"] == "riders"
    assert team["description"] == "changed"
    assert team["viewable"] is False
    assert team["hide_members"] is True
    assert team["public_link_disabled"] is True


def test_update_team_as_guest_is_forbidden(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    response = client.put(
        "/api/teams/teams",
        json={"id": riders["id"], "description": "changed"},
        headers=headers_for(GUEST_URN, guest=True),
    )

    assert response.status_code == 403


def test_update_team_with_member_role(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    response = client.put(
        "/api/teams/teams",
        json={"id": riders["id"], "description": "changed"},
        headers=headers_for(MEMBER_URN),
    )

    assert response.status_code == 400
    assert response.json()["exception"] == "IllegalMembershipError"


def test_update_team_without_being_member(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    response = client.put(
        "/api/teams/teams",
        json={"id": riders["id"], "description": "changed"},
        headers=headers_for(STRANGER_URN),
    )

    assert response.status_code == 400
    assert response.json()["exception"] == "NotAllowedError"


def test_hidden_members_are_only_visible_to_managers(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    client.put(
        "/api/teams/teams",
        json={"id": riders["id"], "hide_members": True},
        headers=headers_for(ADMIN_URN),
    )

    member_view = client.get(f"/api/teams/teams/{riders['id']}", headers=headers_for(MEMBER_URN)).json()
    admin_view = client.get(f"/api/teams/teams/{riders['id']}", headers=headers_for(ADMIN_URN)).json()
    public_view = client.get(f"/api/teams/teams/{riders['id']}", headers=headers_for(STRANGER_URN)).json()

    assert [membership["person"]["urn"] for membership in member_view["memberships"]] == [MEMBER_URN]
    assert member_view["membership_count"] == 2
    assert len(admin_view["memberships"]) == 2
    assert public_view["admins"] == []


def test_reset_public_link(client: TestClient, headers_for: HeadersFor) -> None:
    team = _create_team(client, headers_for(ADMIN_URN), name="secret", viewable=False)
    assert team["public_link"] is None

    response = client.put(f"/api/teams/teams/reset-public-link/{team['id']}", headers=headers_for(ADMIN_URN))

    assert response.status_code == 200
    updated = response.json()
    assert len(updated["public_link"]) == 32
    assert updated["public_link_disabled"] is False
    assert updated["viewable"] is True


def test_reset_public_link_as_guest_is_forbidden(client: TestClient, headers_for: HeadersFor) -> None:
    team = _create_team(client, headers_for(ADMIN_URN), name="secret", viewable=False)

    response = client.put(
        f"/api/teams/teams/reset-public-link/{team['id']}",
        headers=headers_for(ADMIN_URN, guest=True),
    )

    assert response.status_code == 403
    unchanged = client.get(f"/api/teams/teams/{team['id']}", headers=headers_for(ADMIN_URN)).json()
    assert unchanged["public_link"] is None


def test_delete_team_unlinks_external_teams(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    admin_headers = headers_for(ADMIN_URN)
    other_team = _create_team(client, admin_headers, name="gliders")
    for identifier in ("urn:collab:group:external:one", "urn:collab:group:external:two"):
        for team_id in (riders["id"], other_team["id"]):
            link_response = client.put(
                "/api/teams/external-teams/link",
                json={"team_id": team_id, "identifier": identifier, "name": identifier.rsplit(":", 1)[-1]},
                headers=admin_headers,
            )
            assert link_response.status_code == 200

    delete_response = client.delete(f"/api/teams/teams/{riders['id']}", headers=admin_headers)

    assert delete_response.status_code == 204
    assert client.get(f"/api/teams/teams/{riders['id']}", headers=admin_headers).status_code == 404
    remaining = client.get(f"/api/teams/teams/{other_team['id']}", headers=admin_headers).json()
    assert [external["name"] for external in remaining["external_teams"]] == ["one", "two"]
    my_teams = client.get("/api/teams/my-teams", headers=headers_for(MEMBER_URN)).json()
    assert my_teams["team_summaries"] == []


def test_delete_team_as_member_is_rejected(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    response = client.delete(f"/api/teams/teams/{riders['id']}", headers=headers_for(MEMBER_URN))

    assert response.status_code == 400
    assert response.json()["exception"] == "IllegalMembershipError"


def test_unlink_external_team(client: TestClient, headers_for: HeadersFor, riders: dict[str, object]) -> None:
    admin_headers = headers_for(ADMIN_URN)
    payload = {"team_id": riders["id"], "identifier": "urn:collab:group:external:one", "name": "one"}
    client.put("/api/teams/external-teams/link", json=payload, headers=admin_headers)

    response = client.put("/api/teams/external-teams/unlink", json=payload, headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == []


def test_link_external_team_as_guest_is_forbidden(
    client: TestClient,
    headers_for: HeadersFor,
    riders: dict[str, object],
) -> None:
    payload = {"team_id": riders["id"], "identifier": "urn:collab:group:external:one", "name": "one"}

    link_response = client.put(
        "/api/teams/external-teams/link",
        json=payload,
        headers=headers_for(ADMIN_URN, guest=True),
    )
    unlink_response = client.put(
        "/api/teams/external-teams/unlink",
        json=payload,
        headers=headers_for(ADMIN_URN, guest=True),
    )

    assert link_response.status_code == 403
    assert unlink_response.status_code == 403
    team = client.get(f"/api/teams/teams/{riders['id']}", headers=headers_for(ADMIN_URN)).json()
    assert team["external_teams"] == []


def test_my_teams(client: TestClient, headers_for: HeadersFor, riders: dict[str, object]) -> None:
    admin_headers = headers_for(ADMIN_URN)
    _create_team(client, admin_headers, name="gliders")
    client.post(
        "/api/teams/join-requests",
        json={"team_id": riders["id"], "message": "let me in"},
        headers=headers_for(STRANGER_URN),
    )

    response = client.get("/api/teams/my-teams", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert [summary["name"] for summary in data["team_summaries"]] == ["gliders", "riders"]
    riders_summary = data["team_summaries"][1]
    assert riders_summary["role"] == "ADMIN"
    assert riders_summary["membership_count"] == 2
    assert riders_summary["join_requests_count"] == 1
    assert [join_request["person"]["urn"] for join_request in data["join_requests"]] == [STRANGER_URN]

    stranger_data = client.get("/api/teams/my-teams", headers=headers_for(STRANGER_URN)).json()
    assert [join_request["team_name"] for join_request in stranger_data["my_join_requests"]] == ["riders"]
    assert stranger_data["my_join_requests"][0]["team_description"] == "we are riders"


def test_versioned_routes_mirror_unversioned(client: TestClient, headers_for: HeadersFor) -> None:
    response = client.get("/api/v1/teams/users/me", headers=headers_for(ADMIN_URN))

    assert response.status_code == 200
    assert response.json()["person"]["urn"] == ADMIN_URN
