from datetime import UTC, datetime
from unittest.mock import MagicMock

from pymongo.errors import DuplicateKeyError

from teams.services.team_store import InMemoryTeamStore, MongoTeamStore

ADMIN = {"_id": "p-1", "urn": "urn:collab:person:surfnet.nl:jdoe"}
REQUESTER = {"_id": "p-2", "urn": "urn:collab:person:surfnet.nl:rdoe"}


def test_delete_team_releases_its_lock() -> None:
    store = InMemoryTeamStore()
    team = store.create_team(team={"urn": "demo:openconext:org:riders", "name": "riders"}, admin=ADMIN)
    team_id = str(team["_id"])
    with store.team_lock(team_id):
        pass
    assert team_id in store._team_locks

    assert store.delete_team(team_id) is True

    assert team_id not in store._team_locks


def test_pending_join_request_upsert_recovers_from_concurrent_insert() -> None:
    store = MongoTeamStore.__new__(MongoTeamStore)
    collection = MagicMock()
    collection.update_one.side_effect = [DuplicateKeyError("E11000 duplicate key error"), MagicMock()]
    collection.find_one.return_value = {
        "_id": "jr-1",
        "team_id": "t-1",
        "person_id": "p-2",
        "person_urn": REQUESTER["urn"],
        "message": "second",
        "role": "MEMBER",
        "status": "pending",
        "created_at": datetime.now(UTC),
    }
    store._join_requests = collection

    join_request = store.create_or_update_pending_join_request(
        team_id="t-1",
        person=REQUESTER,
        message="second",
        role="MEMBER",
    )

    assert join_request["_id"] == "jr-1"
    assert join_request["message"] == "second"
    assert collection.update_one.call_count == 2
    query, update = collection.update_one.call_args.args
    assert query == {"team_id": "t-1", "person_id": "p-2"}
    assert set(update) == {"$set"}
    assert update["$set"]["message"] == "second"
    collection.find_one.assert_called_once_with({"team_id": "t-1", "person_id": "p-2"})
