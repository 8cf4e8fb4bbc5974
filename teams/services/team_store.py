from __future__ import annotations

import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any

from teams.core.config import Settings
from teams.core.exceptions import ConcurrentModificationError

_MUTABLE_TEAM_FIELDS = frozenset(
    {
        "description",
        "personal_note",
        "viewable",
        "hide_members",
        "public_link",
        "public_link_disabled",
    },
)
_LOCK_FIELDS = ("lock_token", "lock_expires_at")


class TeamStore(ABC):
    @abstractmethod
    def team_lock(self, team_id: str) -> Any:
        """Context manager serializing membership mutations of one team."""
        raise NotImplementedError

    @abstractmethod
    def create_team(
        self,
        *,
        team: Mapping[str, Any],
        admin: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Insert the team together with its initial ADMIN membership.

        Raises ``ValueError("team_urn_already_exists")`` when the urn is taken.
        """
        raise NotImplementedError

    @abstractmethod
    def get_team(self, team_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def get_team_by_urn(self, urn: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_teams_by_ids(self, team_ids: list[str]) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def update_team(self, team_id: str, updates: Mapping[str, Any]) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def delete_team(self, team_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def list_memberships_for_team(self, team_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def list_memberships_for_person(self, person_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def create_membership(
        self,
        *,
        team: Mapping[str, Any],
        person: Mapping[str, Any],
        role: str,
        origin: str,
    ) -> dict[str, Any]:
        """Raises ``ValueError("membership_already_exists")`` on a duplicate."""
        raise NotImplementedError

    @abstractmethod
    def update_membership_role(self, membership_id: str, role: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def delete_membership(self, membership_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete_memberships_for_team(self, team_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def create_invitation(
        self,
        *,
        team_id: str,
        email: str,
        intended_role: str,
        language: str,
        invitation_hash: str,
        message: Mapping[str, Any],
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def get_invitation(self, invitation_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def get_invitation_by_hash(self, invitation_hash: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_invitations_for_team(self, team_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def list_invitations_for_email(self, email: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def list_invitations_sent_by(self, person_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def add_invitation_message(
        self,
        invitation_id: str,
        message: Mapping[str, Any],
        *,
        intended_role: str | None = None,
    ) -> dict[str, Any] | None:
        """Append a message and restart the expiry clock."""
        raise NotImplementedError

    @abstractmethod
    def delete_invitation(self, invitation_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete_invitations_for_team(self, team_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def create_or_update_pending_join_request(
        self,
        *,
        team_id: str,
        person: Mapping[str, Any],
        message: str,
        role: str,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def get_join_request(self, join_request_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_join_requests_for_teams(self, team_ids: list[str]) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def list_join_requests_for_person(self, person_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def delete_join_request(self, join_request_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete_join_requests_for_team(self, team_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    def upsert_external_team(
        self,
        *,
        identifier: str,
        name: str,
        description: str,
        group_provider: str,
    ) -> dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def get_external_team_by_identifier(self, identifier: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_external_teams_for_team(self, team_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def link_external_team(self, external_team_id: str, team_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def unlink_external_team(self, external_team_id: str, team_id: str) -> dict[str, Any] | None:
        raise NotImplementedError


class InMemoryTeamStore(TeamStore):
    def __init__(self) -> None:
        self._next_id = 1
        self._id_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._team_locks: dict[str, threading.RLock] = {}

        self._teams_by_id: dict[str, dict[str, Any]] = {}
        self._team_id_by_urn: dict[str, str] = {}
        self._memberships_by_id: dict[str, dict[str, Any]] = {}
        self._membership_id_by_team_person: dict[tuple[str, str], str] = {}
        self._invitations_by_id: dict[str, dict[str, Any]] = {}
        self._join_requests_by_id: dict[str, dict[str, Any]] = {}
        self._external_teams_by_id: dict[str, dict[str, Any]] = {}

    @contextmanager
    def team_lock(self, team_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._team_locks.setdefault(team_id, threading.RLock())
        with lock:
            yield

    def create_team(
        self,
        *,
        team: Mapping[str, Any],
        admin: Mapping[str, Any],
    ) -> dict[str, Any]:
        urn = str(team.get("urn", "")).strip()
        with self._locks_guard:
            if urn in self._team_id_by_urn:
                raise ValueError("team_urn_already_exists")
            team_id = self._allocate_id()
            record = {
                **dict(team),
                "_id": team_id,
                "urn": urn,
                "created_at": datetime.now(UTC),
                "version": 0,
            }
            self._teams_by_id[team_id] = record
            self._team_id_by_urn[urn] = team_id
        self.create_membership(team=record, person=admin, role="ADMIN", origin="initial_admin")
        return dict(record)

    def get_team(self, team_id: str) -> dict[str, Any] | None:
        team = self._teams_by_id.get(team_id)
        if not team:
            return None
        return dict(team)

    def get_team_by_urn(self, urn: str) -> dict[str, Any] | None:
        team_id = self._team_id_by_urn.get(urn.strip())
        if not team_id:
            return None
        return self.get_team(team_id)

    def list_teams_by_ids(self, team_ids: list[str]) -> list[dict[str, Any]]:
        teams: list[dict[str, Any]] = []
        for team_id in team_ids:
            team = self.get_team(team_id)
            if team:
                teams.append(team)
        return teams

    def update_team(self, team_id: str, updates: Mapping[str, Any]) -> dict[str, Any] | None:
        team = self._teams_by_id.get(team_id)
        if not team:
            return None
        for field_name, value in updates.items():
            if field_name in _MUTABLE_TEAM_FIELDS:
                team[field_name] = value
        team["version"] = int(team.get("version", 0)) + 1
        return dict(team)

    def delete_team(self, team_id: str) -> bool:
        team = self._teams_by_id.pop(team_id, None)
        if not team:
            return False
        self._team_id_by_urn.pop(str(team.get("urn", "")), None)
        with self._locks_guard:
            self._team_locks.pop(team_id, None)
        return True

    def list_memberships_for_team(self, team_id: str) -> list[dict[str, Any]]:
        return [
            dict(membership)
            for membership in self._memberships_by_id.values()
            if membership.get("team_id") == team_id
        ]

    def list_memberships_for_person(self, person_id: str) -> list[dict[str, Any]]:
        return [
            dict(membership)
            for membership in self._memberships_by_id.values()
            if membership.get("person_id") == person_id
        ]

    def create_membership(
        self,
        *,
        team: Mapping[str, Any],
        person: Mapping[str, Any],
        role: str,
        origin: str,
    ) -> dict[str, Any]:
        team_id = str(team.get("_id", ""))
        person_id = str(person.get("_id", ""))
        key = (team_id, person_id)
        with self._locks_guard:
            if key in self._membership_id_by_team_person:
                raise ValueError("membership_already_exists")
            membership_id = self._allocate_id()
            membership = {
                "_id": membership_id,
                "team_id": team_id,
                "team_urn": str(team.get("urn", "")),
                "person_id": person_id,
                "person_urn": str(person.get("urn", "")),
                "role": role,
                "origin": origin,
                "created_at": datetime.now(UTC),
            }
            self._memberships_by_id[membership_id] = membership
            self._membership_id_by_team_person[key] = membership_id
        self._bump_version(team_id)
        return dict(membership)

    def update_membership_role(self, membership_id: str, role: str) -> dict[str, Any] | None:
        membership = self._memberships_by_id.get(membership_id)
        if not membership:
            return None
        membership["role"] = role
        self._bump_version(str(membership.get("team_id", "")))
        return dict(membership)

    def delete_membership(self, membership_id: str) -> bool:
        membership = self._memberships_by_id.pop(membership_id, None)
        if not membership:
            return False
        team_id = str(membership.get("team_id", ""))
        self._membership_id_by_team_person.pop((team_id, str(membership.get("person_id", ""))), None)
        self._bump_version(team_id)
        return True

    def delete_memberships_for_team(self, team_id: str) -> int:
        membership_ids = [
            membership_id
            for membership_id, membership in self._memberships_by_id.items()
            if membership.get("team_id") == team_id
        ]
        for membership_id in membership_ids:
            self.delete_membership(membership_id)
        return len(membership_ids)

    def create_invitation(
        self,
        *,
        team_id: str,
        email: str,
        intended_role: str,
        language: str,
        invitation_hash: str,
        message: Mapping[str, Any],
    ) -> dict[str, Any]:
        now = datetime.now(UTC)
        with self._locks_guard:
            invitation_id = self._allocate_id()
        invitation = {
            "_id": invitation_id,
            "team_id": team_id,
            "email": email.strip().lower(),
            "intended_role": intended_role,
            "language": language,
            "invitation_hash": invitation_hash,
            "messages": [dict(message)],
            "status": "pending",
            "created_at": now,
            "expiry_reset_at": now,
        }
        self._invitations_by_id[invitation_id] = invitation
        return _copy_invitation(invitation)

    def get_invitation(self, invitation_id: str) -> dict[str, Any] | None:
        invitation = self._invitations_by_id.get(invitation_id)
        if not invitation:
            return None
        return _copy_invitation(invitation)

    def get_invitation_by_hash(self, invitation_hash: str) -> dict[str, Any] | None:
        for invitation in self._invitations_by_id.values():
            if invitation.get("invitation_hash") == invitation_hash:
                return _copy_invitation(invitation)
        return None

    def list_invitations_for_team(self, team_id: str) -> list[dict[str, Any]]:
        return _sorted_by_created_at(
            _copy_invitation(invitation)
            for invitation in self._invitations_by_id.values()
            if invitation.get("team_id") == team_id
        )

    def list_invitations_for_email(self, email: str) -> list[dict[str, Any]]:
        normalized_email = email.strip().lower()
        return _sorted_by_created_at(
            _copy_invitation(invitation)
            for invitation in self._invitations_by_id.values()
            if invitation.get("email") == normalized_email
        )

    def list_invitations_sent_by(self, person_id: str) -> list[dict[str, Any]]:
        return _sorted_by_created_at(
            _copy_invitation(invitation)
            for invitation in self._invitations_by_id.values()
            if any(message.get("person_id") == person_id for message in invitation.get("messages", []))
        )

    def add_invitation_message(
        self,
        invitation_id: str,
        message: Mapping[str, Any],
        *,
        intended_role: str | None = None,
    ) -> dict[str, Any] | None:
        invitation = self._invitations_by_id.get(invitation_id)
        if not invitation:
            return None
        invitation["messages"].append(dict(message))
        invitation["expiry_reset_at"] = datetime.now(UTC)
        if intended_role:
            invitation["intended_role"] = intended_role
        return _copy_invitation(invitation)

    def delete_invitation(self, invitation_id: str) -> bool:
        return self._invitations_by_id.pop(invitation_id, None) is not None

    def delete_invitations_for_team(self, team_id: str) -> int:
        invitation_ids = [
            invitation_id
            for invitation_id, invitation in self._invitations_by_id.items()
            if invitation.get("team_id") == team_id
        ]
        for invitation_id in invitation_ids:
            self._invitations_by_id.pop(invitation_id, None)
        return len(invitation_ids)

    def create_or_update_pending_join_request(
        self,
        *,
        team_id: str,
        person: Mapping[str, Any],
        message: str,
        role: str,
    ) -> dict[str, Any]:
        person_id = str(person.get("_id", ""))
        for join_request in self._join_requests_by_id.values():
            if join_request.get("team_id") != team_id:
                continue
            if join_request.get("person_id") != person_id:
                continue
            join_request["message"] = message
            join_request["created_at"] = datetime.now(UTC)
            return dict(join_request)

        with self._locks_guard:
            join_request_id = self._allocate_id()
        join_request = {
            "_id": join_request_id,
            "team_id": team_id,
            "person_id": person_id,
            "person_urn": str(person.get("urn", "")),
            "message": message,
            "role": role,
            "status": "pending",
            "created_at": datetime.now(UTC),
        }
        self._join_requests_by_id[join_request_id] = join_request
        return dict(join_request)

    def get_join_request(self, join_request_id: str) -> dict[str, Any] | None:
        join_request = self._join_requests_by_id.get(join_request_id)
        if not join_request:
            return None
        return dict(join_request)

    def list_join_requests_for_teams(self, team_ids: list[str]) -> list[dict[str, Any]]:
        wanted_team_ids = set(team_ids)
        return _sorted_by_created_at(
            dict(join_request)
            for join_request in self._join_requests_by_id.values()
            if join_request.get("team_id") in wanted_team_ids
        )

    def list_join_requests_for_person(self, person_id: str) -> list[dict[str, Any]]:
        return _sorted_by_created_at(
            dict(join_request)
            for join_request in self._join_requests_by_id.values()
            if join_request.get("person_id") == person_id
        )

    def delete_join_request(self, join_request_id: str) -> bool:
        return self._join_requests_by_id.pop(join_request_id, None) is not None

    def delete_join_requests_for_team(self, team_id: str) -> int:
        join_request_ids = [
            join_request_id
            for join_request_id, join_request in self._join_requests_by_id.items()
            if join_request.get("team_id") == team_id
        ]
        for join_request_id in join_request_ids:
            self._join_requests_by_id.pop(join_request_id, None)
        return len(join_request_ids)

    def upsert_external_team(
        self,
        *,
        identifier: str,
        name: str,
        description: str,
        group_provider: str,
    ) -> dict[str, Any]:
        normalized_identifier = identifier.strip()
        with self._locks_guard:
            for external_team in self._external_teams_by_id.values():
                if external_team.get("identifier") != normalized_identifier:
                    continue
                external_team["name"] = name.strip()
                external_team["description"] = description.strip()
                external_team["group_provider"] = group_provider.strip()
                return _copy_external_team(external_team)

            external_team_id = self._allocate_id()
            external_team = {
                "_id": external_team_id,
                "identifier": normalized_identifier,
                "name": name.strip(),
                "description": description.strip(),
                "group_provider": group_provider.strip(),
                "team_ids": [],
            }
            self._external_teams_by_id[external_team_id] = external_team
            return _copy_external_team(external_team)

    def get_external_team_by_identifier(self, identifier: str) -> dict[str, Any] | None:
        normalized_identifier = identifier.strip()
        for external_team in self._external_teams_by_id.values():
            if external_team.get("identifier") == normalized_identifier:
                return _copy_external_team(external_team)
        return None

    def list_external_teams_for_team(self, team_id: str) -> list[dict[str, Any]]:
        external_teams = [
            _copy_external_team(external_team)
            for external_team in self._external_teams_by_id.values()
            if team_id in external_team.get("team_ids", [])
        ]
        external_teams.sort(key=lambda external_team: str(external_team.get("name", "")).lower())
        return external_teams

    def link_external_team(self, external_team_id: str, team_id: str) -> dict[str, Any] | None:
        external_team = self._external_teams_by_id.get(external_team_id)
        if not external_team:
            return None
        if team_id not in external_team["team_ids"]:
            external_team["team_ids"].append(team_id)
        return _copy_external_team(external_team)

    def unlink_external_team(self, external_team_id: str, team_id: str) -> dict[str, Any] | None:
        external_team = self._external_teams_by_id.get(external_team_id)
        if not external_team:
            return None
        external_team["team_ids"] = [
            linked_team_id
            for linked_team_id in external_team["team_ids"]
            if linked_team_id != team_id
        ]
        return _copy_external_team(external_team)

    def _allocate_id(self) -> str:
        with self._id_lock:
            allocated_id = str(self._next_id)
            self._next_id += 1
        return allocated_id

    def _bump_version(self, team_id: str) -> None:
        team = self._teams_by_id.get(team_id)
        if team:
            team["version"] = int(team.get("version", 0)) + 1


class MongoTeamStore(TeamStore):
    def __init__(
        self,
        *,
        uri: str,
        db_name: str,
        teams_collection_name: str,
        memberships_collection_name: str,
        invitations_collection_name: str,
        join_requests_collection_name: str,
        external_teams_collection_name: str,
        connect_timeout_ms: int = 2000,
        lock_timeout_seconds: float = 5.0,
    ) -> None:
        from pymongo import MongoClient

        self._client = MongoClient(
            uri,
            serverSelectionTimeoutMS=connect_timeout_ms,
            connectTimeoutMS=connect_timeout_ms,
        )
        self._lock_timeout_seconds = lock_timeout_seconds
        database = self._client[db_name]
        self._teams = database[teams_collection_name]
        self._memberships = database[memberships_collection_name]
        self._invitations = database[invitations_collection_name]
        self._join_requests = database[join_requests_collection_name]
        self._external_teams = database[external_teams_collection_name]

        self._teams.create_index("urn", unique=True)
        self._memberships.create_index([("team_id", 1), ("person_id", 1)], unique=True)
        self._memberships.create_index("person_id")
        self._invitations.create_index("invitation_hash", unique=True)
        self._invitations.create_index("team_id")
        self._invitations.create_index("email")
        self._invitations.create_index("messages.person_id")
        self._join_requests.create_index([("team_id", 1), ("person_id", 1)], unique=True)
        self._join_requests.create_index("person_id")
        self._external_teams.create_index("identifier", unique=True)
        self._external_teams.create_index("team_ids")

    @contextmanager
    def team_lock(self, team_id: str) -> Iterator[None]:
        object_id = _to_object_id(team_id)
        if not object_id:
            yield
            return

        token = secrets.token_hex(16)
        lease = timedelta(seconds=self._lock_timeout_seconds * 2)
        deadline = time.monotonic() + self._lock_timeout_seconds
        while True:
            now = datetime.now(UTC)
            acquired = self._teams.find_one_and_update(
                {
                    "_id": object_id,
                    "$or": [
                        {"lock_token": None},
                        {"lock_expires_at": {"$lt": now}},
                    ],
                },
                {"$set": {"lock_token": token, "lock_expires_at": now + lease}},
            )
            if acquired:
                break
            if self._teams.count_documents({"_id": object_id}, limit=1) == 0:
                # Unknown team: nothing to serialize, the caller reports it.
                yield
                return
            if time.monotonic() >= deadline:
                raise ConcurrentModificationError(
                    "Team is being modified by another request.",
                    {"team_id": team_id},
                )
            time.sleep(0.05)

        try:
            yield
        finally:
            self._teams.update_one(
                {"_id": object_id, "lock_token": token},
                {"$set": {"lock_token": None, "lock_expires_at": None}},
            )

    def create_team(
        self,
        *,
        team: Mapping[str, Any],
        admin: Mapping[str, Any],
    ) -> dict[str, Any]:
        from pymongo.errors import DuplicateKeyError

        payload = {
            **dict(team),
            "urn": str(team.get("urn", "")).strip(),
            "created_at": datetime.now(UTC),
            "version": 0,
        }
        try:
            insert_result = self._teams.insert_one(payload)
        except DuplicateKeyError as exc:
            raise ValueError("team_urn_already_exists") from exc

        created = self.get_team(str(insert_result.inserted_id))
        if not created:
            raise RuntimeError("Unable to read created team.")
        try:
            self.create_membership(team=created, person=admin, role="ADMIN", origin="initial_admin")
        except Exception:
            self._teams.delete_one({"_id": insert_result.inserted_id})
            raise
        return created

    def get_team(self, team_id: str) -> dict[str, Any] | None:
        object_id = _to_object_id(team_id)
        if not object_id:
            return None
        return _serialize_record(self._teams.find_one({"_id": object_id}))

    def get_team_by_urn(self, urn: str) -> dict[str, Any] | None:
        return _serialize_record(self._teams.find_one({"urn": urn.strip()}))

    def list_teams_by_ids(self, team_ids: list[str]) -> list[dict[str, Any]]:
        object_ids = [object_id for object_id in map(_to_object_id, team_ids) if object_id]
        if not object_ids:
            return []
        records = self._teams.find({"_id": {"$in": object_ids}})
        by_id = {str(record.get("_id")): _serialize_record(record) for record in records}
        return [by_id[team_id] for team_id in team_ids if by_id.get(team_id)]

    def update_team(self, team_id: str, updates: Mapping[str, Any]) -> dict[str, Any] | None:
        object_id = _to_object_id(team_id)
        if not object_id:
            return None
        set_payload = {
            field_name: value
            for field_name, value in updates.items()
            if field_name in _MUTABLE_TEAM_FIELDS
        }
        update: dict[str, Any] = {"$inc": {"version": 1}}
        if set_payload:
            update["$set"] = set_payload
        self._teams.update_one({"_id": object_id}, update)
        return self.get_team(team_id)

    def delete_team(self, team_id: str) -> bool:
        object_id = _to_object_id(team_id)
        if not object_id:
            return False
        return self._teams.delete_one({"_id": object_id}).deleted_count > 0

    def list_memberships_for_team(self, team_id: str) -> list[dict[str, Any]]:
        return [_serialize_record(record) for record in self._memberships.find({"team_id": team_id})]

    def list_memberships_for_person(self, person_id: str) -> list[dict[str, Any]]:
        return [_serialize_record(record) for record in self._memberships.find({"person_id": person_id})]

    def create_membership(
        self,
        *,
        team: Mapping[str, Any],
        person: Mapping[str, Any],
        role: str,
        origin: str,
    ) -> dict[str, Any]:
        from pymongo.errors import DuplicateKeyError

        team_id = str(team.get("_id", ""))
        payload = {
            "team_id": team_id,
            "team_urn": str(team.get("urn", "")),
            "person_id": str(person.get("_id", "")),
            "person_urn": str(person.get("urn", "")),
            "role": role,
            "origin": origin,
            "created_at": datetime.now(UTC),
        }
        try:
            insert_result = self._memberships.insert_one(payload)
        except DuplicateKeyError as exc:
            raise ValueError("membership_already_exists") from exc
        self._bump_version(team_id)
        return _serialize_record(self._memberships.find_one({"_id": insert_result.inserted_id})) or {}

    def update_membership_role(self, membership_id: str, role: str) -> dict[str, Any] | None:
        object_id = _to_object_id(membership_id)
        if not object_id:
            return None
        record = self._memberships.find_one({"_id": object_id})
        if not record:
            return None
        self._memberships.update_one({"_id": object_id}, {"$set": {"role": role}})
        self._bump_version(str(record.get("team_id", "")))
        return _serialize_record(self._memberships.find_one({"_id": object_id}))

    def delete_membership(self, membership_id: str) -> bool:
        object_id = _to_object_id(membership_id)
        if not object_id:
            return False
        record = self._memberships.find_one_and_delete({"_id": object_id})
        if not record:
            return False
        self._bump_version(str(record.get("team_id", "")))
        return True

    def delete_memberships_for_team(self, team_id: str) -> int:
        return self._memberships.delete_many({"team_id": team_id}).deleted_count

    def create_invitation(
        self,
        *,
        team_id: str,
        email: str,
        intended_role: str,
        language: str,
        invitation_hash: str,
        message: Mapping[str, Any],
    ) -> dict[str, Any]:
        now = datetime.now(UTC)
        payload = {
            "team_id": team_id,
            "email": email.strip().lower(),
            "intended_role": intended_role,
            "language": language,
            "invitation_hash": invitation_hash,
            "messages": [dict(message)],
            "status": "pending",
            "created_at": now,
            "expiry_reset_at": now,
        }
        insert_result = self._invitations.insert_one(payload)
        return _serialize_record(self._invitations.find_one({"_id": insert_result.inserted_id})) or {}

    def get_invitation(self, invitation_id: str) -> dict[str, Any] | None:
        object_id = _to_object_id(invitation_id)
        if not object_id:
            return None
        return _serialize_record(self._invitations.find_one({"_id": object_id}))

    def get_invitation_by_hash(self, invitation_hash: str) -> dict[str, Any] | None:
        return _serialize_record(self._invitations.find_one({"invitation_hash": invitation_hash}))

    def list_invitations_for_team(self, team_id: str) -> list[dict[str, Any]]:
        records = self._invitations.find({"team_id": team_id}).sort("created_at", 1)
        return [_serialize_record(record) for record in records]

    def list_invitations_for_email(self, email: str) -> list[dict[str, Any]]:
        records = self._invitations.find({"email": email.strip().lower()}).sort("created_at", 1)
        return [_serialize_record(record) for record in records]

    def list_invitations_sent_by(self, person_id: str) -> list[dict[str, Any]]:
        records = self._invitations.find({"messages.person_id": person_id}).sort("created_at", 1)
        return [_serialize_record(record) for record in records]

    def add_invitation_message(
        self,
        invitation_id: str,
        message: Mapping[str, Any],
        *,
        intended_role: str | None = None,
    ) -> dict[str, Any] | None:
        object_id = _to_object_id(invitation_id)
        if not object_id:
            return None
        set_payload: dict[str, Any] = {"expiry_reset_at": datetime.now(UTC)}
        if intended_role:
            set_payload["intended_role"] = intended_role
        self._invitations.update_one(
            {"_id": object_id},
            {"$push": {"messages": dict(message)}, "$set": set_payload},
        )
        return self.get_invitation(invitation_id)

    def delete_invitation(self, invitation_id: str) -> bool:
        object_id = _to_object_id(invitation_id)
        if not object_id:
            return False
        return self._invitations.delete_one({"_id": object_id}).deleted_count > 0

    def delete_invitations_for_team(self, team_id: str) -> int:
        return self._invitations.delete_many({"team_id": team_id}).deleted_count

    def create_or_update_pending_join_request(
        self,
        *,
        team_id: str,
        person: Mapping[str, Any],
        message: str,
        role: str,
    ) -> dict[str, Any]:
        from pymongo.errors import DuplicateKeyError

        query = {"team_id": team_id, "person_id": str(person.get("_id", ""))}
        refresh = {"message": message, "created_at": datetime.now(UTC)}
        try:
            self._join_requests.update_one(
                query,
                {
                    "$set": refresh,
                    "$setOnInsert": {
                        "person_urn": str(person.get("urn", "")),
                        "role": role,
                        "status": "pending",
                    },
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # A concurrent first request inserted the document; update it instead.
            self._join_requests.update_one(query, {"$set": refresh})
        return _serialize_record(self._join_requests.find_one(query)) or {}

    def get_join_request(self, join_request_id: str) -> dict[str, Any] | None:
        object_id = _to_object_id(join_request_id)
        if not object_id:
            return None
        return _serialize_record(self._join_requests.find_one({"_id": object_id}))

    def list_join_requests_for_teams(self, team_ids: list[str]) -> list[dict[str, Any]]:
        if not team_ids:
            return []
        records = self._join_requests.find({"team_id": {"$in": list(team_ids)}}).sort("created_at", 1)
        return [_serialize_record(record) for record in records]

    def list_join_requests_for_person(self, person_id: str) -> list[dict[str, Any]]:
        records = self._join_requests.find({"person_id": person_id}).sort("created_at", 1)
        return [_serialize_record(record) for record in records]

    def delete_join_request(self, join_request_id: str) -> bool:
        object_id = _to_object_id(join_request_id)
        if not object_id:
            return False
        return self._join_requests.delete_one({"_id": object_id}).deleted_count > 0

    def delete_join_requests_for_team(self, team_id: str) -> int:
        return self._join_requests.delete_many({"team_id": team_id}).deleted_count

    def upsert_external_team(
        self,
        *,
        identifier: str,
        name: str,
        description: str,
        group_provider: str,
    ) -> dict[str, Any]:
        from pymongo import ReturnDocument

        record = self._external_teams.find_one_and_update(
            {"identifier": identifier.strip()},
            {
                "$set": {
                    "name": name.strip(),
                    "description": description.strip(),
                    "group_provider": group_provider.strip(),
                },
                "$setOnInsert": {"team_ids": []},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return _serialize_record(record) or {}

    def get_external_team_by_identifier(self, identifier: str) -> dict[str, Any] | None:
        return _serialize_record(self._external_teams.find_one({"identifier": identifier.strip()}))

    def list_external_teams_for_team(self, team_id: str) -> list[dict[str, Any]]:
        records = self._external_teams.find({"team_ids": team_id}).sort("name", 1)
        return [_serialize_record(record) for record in records]

    def link_external_team(self, external_team_id: str, team_id: str) -> dict[str, Any] | None:
        return self._update_external_team(external_team_id, {"$addToSet": {"team_ids": team_id}})

    def unlink_external_team(self, external_team_id: str, team_id: str) -> dict[str, Any] | None:
        return self._update_external_team(external_team_id, {"$pull": {"team_ids": team_id}})

    def _update_external_team(self, external_team_id: str, update: Mapping[str, Any]) -> dict[str, Any] | None:
        object_id = _to_object_id(external_team_id)
        if not object_id:
            return None
        self._external_teams.update_one({"_id": object_id}, dict(update))
        return _serialize_record(self._external_teams.find_one({"_id": object_id}))

    def _bump_version(self, team_id: str) -> None:
        object_id = _to_object_id(team_id)
        if object_id:
            self._teams.update_one({"_id": object_id}, {"$inc": {"version": 1}})


def _to_object_id(record_id: str) -> Any | None:
    from bson import ObjectId
    from bson.errors import InvalidId

    try:
        return ObjectId(record_id)
    except (InvalidId, TypeError):
        return None


def _serialize_record(record: Any) -> dict[str, Any] | None:
    if not record:
        return None
    payload = dict(record)
    payload["_id"] = str(record.get("_id", ""))
    for field_name in _LOCK_FIELDS:
        payload.pop(field_name, None)
    return payload


def _copy_invitation(invitation: Mapping[str, Any]) -> dict[str, Any]:
    payload = dict(invitation)
    payload["messages"] = [dict(message) for message in invitation.get("messages", [])]
    return payload


def _copy_external_team(external_team: Mapping[str, Any]) -> dict[str, Any]:
    payload = dict(external_team)
    payload["team_ids"] = list(external_team.get("team_ids", []))
    return payload


def _sorted_by_created_at(records: Any) -> list[dict[str, Any]]:
    return sorted(records, key=lambda record: record.get("created_at") or datetime.min.replace(tzinfo=UTC))


def create_team_store(settings: Settings) -> TeamStore:
    return _create_team_store_cached(
        team_data_store=settings.team_data_store,
        mongodb_uri=settings.mongodb_uri,
        mongodb_db_name=settings.mongodb_db_name,
        mongodb_teams_collection=settings.mongodb_teams_collection,
        mongodb_memberships_collection=settings.mongodb_memberships_collection,
        mongodb_invitations_collection=settings.mongodb_invitations_collection,
        mongodb_join_requests_collection=settings.mongodb_join_requests_collection,
        mongodb_external_teams_collection=settings.mongodb_external_teams_collection,
        mongodb_connect_timeout_ms=settings.mongodb_connect_timeout_ms,
        team_lock_timeout_seconds=settings.team_lock_timeout_seconds,
    )


@lru_cache
def _create_team_store_cached(
    *,
    team_data_store: str,
    mongodb_uri: str,
    mongodb_db_name: str,
    mongodb_teams_collection: str,
    mongodb_memberships_collection: str,
    mongodb_invitations_collection: str,
    mongodb_join_requests_collection: str,
    mongodb_external_teams_collection: str,
    mongodb_connect_timeout_ms: int,
    team_lock_timeout_seconds: float,
) -> TeamStore:
    if team_data_store == "memory":
        return InMemoryTeamStore()

    if team_data_store == "mongodb":
        return MongoTeamStore(
            uri=mongodb_uri,
            db_name=mongodb_db_name,
            teams_collection_name=mongodb_teams_collection,
            memberships_collection_name=mongodb_memberships_collection,
            invitations_collection_name=mongodb_invitations_collection,
            join_requests_collection_name=mongodb_join_requests_collection,
            external_teams_collection_name=mongodb_external_teams_collection,
            connect_timeout_ms=mongodb_connect_timeout_ms,
            lock_timeout_seconds=team_lock_timeout_seconds,
        )

    return InMemoryTeamStore()


def clear_team_store_cache() -> None:
    _create_team_store_cached.cache_clear()
