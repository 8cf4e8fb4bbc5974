from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any

from teams.core.config import Settings


class PersonStore(ABC):
    @abstractmethod
    def get_person_by_id(self, person_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def get_person_by_urn(self, urn: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def list_persons_by_ids(self, person_ids: list[str]) -> list[dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def upsert_person(
        self,
        *,
        urn: str,
        name: str,
        email: str,
        guest: bool,
        last_login_date: datetime,
    ) -> dict[str, Any]:
        """Insert or update the person whose urn matches case-insensitively."""
        raise NotImplementedError


class InMemoryPersonStore(PersonStore):
    def __init__(self) -> None:
        self._next_id = 1
        self._lock = threading.Lock()
        self._persons_by_id: dict[str, dict[str, Any]] = {}
        self._person_id_by_urn: dict[str, str] = {}

    def get_person_by_id(self, person_id: str) -> dict[str, Any] | None:
        person = self._persons_by_id.get(person_id)
        if not person:
            return None
        return dict(person)

    def get_person_by_urn(self, urn: str) -> dict[str, Any] | None:
        person_id = self._person_id_by_urn.get(_normalize_urn(urn))
        if not person_id:
            return None
        return self.get_person_by_id(person_id)

    def list_persons_by_ids(self, person_ids: list[str]) -> list[dict[str, Any]]:
        persons: list[dict[str, Any]] = []
        for person_id in person_ids:
            person = self.get_person_by_id(person_id)
            if person:
                persons.append(person)
        return persons

    def upsert_person(
        self,
        *,
        urn: str,
        name: str,
        email: str,
        guest: bool,
        last_login_date: datetime,
    ) -> dict[str, Any]:
        normalized_urn = _normalize_urn(urn)
        with self._lock:
            existing_person_id = self._person_id_by_urn.get(normalized_urn)
            if existing_person_id:
                existing = self._persons_by_id[existing_person_id]
                existing["name"] = name.strip()
                existing["email"] = _normalize_email(email)
                existing["guest"] = bool(guest)
                existing["last_login_date"] = last_login_date
                return dict(existing)

            person_id = str(self._next_id)
            self._next_id += 1
            person = {
                "_id": person_id,
                "urn": urn.strip(),
                "urn_lower": normalized_urn,
                "name": name.strip(),
                "email": _normalize_email(email),
                "guest": bool(guest),
                "created_at": datetime.now(UTC),
                "last_login_date": last_login_date,
            }
            self._persons_by_id[person_id] = person
            self._person_id_by_urn[normalized_urn] = person_id
            return dict(person)


class MongoPersonStore(PersonStore):
    def __init__(
        self,
        *,
        uri: str,
        db_name: str,
        persons_collection_name: str,
        connect_timeout_ms: int = 2000,
    ) -> None:
        from pymongo import MongoClient

        self._client = MongoClient(
            uri,
            serverSelectionTimeoutMS=connect_timeout_ms,
            connectTimeoutMS=connect_timeout_ms,
        )
        database = self._client[db_name]
        self._persons = database[persons_collection_name]

        self._persons.create_index("urn_lower", unique=True)
        self._persons.create_index("email")

    def get_person_by_id(self, person_id: str) -> dict[str, Any] | None:
        from bson import ObjectId
        from bson.errors import InvalidId

        try:
            object_id = ObjectId(person_id)
        except InvalidId:
            return None
        record = self._persons.find_one({"_id": object_id})
        return _serialize_person_record(record)

    def get_person_by_urn(self, urn: str) -> dict[str, Any] | None:
        record = self._persons.find_one({"urn_lower": _normalize_urn(urn)})
        return _serialize_person_record(record)

    def list_persons_by_ids(self, person_ids: list[str]) -> list[dict[str, Any]]:
        from bson import ObjectId
        from bson.errors import InvalidId

        object_ids = []
        for person_id in person_ids:
            try:
                object_ids.append(ObjectId(person_id))
            except InvalidId:
                continue
        if not object_ids:
            return []
        records = self._persons.find({"_id": {"$in": object_ids}})
        by_id = {str(record.get("_id")): _serialize_person_record(record) for record in records}
        return [by_id[person_id] for person_id in person_ids if by_id.get(person_id)]

    def upsert_person(
        self,
        *,
        urn: str,
        name: str,
        email: str,
        guest: bool,
        last_login_date: datetime,
    ) -> dict[str, Any]:
        from pymongo import ReturnDocument

        record = self._persons.find_one_and_update(
            {"urn_lower": _normalize_urn(urn)},
            {
                "$set": {
                    "name": name.strip(),
                    "email": _normalize_email(email),
                    "guest": bool(guest),
                    "last_login_date": last_login_date,
                },
                "$setOnInsert": {
                    "urn": urn.strip(),
                    "created_at": datetime.now(UTC),
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        serialized = _serialize_person_record(record)
        if not serialized:
            raise RuntimeError("Unable to read provisioned person.")
        return serialized


def _serialize_person_record(record: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if not record:
        return None
    serialized = dict(record)
    serialized["_id"] = str(record.get("_id", ""))
    return serialized


def _normalize_urn(urn: str) -> str:
    return urn.strip().lower()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def create_person_store(settings: Settings) -> PersonStore:
    return _create_person_store_cached(
        team_data_store=settings.team_data_store,
        mongodb_uri=settings.mongodb_uri,
        mongodb_db_name=settings.mongodb_db_name,
        mongodb_persons_collection=settings.mongodb_persons_collection,
        mongodb_connect_timeout_ms=settings.mongodb_connect_timeout_ms,
    )


@lru_cache
def _create_person_store_cached(
    *,
    team_data_store: str,
    mongodb_uri: str,
    mongodb_db_name: str,
    mongodb_persons_collection: str,
    mongodb_connect_timeout_ms: int,
) -> PersonStore:
    if team_data_store == "memory":
        return InMemoryPersonStore()

    if team_data_store == "mongodb":
        return MongoPersonStore(
            uri=mongodb_uri,
            db_name=mongodb_db_name,
            persons_collection_name=mongodb_persons_collection,
            connect_timeout_ms=mongodb_connect_timeout_ms,
        )

    return InMemoryPersonStore()


def clear_person_store_cache() -> None:
    _create_person_store_cached.cache_clear()
