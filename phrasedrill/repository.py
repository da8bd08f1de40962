"""Storage: users and translations in MongoDB, a JSON cache in Redis."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import pymongo
import redis
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from .models import NIL_OBJECT_ID, Translation, UpdateTranslationInput, User

_QUERY_TIMEOUT = 5
_CONNECT_TIMEOUT = 10
_DEFAULT_REDIS_PORT = 6379


class NotFoundError(LookupError):
    """No document matched the query."""


def _object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise ValueError(f"invalid object id: {value!r}") from exc


def _inserted_hex(inserted_id: Any) -> str:
    if not isinstance(inserted_id, ObjectId):
        raise TypeError("inserted id is not an ObjectId")
    return str(inserted_id)


def _translation_from_doc(doc: dict[str, Any]) -> Translation:
    return Translation(
        id=str(doc.get("_id", NIL_OBJECT_ID)),
        phrase=doc.get("phrase", ""),
        expected_translation=doc.get("expected_translation", ""),
        done=bool(doc.get("done", False)),
    )


@dataclass(frozen=True)
class MongoConfig:
    uri: str
    database: str


def connect_mongo(config: MongoConfig) -> pymongo.MongoClient:
    """Open a client and make sure the server answers a ping."""
    timeout_ms = _CONNECT_TIMEOUT * 1000
    client: pymongo.MongoClient = pymongo.MongoClient(
        config.uri, serverSelectionTimeoutMS=timeout_ms, connectTimeoutMS=timeout_ms
    )
    try:
        with pymongo.timeout(_CONNECT_TIMEOUT):
            client.admin.command("ping")
    except PyMongoError:
        client.close()
        raise
    return client


class AuthMongo:
    """User accounts."""

    def __init__(self, client: Any, db_name: str, collection_name: str) -> None:
        self._collection = client[db_name][collection_name]

    def create_user(self, user: User) -> str:
        doc: dict[str, Any] = {
            "name": user.name,
            "username": user.username,
            "password": user.password,
        }
        if user.id != NIL_OBJECT_ID:
            doc["_id"] = _object_id(user.id)
        with pymongo.timeout(_QUERY_TIMEOUT):
            result = self._collection.insert_one(doc)
        return _inserted_hex(result.inserted_id)

    def get_user(self, username: str, password: str) -> User:
        with pymongo.timeout(_QUERY_TIMEOUT):
            doc = self._collection.find_one({"username": username, "password": password})
        if doc is None:
            raise NotFoundError("user not found")
        return User(
            id=str(doc["_id"]),
            name=doc.get("name", ""),
            username=doc.get("username", ""),
            password=doc.get("password", ""),
        )


class TranslationMongo:
    """Translations, each owned by one user."""

    def __init__(self, client: Any, db_name: str, collection_name: str) -> None:
        self._collection = client[db_name][collection_name]

    def create(self, user_id: str, translation: Translation) -> str:
        doc = {
            "phrase": translation.phrase,
            "expected_translation": translation.expected_translation,
            "done": False,
            "user_id": user_id,
        }
        with pymongo.timeout(_QUERY_TIMEOUT):
            result = self._collection.insert_one(doc)
        return _inserted_hex(result.inserted_id)

    def get_all(self, user_id: str) -> list[Translation]:
        with pymongo.timeout(_QUERY_TIMEOUT):
            docs = list(self._collection.find({"user_id": user_id}))
        return [_translation_from_doc(doc) for doc in docs]

    def get_by_id(self, user_id: str, translation_id: str) -> Translation:
        query = {"_id": _object_id(translation_id), "user_id": user_id}
        with pymongo.timeout(_QUERY_TIMEOUT):
            doc = self._collection.find_one(query)
        if doc is None:
            raise NotFoundError("translation not found")
        return _translation_from_doc(doc)

    def delete(self, user_id: str, translation_id: str) -> None:
        query = {"_id": _object_id(translation_id), "user_id": user_id}
        with pymongo.timeout(_QUERY_TIMEOUT):
            self._collection.delete_one(query)

    def update(self, user_id: str, translation_id: str, update: UpdateTranslationInput) -> None:
        query = {"_id": _object_id(translation_id), "user_id": user_id}
        change = {"$set": {"done": bool(update.done)}}
        with pymongo.timeout(_QUERY_TIMEOUT):
            self._collection.update_one(query, change)

    def delete_by_phrase(self, user_id: str, phrase: str) -> None:
        with pymongo.timeout(_QUERY_TIMEOUT):
            self._collection.delete_many({"user_id": user_id, "phrase": phrase})


class RedisRepo:
    """A key/value cache storing values as JSON text."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def connect(cls, addr: str, password: str, db: int) -> RedisRepo:
        """Connect to ``host:port`` and check the server answers a ping."""
        host, sep, port = addr.rpartition(":")
        if not sep:
            host, port = addr, str(_DEFAULT_REDIS_PORT)
        client = redis.Redis(host=host or "localhost", port=int(port), password=password or None, db=db)
        client.ping()
        return cls(client)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        data = json.dumps(value, ensure_ascii=False)
        self._client.set(key, data, ex=ttl_seconds if ttl_seconds > 0 else None)

    def get(self, key: str) -> str:
        """Return the stored text, or an empty string for a missing key."""
        value = self._client.get(key)
        if value is None:
            return ""
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def delete(self, key: str) -> None:
        self._client.delete(key)


class Repository:
    """All storage used by the services."""

    def __init__(self, client: Any, db_name: str, collection_name: str, cache: Any) -> None:
        self.authorisation = AuthMongo(client, db_name, collection_name)
        self.translation = TranslationMongo(client, db_name, "translations")
        self.cache = cache