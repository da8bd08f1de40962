"""Business logic: accounts, tokens and cached translation access."""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from .models import NIL_OBJECT_ID, Translation, UpdateTranslationInput, User

SALT = "erijj4or-3j4or34r"
SIGNING_KEY = "secret"
TOKEN_TTL = timedelta(hours=12)
CACHE_TTL_SECONDS = 60
_HMAC_ALGORITHMS = ["HS256", "HS384", "HS512"]


class TokenError(ValueError):
    """An access token is malformed, expired or badly signed."""


def generate_password_hash(password: str) -> str:
    """Hex of the salt followed by the SHA-1 digest of the password."""
    return SALT.encode("utf-8").hex() + hashlib.sha1(password.encode("utf-8")).hexdigest()


class AuthService:
    """Registers users and issues and checks their tokens."""

    def __init__(self, repo: Any, signing_key: str = SIGNING_KEY) -> None:
        self._repo = repo
        self._signing_key = signing_key

    def create_user(self, user: User) -> str:
        return self._repo.create_user(replace(user, password=generate_password_hash(user.password)))

    def generate_token(self, username: str, password: str) -> str:
        """Return ``"Bearer <jwt>"`` for valid credentials."""
        user = self._repo.get_user(username, generate_password_hash(password))
        now = datetime.now(timezone.utc)
        claims = {
            "exp": int((now + TOKEN_TTL).timestamp()),
            "iat": int(now.timestamp()),
            "user_id": user.id,
        }
        return "Bearer " + jwt.encode(claims, self._signing_key, algorithm="HS256")

    def parse_token(self, access_token: str) -> str:
        """Return the user id carried by a valid token."""
        try:
            claims = jwt.decode(access_token, self._signing_key, algorithms=_HMAC_ALGORITHMS)
        except jwt.PyJWTError as exc:
            raise TokenError(str(exc)) from exc
        user_id = claims.get("user_id", "")
        if not isinstance(user_id, str):
            raise TokenError("user_id claim is not a string")
        return user_id


def _field(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise ValueError(f"cached field {key!r} has the wrong type")
    return value


def _translation_from_json(data: Any) -> Translation:
    if data is None:
        return Translation()
    if not isinstance(data, dict):
        raise ValueError("cached translation is not an object")
    return Translation(
        id=_field(data, "id", str, NIL_OBJECT_ID),
        phrase=_field(data, "phrase", str, ""),
        expected_translation=_field(data, "expected_translation", str, ""),
        done=_field(data, "done", bool, False),
    )


def _all_key(user_id: str) -> str:
    return f"translations:all:{user_id}"


def _id_key(user_id: str, translation_id: str) -> str:
    return f"translations:id:{user_id}:{translation_id}"


class TranslationService:
    """Translation access with an optional read-through cache."""

    def __init__(self, repo: Any, cache: Any = None) -> None:
        self._repo = repo
        self._cache = cache

    # Cache failures never break a request; the store is the source of truth.
    def _cache_get(self, key: str) -> str:
        if self._cache is None:
            return ""
        try:
            return self._cache.get(key) or ""
        except Exception:
            return ""

    def _cache_set(self, key: str, value: Any) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(key, value, CACHE_TTL_SECONDS)
        except Exception:
            pass

    def _cache_delete(self, *keys: str) -> None:
        if self._cache is None:
            return
        for key in keys:
            try:
                self._cache.delete(key)
            except Exception:
                pass

    def create(self, user_id: str, translation: Translation) -> str:
        return self._repo.create(user_id, translation)

    def get_all(self, user_id: str, limit: int) -> tuple[list[Translation], bool]:
        """Return the user's translations and whether they came from the cache."""
        limit_key = str(limit) if limit > 0 else "all"
        key = f"{_all_key(user_id)}:limit:{limit_key}"
        cached = self._cache_get(key)
        if cached:
            try:
                items = json.loads(cached)
                if items is None:
                    return [], True
                if isinstance(items, list):
                    return [_translation_from_json(item) for item in items], True
            except ValueError:
                pass
        translations = self._repo.get_all(user_id)
        if 0 < limit < len(translations):
            translations = translations[:limit]
        self._cache_set(key, [t.to_dict() for t in translations])
        return translations, False

    def get_by_id(self, user_id: str, translation_id: str) -> tuple[Translation, bool]:
        """Return one translation and whether it came from the cache."""
        key = _id_key(user_id, translation_id)
        cached = self._cache_get(key)
        if cached:
            try:
                return _translation_from_json(json.loads(cached)), True
            except ValueError:
                pass
        translation = self._repo.get_by_id(user_id, translation_id)
        self._cache_set(key, translation.to_dict())
        return translation, False

    def delete(self, user_id: str, translation_id: str) -> None:
        self._cache_delete(_id_key(user_id, translation_id), _all_key(user_id))
        self._repo.delete(user_id, translation_id)

    def delete_by_phrase(self, user_id: str, phrase: str) -> None:
        self._cache_delete(_all_key(user_id))
        self._repo.delete_by_phrase(user_id, phrase)

    def update(self, user_id: str, translation_id: str, update: UpdateTranslationInput) -> None:
        self._cache_delete(_id_key(user_id, translation_id), _all_key(user_id))
        self._repo.update(user_id, translation_id, update)


class Service:
    """All services, built over one repository."""

    def __init__(self, repository: Any) -> None:
        self.authorisation = AuthService(repository.authorisation)
        self.translation = TranslationService(repository.translation, repository.cache)
        self.cache = repository.cache