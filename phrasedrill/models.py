"""Records exchanged between the HTTP layer, the services and storage."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

NIL_OBJECT_ID = "0" * 24
_OBJECT_ID = re.compile(r"[0-9a-fA-F]{24}")


class BindError(ValueError):
    """A request body does not have the expected shape."""


class InvalidTranslation(ValueError):
    """A submitted translation is missing or does not match."""


def _mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise BindError("expected a JSON object")
    return data


def _optional(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise BindError(f"field {key!r} must be of type {kind.__name__}")
    return value


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = _optional(data, key, str, "")
    if not value:
        raise BindError(f"field {key!r} is required")
    return value


def _object_id_field(data: Mapping[str, Any], key: str) -> str:
    value = _optional(data, key, str, "") or NIL_OBJECT_ID
    if not _OBJECT_ID.fullmatch(value):
        raise BindError(f"field {key!r} is not a valid object id")
    return value.lower()


@dataclass
class Translation:
    """A phrase to learn together with its expected translation."""

    id: str = NIL_OBJECT_ID
    phrase: str = ""
    expected_translation: str = ""
    done: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> Translation:
        """Bind a request body; phrase and expected_translation are required."""
        body = _mapping(data)
        return cls(
            id=_object_id_field(body, "id"),
            phrase=_required_str(body, "phrase"),
            expected_translation=_required_str(body, "expected_translation"),
            done=_optional(body, "done", bool, False),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "phrase": self.phrase,
            "expected_translation": self.expected_translation,
            "done": self.done,
        }


@dataclass
class UpdateTranslationInput:
    """An answer submitted for checking."""

    translation: str | None = None
    done: bool | None = None

    @classmethod
    def from_dict(cls, data: Any) -> UpdateTranslationInput:
        body = _mapping(data)
        return cls(
            translation=_optional(body, "translation", str, None),
            done=_optional(body, "done", bool, None),
        )

    def validate(self, expected_translation: str) -> None:
        """Raise InvalidTranslation unless the answer equals the expected one."""
        if self.translation is None:
            raise InvalidTranslation("поле translation обязательно")
        if self.translation != expected_translation:
            raise InvalidTranslation("неверный перевод")


@dataclass
class User:
    """A registered account."""

    id: str = NIL_OBJECT_ID
    name: str = ""
    username: str = ""
    password: str = ""


@dataclass
class SignUpInput:
    name: str
    username: str
    password: str

    @classmethod
    def from_dict(cls, data: Any) -> SignUpInput:
        body = _mapping(data)
        return cls(
            name=_required_str(body, "name"),
            username=_required_str(body, "username"),
            password=_required_str(body, "password"),
        )


@dataclass
class SignInInput:
    username: str
    password: str

    @classmethod
    def from_dict(cls, data: Any) -> SignInInput:
        body = _mapping(data)
        return cls(
            username=_required_str(body, "username"),
            password=_required_str(body, "password"),
        )