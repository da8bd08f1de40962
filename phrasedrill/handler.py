"""HTTP API: sign-up/sign-in and per-user translation drills."""

from __future__ import annotations

import functools
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from bson import ObjectId
from flask import Flask, Response, jsonify, request

from .models import (
    BindError,
    InvalidTranslation,
    SignInInput,
    SignUpInput,
    Translation,
    UpdateTranslationInput,
    User,
)
from .repository import NotFoundError

log = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Headers": (
        "Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization, "
        "accept, origin, Cache-Control, X-Requested-With"
    ),
    "Access-Control-Allow-Methods": "POST, OPTIONS, GET, PUT, DELETE",
}

BASE_WORDS = (
    ("hello", "привет"),
    ("world", "мир"),
    ("sun", "солнце"),
    ("moon", "луна"),
    ("sky", "небо"),
    ("tree", "дерево"),
    ("flower", "цветок"),
    ("water", "вода"),
    ("fire", "огонь"),
    ("earth", "земля"),
)

BULK_TOTAL = 100_000
BULK_BATCH_SIZE = 1000
DELETE_BATCH_SIZE = 1000

_INTEGER = re.compile(r"[+-]?[0-9]+")

_ViewResult = Any


def _error(status: int, message: str) -> _ViewResult:
    log.error(message)
    return jsonify({"message": message}), status


def _body() -> Any:
    return request.get_json(force=True, silent=True)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _parse_limit(raw: str) -> int:
    if _INTEGER.fullmatch(raw):
        value = int(raw)
        if value > 0:
            return value
    return 0


def _bad_id(translation_id: str) -> _ViewResult | None:
    if not translation_id:
        return _error(400, "Пустой id параметр")
    if not ObjectId.is_valid(translation_id):
        return _error(400, "Некорректный id параметр")
    return None


class Handler:
    """Builds the web application over a set of services."""

    def __init__(self, services: Any) -> None:
        self._services = services

    def init_routes(self) -> Flask:
        """Return a Flask application with every route registered."""
        app = Flask(__name__)
        app.json.ensure_ascii = False  # type: ignore[attr-defined]

        @app.before_request
        def _preflight() -> _ViewResult | None:
            if request.method == "OPTIONS":
                return Response(status=204)
            return None

        @app.after_request
        def _cors(response: Response) -> Response:
            response.headers.update(_CORS_HEADERS)
            return response

        app.add_url_rule("/api/auth/sign-up", "sign_up", self._sign_up, methods=["POST"])
        app.add_url_rule("/api/auth/sign-in", "sign_in", self._sign_in, methods=["POST"])

        routes: list[tuple[str, str, Callable[..., _ViewResult], str]] = [
            ("/api/translations/", "create_translation", self._create_translation, "POST"),
            ("/api/translations/", "get_all_translations", self._get_all_translations, "GET"),
            ("/api/translations/<id>", "get_translation", self._get_translation_by_id, "GET"),
            ("/api/translations/<id>", "update_translation", self._update_translation, "PUT"),
            ("/api/translations/<id>", "delete_translation", self._delete_translation, "DELETE"),
            ("/api/translations/post100", "create_test_translations", self._create_test_translations, "POST"),
            ("/api/translations/post100k", "create_test_translations_100k", self._create_test_translations_100k, "POST"),
            ("/api/translations/delete_all", "delete_all_translations", self._delete_all_translations, "DELETE"),
        ]
        for rule, endpoint, view, method in routes:
            app.add_url_rule(rule, endpoint, self._authenticated(view), methods=[method])
        return app

    def _authenticated(self, view: Callable[..., _ViewResult]) -> Callable[..., _ViewResult]:
        @functools.wraps(view)
        def wrapper(**kwargs: Any) -> _ViewResult:
            header = request.headers.get(AUTHORIZATION_HEADER, "")
            if not header:
                return _error(401, "Пустой заголовок")
            parts = header.split(" ")
            if len(parts) != 2:
                return _error(401, "Некорректный заголовок")
            try:
                user_id = self._services.authorisation.parse_token(parts[1])
            except Exception as exc:
                return _error(401, str(exc))
            return view(user_id, **kwargs)

        return wrapper

    # --- auth -----------------------------------------------------------

    def _sign_up(self) -> _ViewResult:
        try:
            data = SignUpInput.from_dict(_body())
        except BindError as exc:
            return _error(400, str(exc))
        user = User(name=data.name, username=data.username, password=data.password)
        try:
            user_id = self._services.authorisation.create_user(user)
        except Exception as exc:
            return _error(500, str(exc))
        return jsonify({"id": user_id})

    def _sign_in(self) -> _ViewResult:
        try:
            data = SignInInput.from_dict(_body())
        except BindError as exc:
            return _error(400, str(exc))
        try:
            token = self._services.authorisation.generate_token(data.username, data.password)
        except Exception as exc:
            return _error(500, str(exc))
        return jsonify({"token": token})

    # --- translations ---------------------------------------------------

    def _create_translation(self, user_id: str) -> _ViewResult:
        try:
            data = Translation.from_dict(_body())
        except BindError:
            return _error(400, "Некорректный JSON")
        if not data.phrase or not data.expected_translation:
            return _error(400, "Фраза и ожидаемый перевод обязательны")
        try:
            new_id = self._services.translation.create(user_id, data)
        except Exception:
            return _error(500, "Ошибка создания перевода")
        return jsonify({"id": new_id})

    def _get_all_translations(self, user_id: str) -> _ViewResult:
        start = time.perf_counter()
        limit = _parse_limit(request.args.get("limit", ""))
        try:
            translations, from_cache = self._services.translation.get_all(user_id, limit)
        except Exception:
            return _error(500, "Ошибка получения переводов")
        return jsonify(
            {
                "data": [t.to_dict() for t in translations],
                "total": len(translations),
                "source": "cache" if from_cache else "db",
                "duration_ms": _elapsed_ms(start),
            }
        )

    def _fetch(self, user_id: str, translation_id: str) -> tuple[Translation | None, bool, _ViewResult | None]:
        try:
            translation, from_cache = self._services.translation.get_by_id(user_id, translation_id)
        except NotFoundError:
            return None, False, _error(404, "Перевод не найден")
        except Exception:
            return None, False, _error(500, "Ошибка получения перевода")
        return translation, from_cache, None

    def _get_translation_by_id(self, user_id: str, id: str) -> _ViewResult:
        start = time.perf_counter()
        bad = _bad_id(id)
        if bad is not None:
            return bad
        translation, from_cache, failure = self._fetch(user_id, id)
        if failure is not None:
            return failure
        assert translation is not None
        return jsonify(
            {
                "data": translation.to_dict(),
                "source": "cache" if from_cache else "db",
                "duration_ms": _elapsed_ms(start),
            }
        )

    def _update_translation(self, user_id: str, id: str) -> _ViewResult:
        bad = _bad_id(id)
        if bad is not None:
            return bad
        try:
            answer = UpdateTranslationInput.from_dict(_body())
        except BindError:
            return _error(400, "Некорректный JSON")
        translation, _, failure = self._fetch(user_id, id)
        if failure is not None:
            return failure
        assert translation is not None
        try:
            answer.validate(translation.expected_translation)
        except InvalidTranslation as exc:
            return jsonify(
                {
                    "status": "incorrect",
                    "message": str(exc),
                    "correct": False,
                    "expected": translation.expected_translation,
                    "submitted": answer.translation,
                }
            )
        try:
            self._services.translation.update(user_id, id, answer)
        except Exception:
            return _error(500, "Ошибка обновления перевода")
        return jsonify({"status": "ok", "correct": True, "done": True})

    def _delete_translation(self, user_id: str, id: str) -> _ViewResult:
        bad = _bad_id(id)
        if bad is not None:
            return bad
        try:
            self._services.translation.delete(user_id, id)
        except NotFoundError:
            return _error(404, "Перевод не найден")
        except Exception:
            return _error(500, "Ошибка удаления перевода")
        return jsonify({"status": "ok"})

    def _create_test_translations(self, user_id: str) -> _ViewResult:
        created_ids = []
        for round_no in range(10):
            for phrase, expected in BASE_WORDS:
                item = Translation(phrase=f"{phrase}_{round_no}", expected_translation=f"{expected}_{round_no}")
                try:
                    created_ids.append(self._services.translation.create(user_id, item))
                except Exception:
                    return _error(500, "Error creating test translation")
        return jsonify({"status": "ok", "count": len(created_ids), "ids": created_ids})

    def _create_batch(self, user_id: str, batch_no: int) -> tuple[int, int]:
        created = failed = 0
        for row in range(BULK_BATCH_SIZE // len(BASE_WORDS)):
            for column, (phrase, expected) in enumerate(BASE_WORDS):
                index = batch_no * BULK_BATCH_SIZE + row * len(BASE_WORDS) + column
                item = Translation(phrase=f"{phrase}_{index}", expected_translation=f"{expected}_{index}")
                try:
                    self._services.translation.create(user_id, item)
                except Exception:
                    failed += 1
                else:
                    created += 1
        return created, failed

    def _create_test_translations_100k(self, user_id: str) -> _ViewResult:
        batch_count = BULK_TOTAL // BULK_BATCH_SIZE
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda b: self._create_batch(user_id, b), range(batch_count)))
        created = sum(ok for ok, _ in results)
        failed = sum(bad for _, bad in results)
        return jsonify({"status": "ok", "count": created, "errors": failed})

    def _delete_batch(self, user_id: str, batch: list[Translation]) -> int:
        for item in batch:
            try:
                self._services.translation.delete(user_id, item.id)
            except Exception:
                pass
        return len(batch)

    def _delete_all_translations(self, user_id: str) -> _ViewResult:
        try:
            translations, _ = self._services.translation.get_all(user_id, 0)
        except Exception:
            return _error(500, "Ошибка получения переводов")
        batches = [
            translations[start : start + DELETE_BATCH_SIZE]
            for start in range(0, len(translations), DELETE_BATCH_SIZE)
        ]
        with ThreadPoolExecutor(max_workers=16) as pool:
            deleted = sum(pool.map(lambda batch: self._delete_batch(user_id, batch), batches))
        return jsonify({"status": "ok", "deleted": deleted})