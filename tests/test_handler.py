import threading
from dataclasses import replace

import pytest
from bson import ObjectId

from phrasedrill.handler import Handler
from phrasedrill.models import Translation, User
from phrasedrill.repository import NotFoundError
from phrasedrill.service import Service, generate_password_hash


class FakeAuthRepo:
    def __init__(self):
        self.users = []

    def create_user(self, user):
        stored = replace(user, id=str(ObjectId()))
        self.users.append(stored)
        return stored.id

    def get_user(self, username, password):
        for user in self.users:
            if user.username == username and user.password == password:
                return user
        raise NotFoundError("user not found")


class FakeTranslationRepo:
    def __init__(self):
        self.docs = {}
        self.lock = threading.Lock()

    def create(self, user_id, translation):
        new_id = str(ObjectId())
        with self.lock:
            self.docs[new_id] = (user_id, replace(translation, id=new_id, done=False))
        return new_id

    def get_all(self, user_id):
        with self.lock:
            return [t for owner, t in self.docs.values() if owner == user_id]

    def get_by_id(self, user_id, translation_id):
        with self.lock:
            entry = self.docs.get(translation_id)
        if entry is None or entry[0] != user_id:
            raise NotFoundError("translation not found")
        return entry[1]

    def delete(self, user_id, translation_id):
        with self.lock:
            entry = self.docs.get(translation_id)
            if entry is not None and entry[0] == user_id:
                del self.docs[translation_id]

    def update(self, user_id, translation_id, update):
        with self.lock:
            entry = self.docs.get(translation_id)
            if entry is not None and entry[0] == user_id:
                self.docs[translation_id] = (user_id, replace(entry[1], done=bool(update.done)))

    def delete_by_phrase(self, user_id, phrase):
        with self.lock:
            for key in [k for k, (o, t) in self.docs.items() if o == user_id and t.phrase == phrase]:
                del self.docs[key]


class FakeRepository:
    def __init__(self):
        self.authorisation = FakeAuthRepo()
        self.translation = FakeTranslationRepo()
        self.cache = None


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def client(repo):
    app = Handler(Service(repo)).init_routes()
    return app.test_client()


def _login(client, username):
    password = "password"
    client.post("/api/auth/sign-up", json={"name": "Name", "username": username, "password": password})
    response = client.post("/api/auth/sign-in", json={"username": username, "password": password})
    return {"Authorization": response.get_json()["token"]}


@pytest.fixture
def auth(client):
    return _login(client, "alice")


def _create(client, auth, phrase="Hello", expected="Привет"):
    response = client.post("/api/translations/", json={"phrase": phrase, "expected_translation": expected}, headers=auth)
    return response.get_json()["id"]


def test_preflight_returns_204_with_cors(client):
    response = client.open("/api/translations/", method="OPTIONS")
    assert response.status_code == 204
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS, GET, PUT, DELETE"


def test_cors_headers_on_normal_response(client, auth):
    response = client.get("/api/translations/", headers=auth)
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_sign_up_stores_hashed_password(client, repo):
    password = "password"
    response = client.post("/api/auth/sign-up", json={"name": "N", "username": "bob", "password": password})
    assert response.status_code == 200
    stored = repo.authorisation.users[0]
    assert response.get_json()["id"] == stored.id
    assert stored.password == generate_password_hash(password)


def test_sign_up_missing_field_is_400(client):
    response = client.post("/api/auth/sign-up", json={"name": "N", "username": "bob"})
    assert response.status_code == 400
    assert "password" in response.get_json()["message"]


def test_sign_up_invalid_json_is_400(client):
    response = client.post("/api/auth/sign-up", data="not json", content_type="application/json")
    assert response.status_code == 400


def test_sign_in_returns_bearer_token(client):
    headers = _login(client, "carol")
    assert headers["Authorization"].startswith("Bearer ")


def test_sign_in_wrong_credentials_is_500(client):
    _login(client, "dave")
    response = client.post("/api/auth/sign-in", json={"username": "dave", "password": "secret"})
    assert response.status_code == 500
    assert response.get_json()["message"] == "user not found"


def test_missing_header_is_401(client):
    response = client.get("/api/translations/")
    assert response.status_code == 401
    assert response.get_json()["message"] == "Пустой заголовок"


def test_malformed_header_is_401(client):
    response = client.get("/api/translations/", headers={"Authorization": "Bearer"})
    assert response.status_code == 401
    assert response.get_json()["message"] == "Некорректный заголовок"


def test_bad_token_is_401(client):
    response = client.get("/api/translations/", headers={"Authorization": "Bearer token"})
    assert response.status_code == 401


def test_create_and_get_by_id(client, auth):
    new_id = _create(client, auth)
    response = client.get(f"/api/translations/{new_id}", headers=auth)
    body = response.get_json()
    assert response.status_code == 200
    assert body["data"] == {"id": new_id, "phrase": "Hello", "expected_translation": "Привет", "done": False}
    assert body["source"] == "db"


def test_create_missing_phrase_is_400(client, auth):
    response = client.post("/api/translations/", json={"expected_translation": "x"}, headers=auth)
    assert response.status_code == 400
    assert response.get_json()["message"] == "Некорректный JSON"


def test_invalid_id_is_400(client, auth):
    for method in ("get", "delete"):
        response = getattr(client, method)("/api/translations/xyz", headers=auth)
        assert response.status_code == 400
        assert response.get_json()["message"] == "Некорректный id параметр"


def test_unknown_id_is_404(client, auth):
    response = client.get(f"/api/translations/{ObjectId()}", headers=auth)
    assert response.status_code == 404
    assert response.get_json()["message"] == "Перевод не найден"


def test_other_user_cannot_see_translation(client, auth):
    new_id = _create(client, auth)
    other = _login(client, "eve")
    assert client.get(f"/api/translations/{new_id}", headers=other).status_code == 404


def test_update_correct_answer(client, auth, repo):
    new_id = _create(client, auth)
    response = client.put(f"/api/translations/{new_id}", json={"translation": "Привет", "done": True}, headers=auth)
    assert response.get_json() == {"status": "ok", "correct": True, "done": True}
    assert repo.translation.docs[new_id][1].done is True


def test_update_wrong_answer(client, auth):
    new_id = _create(client, auth)
    response = client.put(f"/api/translations/{new_id}", json={"translation": "Пока"}, headers=auth)
    body = response.get_json()
    assert response.status_code == 200
    assert body["status"] == "incorrect"
    assert body["correct"] is False
    assert body["message"] == "неверный перевод"
    assert body["expected"] == "Привет"
    assert body["submitted"] == "Пока"


def test_update_missing_answer(client, auth):
    new_id = _create(client, auth)
    response = client.put(f"/api/translations/{new_id}", json={}, headers=auth)
    assert response.get_json()["message"] == "поле translation обязательно"


def test_update_unknown_is_404(client, auth):
    response = client.put(f"/api/translations/{ObjectId()}", json={"translation": "a"}, headers=auth)
    assert response.status_code == 404


def test_delete_then_missing(client, auth):
    new_id = _create(client, auth)
    response = client.delete(f"/api/translations/{new_id}", headers=auth)
    assert response.get_json() == {"status": "ok"}
    assert client.get(f"/api/translations/{new_id}", headers=auth).status_code == 404


def test_post100_creates_all_suffixes(client, auth, repo):
    response = client.post("/api/translations/post100", headers=auth)
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["count"] == 100
    assert len(set(body["ids"])) == 100
    phrases = {t.phrase for _, t in repo.translation.docs.values()}
    assert "hello_0" in phrases
    assert "earth_9" in phrases


def test_get_all_with_limit(client, auth):
    client.post("/api/translations/post100", headers=auth)
    everything = client.get("/api/translations/", headers=auth).get_json()
    assert everything["total"] == 100
    assert len(everything["data"]) == 100
    limited = client.get("/api/translations/?limit=3", headers=auth).get_json()
    assert limited["total"] == 3
    ignored = client.get("/api/translations/?limit=abc", headers=auth).get_json()
    assert ignored["total"] == 100


def test_delete_all(client, auth):
    client.post("/api/translations/post100", headers=auth)
    response = client.delete("/api/translations/delete_all", headers=auth)
    assert response.get_json() == {"status": "ok", "deleted": 100}
    assert client.get("/api/translations/", headers=auth).get_json()["total"] == 0


def test_post100k(client, auth, repo):
    response = client.post("/api/translations/post100k", headers=auth)
    assert response.get_json() == {"status": "ok", "count": 100000, "errors": 0}
    phrases = {t.phrase for _, t in repo.translation.docs.values()}
    assert len(phrases) == 100000
    assert "earth_99999" in phrases


def test_get_all_returns_translation_dicts(client, auth):
    new_id = _create(client, auth, "sun", "солнце")
    data = client.get("/api/translations/", headers=auth).get_json()["data"]
    assert data == [Translation(id=new_id, phrase="sun", expected_translation="солнце").to_dict()]
    assert User().id == "0" * 24