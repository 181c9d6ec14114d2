import uuid

import pytest
from fastapi.testclient import TestClient

from spacezone.core.config import Settings
from spacezone.crud.users import create_user
from spacezone.db.init_db import init_db
from spacezone.db.session import build_session_factory
from spacezone.main import create_app
from spacezone.security.rate_limit import LoginThrottle
from spacezone.services import friendships

PASSWORD = "SecurePass123!"


@pytest.fixture(autouse=True)
def fresh_login_throttle(monkeypatch):
    monkeypatch.setattr("spacezone.api.routes.auth.login_throttle", LoginThrottle())


@pytest.fixture
def test_settings():
    return Settings(PRESENCE_OFFLINE_DELAY_SECONDS=0.3, MESSAGE_RATE_LIMIT=1000)


@pytest.fixture
def session_factory(tmp_path):
    factory = build_session_factory(f"sqlite:///{tmp_path / 'spacezone-test.sqlite'}")
    init_db(factory)
    yield factory
    factory.kw["bind"].dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(session_factory, test_settings):
    return create_app(session_factory=session_factory, settings=test_settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(client):
    """Register and log in a user through the API; returns id, token and auth headers."""
    def _make(username: str) -> dict:
        email = f"{username}@spacezone.io"
        r = client.post(
            "/api/auth/register",
            json={"name": username.title(), "username": username, "email": email, "password": PASSWORD},
        )
        assert r.status_code == 201, r.text
        r = client.post("/api/auth/login", json={"email": email, "password": PASSWORD})
        assert r.status_code == 200, r.text
        token = r.json()["token"]
        return {
            "id": r.json()["user"]["id"],
            "username": username,
            "email": email,
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _make


@pytest.fixture
def befriend(client):
    def _befriend(a: dict, b: dict) -> int:
        r = client.post("/api/friends/requests", json={"receiverId": b["id"]}, headers=a["headers"])
        assert r.status_code == 201, r.text
        request_id = r.json()["friendship"]["id"]
        r = client.post(f"/api/friends/requests/{request_id}/accept", headers=b["headers"])
        assert r.status_code == 200, r.text
        return request_id

    return _befriend


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def conversation(client, alice, bob, befriend):
    """An accepted alice/bob friendship and their private conversation id."""
    befriend(alice, bob)
    r = client.post("/api/chat/conversations", json={"recipientId": bob["id"]}, headers=alice["headers"])
    assert r.status_code == 201, r.text
    return r.json()["conversation"]["id"]


@pytest.fixture
def db_users(db):
    """Two users created directly through the store, already friends."""
    a = create_user(db, "Dana", "dana", "dana@spacezone.io", PASSWORD)
    b = create_user(db, "Eve", "eve", "eve@spacezone.io", PASSWORD)
    request = friendships.send_request(db, a.id, b.id)
    friendships.accept_request(db, request.id, b.id)
    return a, b


class FakeConnection:
    """Stands in for a realtime Connection; records every frame sent to it."""

    def __init__(self, user_id, username="user"):
        self.handle = uuid.uuid4().hex
        self.user_id = user_id
        self.profile = {"id": user_id, "name": username.title(), "username": username, "avatar": ""}
        self.rooms = set()
        self.frames = []

    async def send(self, frame):
        self.frames.append(frame)
        return True

    def events(self):
        return [f["event"] for f in self.frames]


@pytest.fixture
def make_connection():
    return FakeConnection
