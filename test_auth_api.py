PASSWORD = "SecurePass123!"


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_register_login_and_me(client, make_user):
    alice = make_user("alice")

    r = client.get("/api/auth/me", headers=alice["headers"])
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["user"]["username"] == "alice"
    assert body["user"]["email"] == "alice@spacezone.io"
    assert body["user"]["avatar"] == "/uploads/avatar/default.png"
    assert "timestamp" in body


def test_register_duplicate_email_is_conflict(client, alice):
    r = client.post(
        "/api/auth/register",
        json={"name": "Other", "username": "other", "email": alice["email"], "password": PASSWORD},
    )
    assert r.status_code == 409
    assert r.json()["success"] is False
    assert r.json()["code"] == "EMAIL_TAKEN"


def test_register_invalid_username_is_400(client):
    r = client.post(
        "/api/auth/register",
        json={"name": "Bad", "username": "no spaces!", "email": "bad@spacezone.io", "password": PASSWORD},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


def test_login_wrong_password(client, alice):
    r = client.post("/api/auth/login", json={"email": alice["email"], "password": "wrong-password"})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_CREDENTIALS"


def test_login_is_throttled_after_repeated_failures(client, alice):
    for _ in range(5):
        r = client.post("/api/auth/login", json={"email": alice["email"], "password": "wrong-password"})
        assert r.status_code == 401

    r = client.post("/api/auth/login", json={"email": alice["email"], "password": PASSWORD})
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMITED"


def test_me_requires_token(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["code"] == "NO_TOKEN"


def test_me_rejects_garbage_token(client):
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["code"] == "INVALID_TOKEN"


def test_profile_lookup(client, alice, bob):
    r = client.get("/api/users/bob", headers=alice["headers"])
    assert r.status_code == 200
    assert r.json()["user"] == {"id": bob["id"], "name": "Bob", "username": "bob", "avatar": "/uploads/avatar/default.png"}

    r = client.get("/api/users/nobody", headers=alice["headers"])
    assert r.status_code == 404
