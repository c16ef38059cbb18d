from __future__ import annotations

import time

import jwt

from conftest import DEFAULT_PASSWORD


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_health(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_request_id_is_echoed_or_minted(client) -> None:
    assert client.get("/health", headers={"X-Request-ID": "abc123"}).headers["X-Request-ID"] == "abc123"
    assert len(client.get("/health").headers["X-Request-ID"]) == 32


def test_login_returns_token_pair_with_epoch_ms_expiry(client, make_user) -> None:
    user = make_user(email="alice@example.com")
    before_ms = int(time.time() * 1000)

    r = _login(client, "alice@example.com")
    assert r.status_code == 200
    data = r.json()
    assert set(data) == {"access_token", "expiresAt", "refresh_token", "refreshExpiresAt"}

    # ~15 minutes / ~7 days from now, allowing for clock granularity
    assert abs(data["expiresAt"] - (before_ms + 15 * 60 * 1000)) < 5000
    assert abs(data["refreshExpiresAt"] - (before_ms + 7 * 24 * 3600 * 1000)) < 5000

    claims = jwt.decode(data["access_token"], options={"verify_signature": False})
    assert claims["sub"] == user.id
    assert claims["email"] == "alice@example.com"
    assert claims["type"] == "access"
    assert data["expiresAt"] == claims["exp"] * 1000


def test_wrong_password_and_unknown_email_give_the_same_envelope(client, make_user) -> None:
    make_user(email="alice@example.com")

    wrong = _login(client, "alice@example.com", "not-the-password")
    unknown = _login(client, "nobody@example.com")

    for r in (wrong, unknown):
        assert r.status_code == 200
        assert r.json() == {"status": "error", "message": "Invalid credentials"}


def test_refresh_returns_a_new_pair(client, make_user) -> None:
    make_user(email="alice@example.com")
    first = _login(client, "alice@example.com").json()

    r = client.post("/auth/refresh", json={"refresh_token": first["refresh_token"]})
    assert r.status_code == 200
    second = r.json()
    assert second["access_token"] != first["access_token"]
    assert second["refresh_token"] != first["refresh_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {second['access_token']}"})
    assert me.status_code == 200


def test_refresh_with_bad_token_gives_envelope(client, make_user) -> None:
    make_user(email="alice@example.com")
    access = _login(client, "alice@example.com").json()["access_token"]

    for token in ("garbage", access):
        r = client.post("/auth/refresh", json={"refresh_token": token})
        assert r.status_code == 200
        assert r.json() == {"status": "error", "message": "Invalid refresh token"}


def test_me_returns_public_profile(client, make_user, login) -> None:
    make_user(email="alice@example.com", first_name="Alice", last_name="Liddell")
    r = client.get("/auth/me", headers=login("alice@example.com"))
    assert r.status_code == 200
    body = r.json()
    assert body["email"] == "alice@example.com"
    assert body["firstName"] == "Alice"
    assert body["lastName"] == "Liddell"
    assert body["isPasswordTemporary"] is False
    assert "password" not in body


def test_me_requires_an_access_token(client, make_user) -> None:
    make_user(email="alice@example.com")
    tokens = _login(client, "alice@example.com").json()

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401
    # a refresh token is not an access token
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert r.status_code == 401


def test_token_of_deleted_user_is_rejected(client, make_user, login, db) -> None:
    user = make_user(email="alice@example.com")
    headers = login("alice@example.com")
    db.delete(user)
    db.commit()
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_change_password_clears_temporary_flag(client, make_user, login) -> None:
    make_user(email="alice@example.com", temporary=True)
    headers = login("alice@example.com")

    r = client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "BrandNew1"},
        headers=headers,
    )
    assert r.status_code == 200
    assert client.get("/auth/me", headers=headers).json()["isPasswordTemporary"] is False

    assert _login(client, "alice@example.com").json()["status"] == "error"
    assert "access_token" in _login(client, "alice@example.com", "BrandNew1").json()


def test_change_password_checks_old_password_and_policy(client, make_user, login) -> None:
    make_user(email="alice@example.com")
    headers = login("alice@example.com")

    r = client.put(
        "/auth/change-password",
        json={"old_password": "wrong", "new_password": "BrandNew1"},
        headers=headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Old password is incorrect"

    r = client.put(
        "/auth/change-password",
        json={"old_password": DEFAULT_PASSWORD, "new_password": "short"},
        headers=headers,
    )
    assert r.status_code == 400
    assert "at least 8" in r.json()["detail"]
