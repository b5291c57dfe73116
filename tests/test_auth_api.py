from __future__ import annotations

from metropass.src.constants import MAX_USER_TOKENS
from metropass.src.db import UserToken, sessionMaker

REGISTRATION = {
    "fullName": "New Rider",
    "email": "New.Rider@Mail.com",
    "phoneNumber": "+880 1711-000000",
    "password": "secret123",
}


def test_register_signs_the_user_in(client, audit_events):
    r = client.post("/api/auth/register", json=REGISTRATION)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"

    user = body["data"]["user"]
    assert user["email"] == "new.rider@mail.com"
    assert user["balance"] == 0
    assert user["totalTrips"] == 0
    assert user["role"] == "user"
    assert user["lastLogin"] is not None
    assert "password" not in user

    token = body["data"]["token"]
    assert len(token["accessToken"]) == 64
    assert token["tokenType"] == "bearer"

    me = client.get(
        "/api/auth/me", headers={"Authorization": f"Bearer {token['accessToken']}"}
    )
    assert me.status_code == 200
    assert me.json()["data"]["user"]["id"] == user["id"]

    assert all("password" not in event for event in audit_events)


def test_register_rejects_duplicate_email_or_phone(client):
    assert client.post("/api/auth/register", json=REGISTRATION).status_code == 201

    again = {**REGISTRATION, "phoneNumber": "+8801711999999"}
    r = client.post("/api/auth/register", json=again)
    assert r.status_code == 400
    assert r.json()["message"] == "User with this email or phone number already exists"

    samePhone = {**REGISTRATION, "email": "someone@mail.com"}
    assert client.post("/api/auth/register", json=samePhone).status_code == 400


def test_register_validates_input(client):
    for field, value in [
        ("fullName", "X"),
        ("email", "not-an-email"),
        ("phoneNumber", "call me"),
        ("password", "123"),
    ]:
        r = client.post("/api/auth/register", json={**REGISTRATION, field: value})
        assert r.status_code == 400, field
        assert r.json()["success"] is False
        assert r.headers["X-Error"] == "InvalidInput"


def test_login_with_wrong_credentials(client, seed):
    seed.user()

    r = client.post(
        "/api/auth/login", json={"email": "rider@mail.com", "password": "wrong-pass"}
    )
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid credentials"

    r = client.post(
        "/api/auth/login", json={"email": "nobody@mail.com", "password": "secret123"}
    )
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid credentials"


def test_login_refused_for_deactivated_account(client, seed):
    seed.user(is_active=False)

    r = client.post(
        "/api/auth/login", json={"email": "rider@mail.com", "password": "secret123"}
    )
    assert r.status_code == 401
    assert r.json()["message"] == "Account is deactivated"


def test_login_is_case_insensitive_on_email(client, seed):
    seed.user()
    r = client.post(
        "/api/auth/login", json={"email": "Rider@Mail.com", "password": "secret123"}
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Login successful"


def test_login_rotates_out_oldest_tokens(client, seed, login):
    user_id = seed.user()
    for _ in range(MAX_USER_TOKENS + 2):
        login()

    with sessionMaker() as s:
        count = s.query(UserToken).filter(UserToken.user_id == user_id).count()
    assert count == MAX_USER_TOKENS


def test_me_requires_a_valid_token(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid token"
    assert r.headers["X-Error"] == "InvalidToken"

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer " + "0" * 64})
    assert r.status_code == 401


def test_refresh_rotates_the_access_token(client, seed, login):
    seed.user()
    headers = login()

    r = client.patch("/api/auth/token", headers=headers)
    assert r.status_code == 200
    fresh = {"Authorization": f"Bearer {r.json()['data']['token']['accessToken']}"}

    assert client.get("/api/auth/me", headers=headers).status_code == 401
    assert client.get("/api/auth/me", headers=fresh).status_code == 200


def test_logout_revokes_only_the_current_token(client, seed, login):
    seed.user()
    first = login()
    second = login()

    r = client.delete("/api/auth/token", headers=first)
    assert r.status_code == 200
    assert r.json()["message"] == "Logged out successfully"

    assert client.get("/api/auth/me", headers=first).status_code == 401
    assert client.get("/api/auth/me", headers=second).status_code == 200
