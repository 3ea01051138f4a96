"""
End-to-end tests for the REST surface
"""
import logging

import pytest


def _register(client, username="alice", password="secret123"):
    response = client.post(
        "/api/auth/register", json={"username": username, "password": password}
    )
    assert response.status_code == 201
    return response.json()


def _login(client, username="alice", password="secret123"):
    response = client.post(
        "/api/auth/token", data={"username": username, "password": password}
    )
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.mark.e2e
def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"

    health = client.get("/health").json()
    assert health == {"status": "healthy", "storage": "memory"}


@pytest.mark.e2e
def test_chats_require_authentication(client):
    response = client.get("/api/chats")

    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required"


@pytest.mark.e2e
def test_register_creates_welcome_chat(client):
    user = _register(client)
    assert user["username"] == "alice"

    # register sets the access token cookie
    chats = client.get("/api/chats").json()

    assert len(chats) == 1
    assert chats[0]["title"] == "Welcome"
    assert chats[0]["icon"] == "robot"
    assert chats[0]["lastMessage"] == ""
    assert chats[0]["active"] is True
    assert chats[0]["userId"] == user["id"]


@pytest.mark.e2e
def test_duplicate_username(client):
    _register(client)

    response = client.post(
        "/api/auth/register", json={"username": "alice", "password": "another123"}
    )
    assert response.status_code == 400


@pytest.mark.e2e
def test_register_validates_input(client):
    response = client.post("/api/auth/register", json={"username": "al", "password": "x"})
    assert response.status_code == 422


@pytest.mark.e2e
def test_login_with_bearer_token(client):
    _register(client)
    client.post("/api/auth/logout")

    token = _login(client)
    me = client.get("/api/auth/users/me", headers={"Authorization": f"Bearer {token}"})

    assert me.status_code == 200
    assert me.json()["username"] == "alice"


@pytest.mark.e2e
def test_login_with_wrong_password(client):
    _register(client)

    response = client.post(
        "/api/auth/token", data={"username": "alice", "password": "wrong-password"}
    )
    assert response.status_code == 400


@pytest.mark.e2e
def test_logout_drops_cookie(client):
    _register(client)
    assert client.get("/api/chats").status_code == 200

    assert client.post("/api/auth/logout").status_code == 204
    assert client.get("/api/chats").status_code == 401


@pytest.mark.e2e
def test_messages_of_own_chat(client):
    _register(client)
    chat_id = client.get("/api/chats").json()[0]["id"]

    response = client.get(f"/api/chats/{chat_id}/messages")

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.e2e
def test_messages_of_foreign_chat(client):
    _register(client, "alice")
    alice_chat = client.get("/api/chats").json()[0]["id"]
    _register(client, "bob")

    response = client.get(f"/api/chats/{alice_chat}/messages")

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"


@pytest.mark.e2e
def test_messages_of_missing_chat(client):
    _register(client)

    assert client.get("/api/chats/9999/messages").status_code == 403


@pytest.mark.e2e
def test_messages_of_out_of_range_chat(client):
    _register(client)

    response = client.get(f"/api/chats/{2**70}/messages")

    assert response.status_code == 403
    assert response.json()["detail"] == "Access denied"


@pytest.mark.e2e
def test_api_requests_are_logged(client, caplog):
    with caplog.at_level(logging.INFO, logger="supportchat.main"):
        client.get("/api/chats")
        client.get("/health")

    lines = [r.getMessage() for r in caplog.records if r.name == "supportchat.main"]
    assert any(line.startswith("GET /api/chats 401 in ") for line in lines)
    assert not any("/health" in line for line in lines)
