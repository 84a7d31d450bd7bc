from __future__ import annotations

from models import User

PASSWORD = "pass123"


def test_register_creates_student(client):
    r = client.post("/api/v1/auth/register", json={
        "name": " Carol ", "email": "Carol@Example.com", "password": "secret1", "role": "admin",
    })
    assert r.status_code == 201
    user = r.get_json()["user"]
    assert user == {"id": user["id"], "name": "Carol", "email": "carol@example.com", "role": "student"}

    # сразу залогинен
    assert client.get("/api/v1/auth/me").get_json()["user"]["email"] == "carol@example.com"


def test_register_duplicate_email(client, users):
    r = client.post("/api/v1/auth/register", json={
        "name": "Dup", "email": "alice@example.com", "password": "secret1",
    })
    assert r.status_code == 409
    assert r.get_json()["error"] == "email_taken"


def test_register_validation(client):
    r = client.post("/api/v1/auth/register", json={"name": "x", "email": "nope", "password": "123"})
    assert r.status_code == 422
    assert r.get_json()["error"] == "validation_error"


def test_login_and_logout(client, users):
    r = client.post("/api/v1/auth/login", json={"email": "T1@example.com ", "password": PASSWORD})
    assert r.status_code == 200
    assert r.get_json()["user"]["role"] == "teacher"
    assert User.query.filter_by(email="t1@example.com").one().last_login is not None

    assert client.post("/api/v1/auth/logout").status_code == 200
    r = client.get("/api/v1/auth/me")
    assert r.status_code == 401


def test_login_failures(client, users):
    r = client.post("/api/v1/auth/login", json={"email": "t1@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.get_json()["error"] == "invalid_credentials"
    r = client.post("/api/v1/auth/login", json={"email": "", "password": ""})
    assert r.status_code == 400
    assert r.get_json()["error"] == "missing_credentials"


def test_role_gate(client, login):
    login("student")
    r = client.get("/api/v1/tasks/students")
    assert r.status_code == 403
    assert r.get_json()["error"] == "forbidden"

    login("admin")
    r = client.get("/api/v1/tasks/students")
    assert r.status_code == 200
    assert [s["name"] for s in r.get_json()["students"]] == ["Alice", "Bob"]


def test_csrf_token_endpoint(client):
    r = client.get("/api/v1/csrf")
    assert r.status_code == 200
    assert r.get_json()["csrf"]
