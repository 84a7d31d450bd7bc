from __future__ import annotations
import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from domain.policy import Actor
from domain.store import SqlStore

PASSWORD = "pass123"

USERS = {
    "admin": ("Admin", "admin@example.com", "admin"),
    "teacher": ("Teacher One", "t1@example.com", "teacher"),
    "teacher2": ("Teacher Two", "t2@example.com", "teacher"),
    "student": ("Alice", "alice@example.com", "student"),
    "student2": ("Bob", "bob@example.com", "student"),
}


@pytest.fixture()
def app_ctx():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app_ctx):
    return app_ctx.test_client()


@pytest.fixture()
def store(app_ctx):
    return SqlStore(db.session)


@pytest.fixture()
def users(store):
    out = {}
    for key, (name, email, role) in USERS.items():
        out[key] = store.insert_user(
            name=name, email=email, role=role, password_hash=generate_password_hash(PASSWORD),
        )
    return out


@pytest.fixture()
def actors(users):
    return {key: Actor.from_user(u) for key, u in users.items()}


@pytest.fixture()
def login(client, users):
    def _login(key: str):
        r = client.post("/api/v1/auth/login", json={"email": users[key].email, "password": PASSWORD})
        assert r.status_code == 200, r.get_json()
        return r.get_json()["user"]
    return _login
