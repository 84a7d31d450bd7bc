from __future__ import annotations
import json
import logging

from sqlalchemy.exc import OperationalError

from app import create_app
from blueprints.core.routes import JSONFormatter
from domain.store import SqlStore


def test_health_ok():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health")
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["status"] == "ok"
        assert data["ts"].endswith("Z")


def test_unknown_route_is_json_404(client):
    r = client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.get_json() == {"error": "not_found"}


def test_method_not_allowed_is_json(client):
    r = client.patch("/health")
    assert r.status_code == 405
    assert r.get_json()["error"] == "method_not_allowed"


def test_domain_error_mapping(client, login):
    login("teacher")
    r = client.get("/api/v1/tasks/4242")
    assert r.status_code == 404
    assert r.get_json() == {"error": "not_found", "message": "task not found"}

    r = client.put("/api/v1/classes/4242", json={"name": "x"})
    assert r.status_code == 404
    assert r.get_json()["message"] == "class not found"


def test_store_error_is_opaque(client, login, monkeypatch):
    login("teacher")

    def boom(self, *a, **kw):
        with self._guard("list_tasks"):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    monkeypatch.setattr(SqlStore, "list_tasks", boom)
    r = client.get("/api/v1/tasks")
    assert r.status_code == 500
    body = r.get_json()
    assert body == {"error": "internal_error"}
    assert "disk" not in r.get_data(as_text=True)


def test_json_formatter_fields():
    rec = logging.LogRecord("app.requests", logging.INFO, __file__, 1, "request handled", None, None)
    rec.path, rec.status = "/health", 200
    payload = json.loads(JSONFormatter().format(rec))
    assert payload["logger"] == "app.requests"
    assert payload["msg"] == "request handled"
    assert payload["path"] == "/health" and payload["status"] == 200
    assert "duration_ms" not in payload


def test_request_log_carries_user_id(client, login, users, caplog):
    with caplog.at_level(logging.INFO, logger="app.requests"):
        client.get("/health")
        login("teacher")
        client.get("/api/v1/tasks")

    by_path = {r.path: r for r in caplog.records if r.name == "app.requests"}
    assert not hasattr(by_path["/health"], "user_id")
    assert by_path["/api/v1/tasks"].user_id == users["teacher"].id
    assert json.loads(JSONFormatter().format(by_path["/api/v1/tasks"]))["user_id"] == users["teacher"].id
