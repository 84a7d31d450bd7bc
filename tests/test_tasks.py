from __future__ import annotations
from datetime import date

import pytest

from domain.errors import ForbiddenError, NotFoundError, ValidationError
from models import Notification
from blueprints.classes.services import ClassService
from blueprints.tasks.services import TaskService


@pytest.fixture()
def svc(store):
    return TaskService(store)


@pytest.fixture()
def cls(store, actors):
    return ClassService(store).create_class(actors["teacher"], "Algebra")


@pytest.fixture()
def task(svc, actors, users, cls):
    return svc.create_task(actors["teacher"], {
        "title": "Exercises 1-10",
        "class_id": cls.id,
        "assignee_id": users["student"].id,
        "due_date": "2030-01-15",
        "priority": "high",
    })


def _notes(store, user, type_=None):
    q = Notification.query.filter_by(user_id=user.id)
    if type_:
        q = q.filter_by(type=type_)
    return q.all()


def test_create_forces_server_fields(svc, actors, users):
    t = svc.create_task(actors["teacher"], {"title": " Read ", "status": "completed", "created_by": 999})
    assert t.title == "Read"
    assert t.status == "todo"
    assert t.created_by == users["teacher"].id
    assert t.priority == "medium"


def test_create_parses_fields(task):
    assert task.due_date == date(2030, 1, 15)
    assert task.priority == "high"


def test_create_validation(svc, actors, cls):
    with pytest.raises(ValidationError, match="title"):
        svc.create_task(actors["teacher"], {"title": "  "})
    with pytest.raises(ValidationError, match="assignee not found"):
        svc.create_task(actors["teacher"], {"title": "x", "assignee_id": 9999})
    with pytest.raises(ValidationError, match="invalid class"):
        svc.create_task(actors["teacher"], {"title": "x", "class_id": 9999})
    with pytest.raises(ValidationError, match="priority"):
        svc.create_task(actors["teacher"], {"title": "x", "priority": "urgent"})
    with pytest.raises(ForbiddenError):
        svc.create_task(actors["student"], {"title": "x"})


def test_assignee_role_is_not_checked(svc, actors, users):
    # исполнителем может быть любой существующий пользователь
    t = svc.create_task(actors["teacher"], {"title": "x", "assignee_id": users["teacher2"].id})
    assert t.assignee_id == users["teacher2"].id


def test_foreign_class_is_validation_error(svc, store, actors, users, cls):
    ClassService(store).join_class(actors["student"], cls.invite_code)
    with pytest.raises(ValidationError, match="you don't own this class"):
        svc.create_task(actors["teacher2"], {
            "title": "x", "class_id": cls.id, "assignee_id": users["student"].id,
        })
    # админ может привязать к любому классу
    t = svc.create_task(actors["admin"], {"title": "y", "class_id": cls.id})
    assert t.class_id == cls.id


def test_assignment_notifies_once(task, store, users):
    notes = _notes(store, users["student"], "task_assigned")
    assert len(notes) == 1
    assert notes[0].task_id == task.id
    assert "Exercises 1-10" in notes[0].message


def test_no_assignee_no_notification(svc, actors, store):
    svc.create_task(actors["teacher"], {"title": "solo"})
    assert Notification.query.count() == 0


def test_student_can_only_change_status(svc, actors, task, store, users):
    with pytest.raises(ValidationError):
        svc.update_task(actors["student"], task.id, {"title": "x"})
    with pytest.raises(ValidationError):
        svc.update_task(actors["student"], task.id, {"status": "completed", "title": "x"})
    with pytest.raises(ValidationError, match="status is required"):
        svc.update_task(actors["student"], task.id, {})

    updated = svc.update_task(actors["student"], task.id, {"status": "completed"})
    assert updated.status == "completed"
    assert updated.title == "Exercises 1-10"

    done = _notes(store, users["teacher"], "task_completed")
    assert len(done) == 1
    assert done[0].task_id == task.id
    assert done[0].message.startswith("Alice completed")


def test_completion_notifies_only_on_transition(svc, actors, task, store, users):
    svc.update_task(actors["student"], task.id, {"status": "completed"})
    svc.update_task(actors["student"], task.id, {"status": "completed"})
    assert len(_notes(store, users["teacher"], "task_completed")) == 1


def test_status_moves_any_to_any(svc, actors, task):
    for status in ("completed", "todo", "in-progress", "todo"):
        assert svc.update_task(actors["student"], task.id, {"status": status}).status == status


def test_student_cannot_touch_foreign_task(svc, actors, task):
    with pytest.raises(NotFoundError):
        svc.get_task(actors["student2"], task.id)
    with pytest.raises(ForbiddenError):
        svc.update_task(actors["student2"], task.id, {"status": "completed"})


def test_teacher_cannot_update_foreign_task(svc, actors, task):
    for payload in ({}, {"title": "x"}, {"status": "completed"}):
        with pytest.raises(ForbiddenError):
            svc.update_task(actors["teacher2"], task.id, payload)


def test_teacher_sparse_update(svc, actors, task, store, users):
    updated = svc.update_task(actors["teacher"], task.id, {"priority": "low", "assignee_id": None})
    assert updated.priority == "low"
    assert updated.assignee_id is None
    assert updated.title == "Exercises 1-10"
    # правки учителя не порождают уведомлений
    assert _notes(store, users["student"], "task_completed") == []
    svc.update_task(actors["teacher"], task.id, {"status": "completed"})
    assert _notes(store, users["teacher"], "task_completed") == []

    with pytest.raises(ValidationError, match="no fields to update"):
        svc.update_task(actors["teacher"], task.id, {})
    with pytest.raises(ValidationError):
        svc.update_task(actors["teacher"], task.id, {"assignee_id": 9999})
    with pytest.raises(NotFoundError):
        svc.update_task(actors["teacher"], 9999, {"title": "x"})


def test_admin_updates_anything(svc, actors, task):
    assert svc.update_task(actors["admin"], task.id, {"title": "Renamed"}).title == "Renamed"


def test_delete_task(svc, actors, task, store):
    with pytest.raises(ForbiddenError):
        svc.delete_task(actors["teacher2"], task.id)
    with pytest.raises(ForbiddenError):
        svc.delete_task(actors["student"], task.id)
    svc.delete_task(actors["teacher"], task.id)
    assert store.get_task(task.id) is None
    # уведомления задачи удаляются вместе с ней
    assert Notification.query.filter_by(task_id=task.id).count() == 0


def test_list_scopes_and_filters(svc, actors, users, task):
    svc.create_task(actors["teacher"], {"title": "Essay", "assignee_id": users["student2"].id, "priority": "low"})
    svc.create_task(actors["teacher2"], {"title": "Other", "assignee_id": users["student"].id})

    assert svc.get_tasks(actors["teacher"]).total == 2
    assert svc.get_tasks(actors["admin"]).total == 3
    assert {t.title for t in svc.get_tasks(actors["student"]).items} == {"Exercises 1-10", "Other"}

    assert [t.title for t in svc.get_tasks(actors["teacher"], priority="low").items] == ["Essay"]
    assert svc.get_tasks(actors["teacher"], status="all").total == 2
    assert [t.title for t in svc.get_tasks(actors["teacher"], search="exer").items] == ["Exercises 1-10"]
    assert svc.get_tasks(actors["teacher"], class_id=task.class_id).total == 1
    with pytest.raises(ValidationError):
        svc.get_tasks(actors["teacher"], status="done")


def test_pagination(svc, actors):
    for i in range(5):
        svc.create_task(actors["teacher"], {"title": f"T{i}"})
    page = svc.get_tasks(actors["teacher"], page=2, limit=2)
    assert page.total == 5
    assert page.total_pages == 3
    assert len(page.items) == 2


def test_stats(svc, actors, users, task):
    svc.create_task(actors["teacher"], {"title": "B", "assignee_id": users["student2"].id})
    svc.create_task(actors["teacher"], {"title": "C", "assignee_id": users["student"].id})
    svc.update_task(actors["student"], task.id, {"status": "in-progress"})

    stats = svc.get_task_stats(actors["teacher"])
    assert (stats.total_tasks, stats.todo, stats.in_progress, stats.completed) == (3, 2, 1, 0)
    assert stats.total_active == 3
    assert stats.pending_review == 1
    assert stats.total_students == 2
    with pytest.raises(ForbiddenError):
        svc.get_task_stats(actors["student"])


def test_students_listing(svc, actors):
    assert [u.name for u in svc.get_students(actors["teacher"])] == ["Alice", "Bob"]
    with pytest.raises(ForbiddenError):
        svc.get_students(actors["student"])


def test_deleting_assignee_keeps_task(svc, store, task, users):
    store.delete_user(users["student"].id)
    assert store.get_task(task.id).assignee_id is None


def test_deleting_creator_removes_tasks(svc, store, actors, users):
    t = svc.create_task(actors["teacher"], {"title": "x", "assignee_id": users["student"].id})
    store.delete_user(users["teacher"].id)
    assert store.get_task(t.id) is None
    assert Notification.query.filter_by(task_id=t.id).count() == 0


# ---------- HTTP ----------
def test_http_task_flow(client, login, users):
    login("teacher")
    r = client.post("/api/v1/tasks", json={
        "title": "Lab 1", "assignee_id": users["student"].id, "due_date": "2030-02-01",
    })
    assert r.status_code == 201
    body = r.get_json()["task"]
    assert body["status"] == "todo"
    assert body["assignee"]["name"] == "Alice"
    task_id = body["id"]

    r = client.post("/api/v1/tasks", json={"title": "x", "priority": "urgent"})
    assert r.status_code == 422
    assert r.get_json()["error"] == "validation_error"

    r = client.get("/api/v1/tasks/stats")
    assert r.get_json()["stats"]["total_tasks"] == 1

    login("student")
    r = client.put(f"/api/v1/tasks/{task_id}", json={"title": "mine now"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "validation_error"

    r = client.put(f"/api/v1/tasks/{task_id}", json={"status": "completed"})
    assert r.status_code == 200
    assert r.get_json()["task"]["status"] == "completed"

    r = client.get("/api/v1/tasks")
    js = r.get_json()
    assert [t["id"] for t in js["tasks"]] == [task_id]
    assert js["pagination"] == {"page": 1, "limit": 10, "total": 1, "total_pages": 1}

    assert client.get("/api/v1/tasks/stats").status_code == 403
    assert client.delete(f"/api/v1/tasks/{task_id}").status_code == 403

    login("teacher2")
    assert client.get(f"/api/v1/tasks/{task_id}").status_code == 404
    r = client.put(f"/api/v1/tasks/{task_id}", json={"title": "x"})
    assert r.status_code == 403


def test_http_limit_is_capped(client, login):
    login("teacher")
    r = client.get("/api/v1/tasks?limit=1000&page=0")
    assert r.get_json()["pagination"]["limit"] == 100
    assert r.get_json()["pagination"]["page"] == 1
