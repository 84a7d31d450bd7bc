from __future__ import annotations
import logging
from datetime import date, timedelta

import pytest

from domain.errors import StoreError
from models import Notification, NotificationType
from blueprints.notifications.services import NotificationDispatcher, utc_today
from blueprints.tasks.services import TaskService


class FailingNotifications:
    """Store, у которого падает только запись уведомлений."""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def insert_notification(self, **fields):
        raise StoreError("insert_notification failed")


@pytest.fixture()
def dispatcher(store):
    return NotificationDispatcher(store)


@pytest.fixture()
def tasks(store):
    return TaskService(store)


def _overdue(tasks, actors, users, days=3, **extra):
    return tasks.create_task(actors["teacher"], {
        "title": extra.pop("title", "Late essay"),
        "due_date": utc_today() - timedelta(days=days),
        **extra,
    })


def test_scan_overdue_is_idempotent(dispatcher, tasks, actors, users):
    t1 = _overdue(tasks, actors, users)
    _overdue(tasks, actors, users, title="Also late", assignee_id=users["student"].id)
    tasks.create_task(actors["teacher"], {"title": "Future", "due_date": utc_today() + timedelta(days=1)})
    tasks.create_task(actors["teacher"], {"title": "Today", "due_date": utc_today()})
    tasks.create_task(actors["teacher"], {"title": "No date"})

    first = dispatcher.scan_overdue()
    assert (first.checked, first.notified) == (2, 2)
    total = Notification.query.count()

    second = dispatcher.scan_overdue()
    assert (second.checked, second.notified) == (2, 0)
    assert Notification.query.count() == total

    notes = Notification.query.filter_by(type="task_overdue", task_id=t1.id).all()
    assert [n.user_id for n in notes] == [users["teacher"].id]


def test_completed_tasks_are_not_overdue(dispatcher, tasks, actors, users):
    t = _overdue(tasks, actors, users, assignee_id=users["student"].id)
    tasks.update_task(actors["student"], t.id, {"status": "completed"})
    assert dispatcher.scan_overdue().checked == 0


def test_scan_uses_given_day(dispatcher, tasks, actors):
    tasks.create_task(actors["teacher"], {"title": "x", "due_date": date(2030, 5, 1)})
    assert dispatcher.scan_overdue(today=date(2030, 5, 1)).checked == 0
    assert dispatcher.scan_overdue(today=date(2030, 5, 2)).notified == 1


def test_dispatch_failure_does_not_break_mutation(store, actors, users, caplog):
    broken = FailingNotifications(store)
    svc = TaskService(broken)
    with caplog.at_level(logging.ERROR):
        task = svc.create_task(actors["teacher"], {"title": "x", "assignee_id": users["student"].id})
        updated = svc.update_task(actors["student"], task.id, {"status": "completed"})

    assert store.get_task(task.id) is not None
    assert updated.status == "completed"
    assert Notification.query.count() == 0
    assert "notification dispatch failed" in caplog.text


def test_scan_counts_only_delivered(store, tasks, actors, users):
    _overdue(tasks, actors, users)
    scan = NotificationDispatcher(FailingNotifications(store)).scan_overdue()
    assert (scan.checked, scan.notified) == (1, 0)


def test_notify_returns_none_on_failure(store, users):
    d = NotificationDispatcher(FailingNotifications(store))
    assert d.notify(users["student"].id, "task_assigned", "t", "m") is None


def test_notify_accepts_kind_keyword(dispatcher, users):
    n = dispatcher.notify(users["student"].id, kind=NotificationType.CLASS_JOINED,
                          title="T", message="m", class_id=None)
    assert n.type == "class_joined"
    with pytest.raises(TypeError):
        dispatcher.notify(users["student"].id, type="task_assigned", title="T", message="m")


def test_reads_are_scoped(dispatcher, actors, users):
    a = dispatcher.notify(users["student"].id, "task_assigned", "A", "a")
    dispatcher.notify(users["student"].id, "task_assigned", "B", "b")
    other = dispatcher.notify(users["student2"].id, "task_assigned", "C", "c")

    assert dispatcher.get_unread_count(actors["student"]) == 2
    page = dispatcher.get_notifications(actors["student"])
    assert [n.title for n in page.items] == ["B", "A"]

    # чужое уведомление не отмечается
    assert dispatcher.mark_as_read(actors["student"], other.id) == 0
    assert dispatcher.get_unread_count(actors["student2"]) == 1
    assert dispatcher.mark_as_read(actors["student"], 9999) == 0

    assert dispatcher.mark_as_read(actors["student"], a.id) == 1
    assert dispatcher.get_unread_count(actors["student"]) == 1
    unread = dispatcher.get_notifications(actors["student"], unread_only=True)
    assert [n.title for n in unread.items] == ["B"]

    assert dispatcher.mark_all_as_read(actors["student"]) == 1
    assert dispatcher.get_unread_count(actors["student"]) == 0
    assert dispatcher.get_unread_count(actors["student2"]) == 1


# ---------- HTTP ----------
def test_http_notifications(client, login, users, dispatcher):
    mine = dispatcher.notify(users["student"].id, "task_assigned", "A", "a")
    theirs = dispatcher.notify(users["student2"].id, "task_assigned", "B", "b")

    login("student")
    r = client.get("/api/v1/notifications")
    js = r.get_json()
    assert [n["id"] for n in js["notifications"]] == [mine.id]
    assert js["pagination"]["limit"] == 20
    assert client.get("/api/v1/notifications/unread-count").get_json()["unread_count"] == 1

    r = client.put(f"/api/v1/notifications/{theirs.id}/read")
    assert r.status_code == 200 and r.get_json()["updated"] == 0
    r = client.put("/api/v1/notifications/read-all")
    assert r.get_json()["updated"] == 1
    assert client.get("/api/v1/notifications?unread_only=true").get_json()["notifications"] == []


def test_http_check_overdue(client, login, tasks, actors, users):
    _overdue(tasks, actors, users)
    login("teacher")
    js = client.post("/api/v1/notifications/check-overdue").get_json()
    assert (js["checked"], js["count"]) == (1, 1)
    js = client.post("/api/v1/notifications/check-overdue").get_json()
    assert (js["checked"], js["count"]) == (1, 0)


def test_http_requires_login(client):
    r = client.get("/api/v1/notifications")
    assert r.status_code == 401
    assert r.get_json() == {"error": "unauthorized"}
