# blueprints/notifications/services.py
"""Рассылка уведомлений.

Уведомления — побочный эффект изменений задач и классов. ``notify`` работает
по принципу best-effort: ошибка записи логируется и глотается, вызвавшее её
изменение остаётся закоммиченным (at-most-once, fire-and-forget).

``scan_overdue`` — сканирование по запросу без состояния. Проверка «уже
уведомляли?» и вставка — два отдельных запроса, поэтому два параллельных
сканирования могут вставить дубль; повторный запуск подряд не вставит ничего.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from domain.policy import Actor
from domain.store import Page, Store
from models import ClassRoom, Notification, NotificationType, Task

log = logging.getLogger(__name__)


@dataclass
class OverdueScan:
    checked: int
    notified: int


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class NotificationDispatcher:
    def __init__(self, store: Store):
        self.store = store

    # ---------- dispatch ----------
    def notify(self, recipient_id: int, kind: NotificationType, title: str, message: str,
               task_id: Optional[int] = None, class_id: Optional[int] = None) -> Optional[Notification]:
        try:
            n = self.store.insert_notification(
                user_id=recipient_id,
                type=NotificationType(kind).value,
                title=title,
                message=message,
                task_id=task_id,
                class_id=class_id,
            )
        except Exception:
            log.exception("notification dispatch failed: type=%s user_id=%s task_id=%s",
                          kind, recipient_id, task_id)
            return None
        log.info("notification %s sent to user %s", n.type, recipient_id)
        return n

    def task_assigned(self, task: Task) -> Optional[Notification]:
        return self.notify(
            task.assignee_id, NotificationType.TASK_ASSIGNED,
            "New Task Assigned",
            f'You\'ve been assigned a new task: "{task.title}"',
            task_id=task.id, class_id=task.class_id,
        )

    def _display_name(self, user_id: int) -> str:
        try:
            user = self.store.get_user(user_id)
        except Exception:
            log.exception("could not resolve name of user %s", user_id)
            return "A student"
        return user.name if user and user.name else "A student"

    def task_completed(self, task: Task, student_id: int) -> Optional[Notification]:
        task_id, title, creator = task.id, task.title, task.created_by
        who = self._display_name(student_id)
        return self.notify(
            creator, NotificationType.TASK_COMPLETED,
            "Task Completed",
            f'{who} completed the task: "{title}"',
            task_id=task_id,
        )

    def class_joined(self, cls: ClassRoom, member_id: int) -> Optional[Notification]:
        class_id, name, teacher_id = cls.id, cls.name, cls.teacher_id
        who = self._display_name(member_id)
        return self.notify(
            teacher_id, NotificationType.CLASS_JOINED,
            "New Class Member",
            f'{who} joined your class "{name}"',
            class_id=class_id,
        )

    def scan_overdue(self, today: Optional[date] = None) -> OverdueScan:
        today = today or utc_today()
        tasks = self.store.list_overdue_tasks(today)
        notified = 0
        for t in tasks:
            if self.store.notification_exists(task_id=t.id, type=NotificationType.TASK_OVERDUE.value,
                                              user_id=t.created_by):
                continue
            sent = self.notify(
                t.created_by, NotificationType.TASK_OVERDUE,
                "Task Overdue",
                f'"{t.title}" is past its due date ({t.due_date.isoformat()}) and hasn\'t been completed yet.',
                task_id=t.id,
            )
            if sent is not None:
                notified += 1
        log.info("overdue scan for %s: checked=%d notified=%d", today.isoformat(), len(tasks), notified)
        return OverdueScan(checked=len(tasks), notified=notified)

    # ---------- reads, scoped to the caller ----------
    def get_notifications(self, actor: Actor, *, page: int = 1, limit: int = 20,
                          unread_only: bool = False) -> Page[Notification]:
        return self.store.list_notifications(actor.id, unread_only=unread_only, page=page, limit=limit)

    def get_unread_count(self, actor: Actor) -> int:
        return self.store.count_unread(actor.id)

    def mark_as_read(self, actor: Actor, notification_id: int) -> int:
        return self.store.mark_read(notification_id, actor.id)

    def mark_all_as_read(self, actor: Actor) -> int:
        return self.store.mark_all_read(actor.id)
