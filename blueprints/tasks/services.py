# blueprints/tasks/services.py
"""Жизненный цикл задачи.

Статус свободно ходит между ``todo``, ``in-progress`` и ``completed``:
порядка «только вперёд» нет, за любым значением может идти любое.

``created_by`` и начальный ``todo`` выставляет сервер, из payload они не
берутся. Студент меняет только ``status`` назначенной ему задачи; учитель и
админ присылают частичное обновление по всему набору полей.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional

from domain import policy
from domain.errors import NotFoundError, ValidationError
from domain.policy import Actor, ListScope
from domain.store import Page, Store, TaskFilter
from models import Task, TaskPriority, TaskStatus, User
from blueprints.notifications.services import NotificationDispatcher

log = logging.getLogger(__name__)


@dataclass
class TaskStats:
    total_tasks: int
    todo: int
    in_progress: int
    completed: int
    total_students: int

    @property
    def total_active(self) -> int:
        return self.todo + self.in_progress

    @property
    def pending_review(self) -> int:
        return self.in_progress


def _enum_value(enum_cls, value, field: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"invalid {field}: expected one of {allowed}") from None


def _title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("title is required")
    return value.strip()


def _due_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError("invalid due_date") from None


class TaskService:
    def __init__(self, store: Store, dispatcher: Optional[NotificationDispatcher] = None):
        self.store = store
        self.dispatcher = dispatcher or NotificationDispatcher(store)

    def _load(self, task_id: int) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("task not found")
        return task

    def _check_class(self, actor: Actor, class_id: int) -> None:
        cls = self.store.get_class(class_id)
        if cls is None:
            raise ValidationError("invalid class")
        policy.can_attach_task_to_class(actor, cls).enforce()

    def _check_assignee(self, assignee_id: int) -> None:
        # роль исполнителя не проверяется: достаточно, что пользователь существует
        if self.store.get_user(assignee_id) is None:
            raise ValidationError("assignee not found")

    # ---------- create ----------
    def create_task(self, actor: Actor, fields: dict[str, Any]) -> Task:
        policy.can_create_task(actor).enforce()
        title = _title(fields.get("title"))
        class_id = fields.get("class_id")
        assignee_id = fields.get("assignee_id")

        if class_id is not None:
            self._check_class(actor, class_id)
        if assignee_id is not None:
            self._check_assignee(assignee_id)

        priority = fields.get("priority")
        task = self.store.insert_task(
            title=title,
            description=fields.get("description") or None,
            due_date=_due_date(fields.get("due_date")),
            priority=_enum_value(TaskPriority, priority, "priority") if priority else TaskPriority.MEDIUM.value,
            status=TaskStatus.TODO.value,
            created_by=actor.id,
            assignee_id=assignee_id,
            class_id=class_id,
        )
        log.info("task %s created by user %s", task.id, actor.id)

        if task.assignee_id is not None:
            self.dispatcher.task_assigned(task)
        return task

    # ---------- read ----------
    def get_tasks(self, actor: Actor, *, status: Optional[str] = None, priority: Optional[str] = None,
                  class_id: Optional[int] = None, search: Optional[str] = None,
                  page: int = 1, limit: int = 10) -> Page[Task]:
        flt = TaskFilter(class_id=class_id, search=(search or "").strip() or None)
        if status and status != "all":
            flt.status = _enum_value(TaskStatus, status, "status")
        if priority and priority != "all":
            flt.priority = _enum_value(TaskPriority, priority, "priority")

        scope = policy.task_list_scope(actor)
        if scope is ListScope.OWNED:
            flt.created_by = actor.id
        elif scope is ListScope.ASSIGNED:
            flt.assignee_id = actor.id
        return self.store.list_tasks(flt, page=max(page, 1), limit=max(limit, 1))

    def get_task(self, actor: Actor, task_id: int) -> Task:
        task = self._load(task_id)
        policy.can_read_task(actor, task).enforce()
        return task

    def get_task_stats(self, actor: Actor) -> TaskStats:
        policy.can_view_task_stats(actor).enforce()
        counts = self.store.task_status_counts(actor.id)
        return TaskStats(
            total_tasks=sum(counts.values()),
            todo=counts.get(TaskStatus.TODO.value, 0),
            in_progress=counts.get(TaskStatus.IN_PROGRESS.value, 0),
            completed=counts.get(TaskStatus.COMPLETED.value, 0),
            total_students=self.store.distinct_assignee_count(actor.id),
        )

    def get_students(self, actor: Actor) -> list[User]:
        policy.can_list_students(actor).enforce()
        return self.store.list_students()

    # ---------- update ----------
    def update_task(self, actor: Actor, task_id: int, fields: dict[str, Any]) -> Task:
        task = self._load(task_id)
        policy.can_update_task(actor, task).enforce()

        allowed = policy.task_fields_for(actor)
        if allowed == policy.STUDENT_TASK_FIELDS:
            return self._update_status_as_assignee(actor, task, fields)

        data: dict[str, Any] = {}
        for key, value in fields.items():
            if key not in allowed:
                raise ValidationError(f"unknown field: {key}")
            if key == "title":
                data["title"] = _title(value)
            elif key == "priority":
                data["priority"] = _enum_value(TaskPriority, value, "priority")
            elif key == "status":
                data["status"] = _enum_value(TaskStatus, value, "status")
            elif key == "due_date":
                data["due_date"] = _due_date(value)
            elif key == "assignee_id":
                if value is not None:
                    self._check_assignee(value)
                data["assignee_id"] = value
            elif key == "class_id":
                if value is not None:
                    self._check_class(actor, value)
                data["class_id"] = value
            else:
                data[key] = value
        if not data:
            raise ValidationError("no fields to update")

        updated = self.store.update_task(task.id, data)
        if updated is None:
            raise NotFoundError("task not found")
        log.info("task %s updated by user %s: %s", task.id, actor.id, sorted(data))
        return updated

    def _update_status_as_assignee(self, actor: Actor, task: Task, fields: dict[str, Any]) -> Task:
        extra = set(fields) - policy.STUDENT_TASK_FIELDS
        if extra:
            raise ValidationError("students can only update task status")
        if fields.get("status") is None:
            raise ValidationError("status is required")
        status = _enum_value(TaskStatus, fields["status"], "status")
        previous = task.status

        updated = self.store.update_task(task.id, {"status": status})
        if updated is None:
            raise NotFoundError("task not found")
        log.info("task %s status %s -> %s by assignee %s", task.id, previous, status, actor.id)

        if status == TaskStatus.COMPLETED.value and previous != TaskStatus.COMPLETED.value:
            self.dispatcher.task_completed(updated, actor.id)
        return updated

    # ---------- delete ----------
    def delete_task(self, actor: Actor, task_id: int) -> None:
        task = self._load(task_id)
        policy.can_delete_task(actor, task).enforce()
        self.store.delete_task(task.id)
        log.info("task %s deleted by user %s", task_id, actor.id)
