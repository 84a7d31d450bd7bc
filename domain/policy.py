"""Политика доступа.

Чистые функции над ``(actor, entity)``. Каждая возвращает :class:`Decision`;
вызывающий либо смотрит на него, либо зовёт ``.enforce()``, который бросает
ошибку, записанную в решении.

Коротко:

* admin проходит любую проверку владения;
* teacher работает со своими классами и созданными им задачами;
* student читает классы, где он участник, и назначенные ему задачи, и может
  менять у этих задач только ``status``.

Отказ на чтение несёт :class:`NotFoundError`: скрытая запись неотличима от
отсутствующей. Отказ на изменение несёт :class:`ForbiddenError`.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any

from models.common import Role
from .errors import DomainError, ForbiddenError, NotFoundError, ValidationError


class Capability(str, Enum):
    CLASS_CREATE = "class:create"
    CLASS_READ_MEMBER = "class:read:member"
    CLASS_MANAGE_OWN = "class:manage:own"
    CLASS_ANY = "class:any"
    TASK_CREATE = "task:create"
    TASK_READ_ASSIGNED = "task:read:assigned"
    TASK_STATUS_ASSIGNED = "task:status:assigned"
    TASK_MANAGE_OWN = "task:manage:own"
    TASK_ANY = "task:any"
    TASK_STATS = "task:stats"
    STUDENTS_LIST = "students:list"
    USERS_ADMIN = "users:admin"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.STUDENT: frozenset({
        Capability.CLASS_READ_MEMBER,
        Capability.TASK_READ_ASSIGNED,
        Capability.TASK_STATUS_ASSIGNED,
    }),
    Role.TEACHER: frozenset({
        Capability.CLASS_CREATE,
        Capability.CLASS_MANAGE_OWN,
        Capability.TASK_CREATE,
        Capability.TASK_MANAGE_OWN,
        Capability.TASK_STATS,
        Capability.STUDENTS_LIST,
    }),
    Role.ADMIN: frozenset(Capability),
}

# поля задачи, которые можно менять
TASK_FIELDS = frozenset({"title", "description", "due_date", "priority", "status", "assignee_id", "class_id"})
STUDENT_TASK_FIELDS = frozenset({"status"})


class ListScope(str, Enum):
    ALL = "all"
    OWNED = "owned"
    MEMBER = "member"
    ASSIGNED = "assigned"


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @classmethod
    def from_user(cls, user: Any) -> "Actor":
        return cls(id=user.id, role=Role(user.role))

    @property
    def capabilities(self) -> frozenset[Capability]:
        return ROLE_CAPABILITIES[self.role]

    def has(self, cap: Capability) -> bool:
        return cap in self.capabilities

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    error: type[DomainError] = ForbiddenError

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        if not self.allowed:
            raise self.error(self.reason)


def allow(reason: str = "allowed") -> Decision:
    return Decision(True, reason)


def deny(reason: str, error: type[DomainError] = ForbiddenError) -> Decision:
    return Decision(False, reason, error)


# ---------- Classes ----------
def class_list_scope(actor: Actor) -> ListScope:
    if actor.has(Capability.CLASS_ANY):
        return ListScope.ALL
    if actor.has(Capability.CLASS_MANAGE_OWN):
        return ListScope.OWNED
    return ListScope.MEMBER


def can_create_class(actor: Actor) -> Decision:
    if actor.has(Capability.CLASS_CREATE):
        return allow()
    return deny("only teachers can create classes")


def can_read_class(actor: Actor, cls: Any, is_member: bool = False) -> Decision:
    if actor.has(Capability.CLASS_ANY):
        return allow("admin")
    if actor.has(Capability.CLASS_MANAGE_OWN) and cls.teacher_id == actor.id:
        return allow("owner")
    if actor.has(Capability.CLASS_READ_MEMBER) and is_member:
        return allow("member")
    return deny("class not found", NotFoundError)


def can_manage_class(actor: Actor, cls: Any) -> Decision:
    """Одно правило для изменения, удаления и исключения участника."""
    if actor.has(Capability.CLASS_ANY):
        return allow("admin")
    if actor.has(Capability.CLASS_MANAGE_OWN) and cls.teacher_id == actor.id:
        return allow("owner")
    return deny("you don't own this class")


# ---------- Tasks ----------
def task_list_scope(actor: Actor) -> ListScope:
    if actor.has(Capability.TASK_ANY):
        return ListScope.ALL
    if actor.has(Capability.TASK_MANAGE_OWN):
        return ListScope.OWNED
    return ListScope.ASSIGNED


def can_create_task(actor: Actor) -> Decision:
    if actor.has(Capability.TASK_CREATE):
        return allow()
    return deny("only teachers can create tasks")


def can_attach_task_to_class(actor: Actor, cls: Any) -> Decision:
    # отдельно от прав на сам класс: это ошибка входных данных
    if actor.has(Capability.CLASS_ANY) or cls.teacher_id == actor.id:
        return allow()
    return deny("you don't own this class", ValidationError)


def can_read_task(actor: Actor, task: Any) -> Decision:
    if actor.has(Capability.TASK_ANY):
        return allow("admin")
    if actor.has(Capability.TASK_MANAGE_OWN) and task.created_by == actor.id:
        return allow("creator")
    if actor.has(Capability.TASK_READ_ASSIGNED) and task.assignee_id == actor.id:
        return allow("assignee")
    return deny("task not found", NotFoundError)


def can_update_task(actor: Actor, task: Any) -> Decision:
    if actor.has(Capability.TASK_ANY):
        return allow("admin")
    if actor.has(Capability.TASK_MANAGE_OWN):
        if task.created_by == actor.id:
            return allow("creator")
        return deny("you can only edit tasks you created")
    if actor.has(Capability.TASK_STATUS_ASSIGNED) and task.assignee_id == actor.id:
        return allow("assignee")
    return deny("you can only update tasks assigned to you")


def task_fields_for(actor: Actor) -> frozenset[str]:
    if actor.has(Capability.TASK_ANY) or actor.has(Capability.TASK_MANAGE_OWN):
        return TASK_FIELDS
    return STUDENT_TASK_FIELDS


def can_delete_task(actor: Actor, task: Any) -> Decision:
    if actor.has(Capability.TASK_ANY):
        return allow("admin")
    if actor.has(Capability.TASK_MANAGE_OWN) and task.created_by == actor.id:
        return allow("creator")
    return deny("you can only delete tasks you created")


def can_view_task_stats(actor: Actor) -> Decision:
    return allow() if actor.has(Capability.TASK_STATS) else deny("teachers only")


def can_list_students(actor: Actor) -> Decision:
    return allow() if actor.has(Capability.STUDENTS_LIST) else deny("teachers only")


# ---------- Users ----------
def can_administer_users(actor: Actor) -> Decision:
    return allow() if actor.has(Capability.USERS_ADMIN) else deny("admins only")
