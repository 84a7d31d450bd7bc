"""Слой хранилища между сервисами и БД.

Сервисы зависят только от протокола :class:`Store`. :class:`SqlStore` —
реализация на SQLAlchemy; каждый изменяющий вызов — отдельная единица работы
(flush + commit), поэтому поздняя ошибка не откатывает раннее изменение.
Любой ``SQLAlchemyError`` откатывается и пробрасывается как :class:`StoreError`.
"""
from __future__ import annotations
import contextlib
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, Iterable, Iterator, Optional, Protocol, TypeVar

from sqlalchemy import func, select, update, delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import ClassMember, ClassRoom, Notification, Task, TaskStatus, User
from .errors import StoreError

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class TaskFilter:
    created_by: Optional[int] = None
    assignee_id: Optional[int] = None
    class_id: Optional[int] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    search: Optional[str] = None


@dataclass
class UserFilter:
    role: Optional[str] = None
    search: Optional[str] = None
    # "active" | "offline" относительно active_since
    status: Optional[str] = None
    active_since: Optional[datetime] = None
    sort_by: str = "created_at"
    ascending: bool = False


class Store(Protocol):
    # users
    def get_user(self, user_id: int) -> Optional[User]: ...
    def get_user_by_email(self, email: str) -> Optional[User]: ...
    def list_users(self, flt: UserFilter, *, page: int, limit: int) -> Page[User]: ...
    def list_students(self) -> list[User]: ...
    def count_users_by_role(self) -> dict[str, int]: ...
    def count_users(self, *, role: Optional[str] = None, last_login_since: Optional[datetime] = None,
                    created_since: Optional[datetime] = None) -> int: ...
    def insert_user(self, **fields: Any) -> User: ...
    def update_user(self, user_id: int, fields: dict[str, Any]) -> Optional[User]: ...
    def delete_user(self, user_id: int) -> bool: ...

    # classes and membership
    def get_class(self, class_id: int) -> Optional[ClassRoom]: ...
    def get_class_by_invite_code(self, code: str) -> Optional[ClassRoom]: ...
    def invite_code_exists(self, code: str) -> bool: ...
    def list_classes(self, *, teacher_id: Optional[int] = None,
                     class_ids: Optional[Iterable[int]] = None) -> list[ClassRoom]: ...
    def count_classes(self) -> int: ...
    def insert_class(self, **fields: Any) -> ClassRoom: ...
    def update_class(self, class_id: int, fields: dict[str, Any]) -> Optional[ClassRoom]: ...
    def delete_class(self, class_id: int) -> bool: ...
    def count_members(self, class_id: int) -> int: ...
    def list_memberships(self, class_id: int) -> list[ClassMember]: ...
    def is_member(self, class_id: int, user_id: int) -> bool: ...
    def member_class_ids(self, user_id: int) -> list[int]: ...
    def insert_membership(self, class_id: int, user_id: int) -> ClassMember: ...
    def delete_membership(self, class_id: int, user_id: int) -> int: ...

    # tasks
    def get_task(self, task_id: int) -> Optional[Task]: ...
    def list_tasks(self, flt: TaskFilter, *, page: int, limit: int) -> Page[Task]: ...
    def list_overdue_tasks(self, today: date) -> list[Task]: ...
    def task_status_counts(self, created_by: int) -> dict[str, int]: ...
    def distinct_assignee_count(self, created_by: int) -> int: ...
    def count_tasks(self, status: Optional[str] = None) -> int: ...
    def insert_task(self, **fields: Any) -> Task: ...
    def update_task(self, task_id: int, fields: dict[str, Any]) -> Optional[Task]: ...
    def delete_task(self, task_id: int) -> bool: ...
    def detach_tasks_from_class(self, class_id: int) -> int: ...

    # notifications
    def insert_notification(self, **fields: Any) -> Notification: ...
    def notification_exists(self, *, task_id: int, type: str, user_id: int) -> bool: ...
    def list_notifications(self, user_id: int, *, unread_only: bool, page: int, limit: int) -> Page[Notification]: ...
    def count_unread(self, user_id: int) -> int: ...
    def mark_read(self, notification_id: int, user_id: int) -> int: ...
    def mark_all_read(self, user_id: int) -> int: ...


_USER_SORT_FIELDS = {
    "created_at": User.created_at,
    "name": User.name,
    "email": User.email,
    "role": User.role,
    "last_login": User.last_login,
}


class SqlStore:
    """:class:`Store` поверх одной сессии SQLAlchemy."""

    def __init__(self, session: Session):
        self.session = session

    @contextlib.contextmanager
    def _guard(self, op: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            self.session.rollback()
            log.error("store operation %s failed: %s", op, e)
            raise StoreError(f"{op} failed") from e

    def _insert(self, obj, op: str):
        with self._guard(op):
            self.session.add(obj)
            self.session.commit()
        return obj

    def _update(self, model, obj_id: int, fields: dict[str, Any], op: str):
        with self._guard(op):
            obj = self.session.get(model, obj_id)
            if obj is None:
                return None
            for k, v in fields.items():
                setattr(obj, k, v)
            self.session.commit()
            return obj

    def _delete(self, model, obj_id: int, op: str) -> bool:
        with self._guard(op):
            obj = self.session.get(model, obj_id)
            if obj is None:
                return False
            self.session.delete(obj)
            self.session.commit()
            return True

    def _page(self, stmt, *, page: int, limit: int, op: str) -> Page:
        with self._guard(op):
            total = self.session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
            rows = self.session.scalars(stmt.offset((page - 1) * limit).limit(limit)).all()
        return Page(items=list(rows), total=total, page=page, limit=limit)

    # ---------- users ----------
    def get_user(self, user_id: int) -> Optional[User]:
        with self._guard("get_user"):
            return self.session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._guard("get_user_by_email"):
            return self.session.scalar(select(User).where(User.email == email.strip().lower()))

    def list_users(self, flt: UserFilter, *, page: int, limit: int) -> Page[User]:
        stmt = select(User)
        if flt.role:
            stmt = stmt.where(User.role == flt.role)
        if flt.search:
            pattern = f"%{flt.search}%"
            stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        if flt.status == "active":
            stmt = stmt.where(User.last_login >= flt.active_since)
        elif flt.status == "offline":
            stmt = stmt.where(or_(User.last_login.is_(None), User.last_login < flt.active_since))
        col = _USER_SORT_FIELDS.get(flt.sort_by, User.created_at)
        stmt = stmt.order_by(col.asc() if flt.ascending else col.desc(), User.id.asc())
        return self._page(stmt, page=page, limit=limit, op="list_users")

    def list_students(self) -> list[User]:
        with self._guard("list_students"):
            return list(self.session.scalars(
                select(User).where(User.role == "student").order_by(User.name.asc(), User.id.asc())
            ))

    def count_users_by_role(self) -> dict[str, int]:
        with self._guard("count_users_by_role"):
            rows = self.session.execute(select(User.role, func.count(User.id)).group_by(User.role)).all()
        return {role: cnt for role, cnt in rows}

    def count_users(self, *, role: Optional[str] = None, last_login_since: Optional[datetime] = None,
                    created_since: Optional[datetime] = None) -> int:
        stmt = select(func.count(User.id))
        if role:
            stmt = stmt.where(User.role == role)
        if last_login_since is not None:
            stmt = stmt.where(User.last_login >= last_login_since)
        if created_since is not None:
            stmt = stmt.where(User.created_at >= created_since)
        with self._guard("count_users"):
            return self.session.scalar(stmt) or 0

    def insert_user(self, **fields: Any) -> User:
        return self._insert(User(**fields), "insert_user")

    def update_user(self, user_id: int, fields: dict[str, Any]) -> Optional[User]:
        return self._update(User, user_id, fields, "update_user")

    def delete_user(self, user_id: int) -> bool:
        return self._delete(User, user_id, "delete_user")

    # ---------- classes ----------
    def get_class(self, class_id: int) -> Optional[ClassRoom]:
        with self._guard("get_class"):
            return self.session.get(ClassRoom, class_id)

    def get_class_by_invite_code(self, code: str) -> Optional[ClassRoom]:
        with self._guard("get_class_by_invite_code"):
            return self.session.scalar(select(ClassRoom).where(ClassRoom.invite_code == code))

    def invite_code_exists(self, code: str) -> bool:
        with self._guard("invite_code_exists"):
            return self.session.scalar(select(ClassRoom.id).where(ClassRoom.invite_code == code)) is not None

    def list_classes(self, *, teacher_id: Optional[int] = None,
                     class_ids: Optional[Iterable[int]] = None) -> list[ClassRoom]:
        stmt = select(ClassRoom)
        if teacher_id is not None:
            stmt = stmt.where(ClassRoom.teacher_id == teacher_id)
        if class_ids is not None:
            stmt = stmt.where(ClassRoom.id.in_(list(class_ids)))
        stmt = stmt.order_by(ClassRoom.created_at.desc(), ClassRoom.id.desc())
        with self._guard("list_classes"):
            return list(self.session.scalars(stmt))

    def count_classes(self) -> int:
        with self._guard("count_classes"):
            return self.session.scalar(select(func.count(ClassRoom.id))) or 0

    def insert_class(self, **fields: Any) -> ClassRoom:
        return self._insert(ClassRoom(**fields), "insert_class")

    def update_class(self, class_id: int, fields: dict[str, Any]) -> Optional[ClassRoom]:
        return self._update(ClassRoom, class_id, fields, "update_class")

    def delete_class(self, class_id: int) -> bool:
        # memberships и уведомления класса удаляются каскадом ORM
        return self._delete(ClassRoom, class_id, "delete_class")

    def count_members(self, class_id: int) -> int:
        with self._guard("count_members"):
            return self.session.scalar(
                select(func.count(ClassMember.id)).where(ClassMember.class_id == class_id)
            ) or 0

    def list_memberships(self, class_id: int) -> list[ClassMember]:
        with self._guard("list_memberships"):
            return list(self.session.scalars(
                select(ClassMember).where(ClassMember.class_id == class_id)
                .order_by(ClassMember.joined_at.asc(), ClassMember.id.asc())
            ))

    def is_member(self, class_id: int, user_id: int) -> bool:
        with self._guard("is_member"):
            return self.session.scalar(
                select(ClassMember.id).where(ClassMember.class_id == class_id, ClassMember.user_id == user_id)
            ) is not None

    def member_class_ids(self, user_id: int) -> list[int]:
        with self._guard("member_class_ids"):
            return list(self.session.scalars(select(ClassMember.class_id).where(ClassMember.user_id == user_id)))

    def insert_membership(self, class_id: int, user_id: int) -> ClassMember:
        return self._insert(ClassMember(class_id=class_id, user_id=user_id), "insert_membership")

    def delete_membership(self, class_id: int, user_id: int) -> int:
        with self._guard("delete_membership"):
            res = self.session.execute(
                delete(ClassMember).where(ClassMember.class_id == class_id, ClassMember.user_id == user_id)
            )
            self.session.commit()
        return res.rowcount or 0

    # ---------- tasks ----------
    def get_task(self, task_id: int) -> Optional[Task]:
        with self._guard("get_task"):
            return self.session.get(Task, task_id)

    def list_tasks(self, flt: TaskFilter, *, page: int, limit: int) -> Page[Task]:
        stmt = select(Task)
        if flt.created_by is not None:
            stmt = stmt.where(Task.created_by == flt.created_by)
        if flt.assignee_id is not None:
            stmt = stmt.where(Task.assignee_id == flt.assignee_id)
        if flt.class_id is not None:
            stmt = stmt.where(Task.class_id == flt.class_id)
        if flt.status:
            stmt = stmt.where(Task.status == flt.status)
        if flt.priority:
            stmt = stmt.where(Task.priority == flt.priority)
        if flt.search:
            stmt = stmt.where(Task.title.ilike(f"%{flt.search}%"))
        stmt = stmt.order_by(Task.created_at.desc(), Task.id.desc())
        return self._page(stmt, page=page, limit=limit, op="list_tasks")

    def list_overdue_tasks(self, today: date) -> list[Task]:
        with self._guard("list_overdue_tasks"):
            return list(self.session.scalars(
                select(Task)
                .where(Task.due_date.is_not(None), Task.due_date < today,
                       Task.status != TaskStatus.COMPLETED.value)
                .order_by(Task.due_date.asc(), Task.id.asc())
            ))

    def task_status_counts(self, created_by: int) -> dict[str, int]:
        with self._guard("task_status_counts"):
            rows = self.session.execute(
                select(Task.status, func.count(Task.id)).where(Task.created_by == created_by).group_by(Task.status)
            ).all()
        return {status: cnt for status, cnt in rows}

    def distinct_assignee_count(self, created_by: int) -> int:
        with self._guard("distinct_assignee_count"):
            return self.session.scalar(
                select(func.count(func.distinct(Task.assignee_id)))
                .where(Task.created_by == created_by, Task.assignee_id.is_not(None))
            ) or 0

    def count_tasks(self, status: Optional[str] = None) -> int:
        stmt = select(func.count(Task.id))
        if status:
            stmt = stmt.where(Task.status == status)
        with self._guard("count_tasks"):
            return self.session.scalar(stmt) or 0

    def insert_task(self, **fields: Any) -> Task:
        return self._insert(Task(**fields), "insert_task")

    def update_task(self, task_id: int, fields: dict[str, Any]) -> Optional[Task]:
        return self._update(Task, task_id, fields, "update_task")

    def delete_task(self, task_id: int) -> bool:
        return self._delete(Task, task_id, "delete_task")

    def detach_tasks_from_class(self, class_id: int) -> int:
        with self._guard("detach_tasks_from_class"):
            res = self.session.execute(
                update(Task).where(Task.class_id == class_id).values(class_id=None)
            )
            self.session.commit()
        return res.rowcount or 0

    # ---------- notifications ----------
    def insert_notification(self, **fields: Any) -> Notification:
        return self._insert(Notification(**fields), "insert_notification")

    def notification_exists(self, *, task_id: int, type: str, user_id: int) -> bool:
        with self._guard("notification_exists"):
            return self.session.scalar(
                select(Notification.id).where(
                    Notification.task_id == task_id,
                    Notification.type == type,
                    Notification.user_id == user_id,
                ).limit(1)
            ) is not None

    def list_notifications(self, user_id: int, *, unread_only: bool, page: int, limit: int) -> Page[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        return self._page(stmt, page=page, limit=limit, op="list_notifications")

    def count_unread(self, user_id: int) -> int:
        with self._guard("count_unread"):
            return self.session.scalar(
                select(func.count(Notification.id))
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            ) or 0

    def mark_read(self, notification_id: int, user_id: int) -> int:
        # WHERE по user_id: чужое уведомление просто не совпадёт
        with self._guard("mark_read"):
            res = self.session.execute(
                update(Notification)
                .where(Notification.id == notification_id, Notification.user_id == user_id)
                .values(is_read=True)
            )
            self.session.commit()
        return res.rowcount or 0

    def mark_all_read(self, user_id: int) -> int:
        with self._guard("mark_all_read"):
            res = self.session.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True)
            )
            self.session.commit()
        return res.rowcount or 0
