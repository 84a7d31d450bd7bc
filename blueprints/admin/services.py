# blueprints/admin/services.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from werkzeug.security import generate_password_hash

from domain import policy
from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.policy import Actor
from domain.store import Page, Store, UserFilter
from models import Role, TaskStatus, User, utcnow

log = logging.getLogger(__name__)

MIN_PASSWORD_LEN = 6
# пользователь «активен», если входил за последние 30 дней
ACTIVE_WINDOW = timedelta(days=30)
USER_STATUSES = ("active", "offline")


def active_since(now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) - ACTIVE_WINDOW


def user_status(last_login: Optional[datetime], now: Optional[datetime] = None) -> str:
    if last_login is not None and last_login >= active_since(now):
        return "active"
    return "offline"


@dataclass
class AdminStats:
    total_users: int
    students: int
    teachers: int
    admins: int
    total_classes: int
    total_tasks: int
    completed_tasks: int
    active_students: int = 0
    new_users_this_month: int = 0

    @property
    def completion_rate(self) -> int:
        if not self.total_tasks:
            return 0
        return round(self.completed_tasks / self.total_tasks * 100)


def _role(value: Optional[str]) -> str:
    try:
        return Role(value).value
    except ValueError:
        raise ValidationError("invalid role: must be student, teacher or admin") from None


class AdminService:
    """Управление пользователями. Роли меняются только здесь, вне жизненного цикла задач."""

    def __init__(self, store: Store):
        self.store = store

    def list_users(self, actor: Actor, *, search: Optional[str] = None, role: Optional[str] = None,
                   status: Optional[str] = None,
                   sort_by: str = "created_at", ascending: bool = False,
                   page: int = 1, limit: int = 10) -> Page[User]:
        policy.can_administer_users(actor).enforce()
        status = (status or "").strip().lower()
        if status == "all":
            status = ""
        if status and status not in USER_STATUSES:
            raise ValidationError("invalid status: must be active, offline or all")
        flt = UserFilter(
            role=_role(role) if role else None,
            search=(search or "").strip() or None,
            status=status or None,
            active_since=active_since() if status else None,
            sort_by=sort_by,
            ascending=ascending,
        )
        return self.store.list_users(flt, page=page, limit=limit)

    def get_user(self, actor: Actor, user_id: int) -> User:
        policy.can_administer_users(actor).enforce()
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def create_user(self, actor: Actor, *, name: str, email: str, password: str,
                    role: str = Role.STUDENT.value) -> User:
        policy.can_administer_users(actor).enforce()
        if not name or not name.strip() or not email or not email.strip() or not password:
            raise ValidationError("name, email and password are required")
        if len(password) < MIN_PASSWORD_LEN:
            raise ValidationError(f"password must be at least {MIN_PASSWORD_LEN} characters")
        email = email.strip().lower()
        if self.store.get_user_by_email(email):
            raise ConflictError("user already exists with this email")
        user = self.store.insert_user(
            name=name.strip(),
            email=email,
            role=_role(role),
            password_hash=generate_password_hash(password),
        )
        log.info("user %s (%s) created by admin %s", user.id, user.role, actor.id)
        return user

    def change_role(self, actor: Actor, user_id: int, role: Optional[str]) -> User:
        policy.can_administer_users(actor).enforce()
        new_role = _role(role)
        if user_id == actor.id:
            raise ValidationError("you cannot change your own role")
        user = self.store.update_user(user_id, {"role": new_role})
        if user is None:
            raise NotFoundError("user not found")
        log.info("user %s role changed to %s by admin %s", user_id, new_role, actor.id)
        return user

    def update_user(self, actor: Actor, user_id: int, fields: dict[str, Any]) -> User:
        """Частичное обновление: name, email, role, password. Свою роль админ не меняет."""
        policy.can_administer_users(actor).enforce()
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("user not found")

        changes: dict[str, Any] = {}
        if fields.get("role") is not None:
            new_role = _role(fields["role"])
            if new_role != user.role and user_id == actor.id:
                raise ValidationError("you cannot change your own role")
            changes["role"] = new_role
        if fields.get("name") is not None:
            name = fields["name"].strip()
            if not name:
                raise ValidationError("name cannot be empty")
            changes["name"] = name
        if fields.get("password") is not None:
            if len(fields["password"]) < MIN_PASSWORD_LEN:
                raise ValidationError(f"password must be at least {MIN_PASSWORD_LEN} characters")
            changes["password_hash"] = generate_password_hash(fields["password"])
        if fields.get("email") is not None:
            email = fields["email"].strip().lower()
            if not email:
                raise ValidationError("email cannot be empty")
            other = self.store.get_user_by_email(email)
            if other is not None and other.id != user_id:
                raise ConflictError("email already in use by another user")
            changes["email"] = email
        if not changes:
            raise ValidationError("no fields to update")

        user = self.store.update_user(user_id, changes)
        if user is None:
            raise NotFoundError("user not found")
        log.info("user %s updated by admin %s: %s", user_id, actor.id, ", ".join(sorted(changes)))
        return user

    def delete_user(self, actor: Actor, user_id: int) -> None:
        policy.can_administer_users(actor).enforce()
        if user_id == actor.id:
            raise ValidationError("you cannot delete your own account")
        if not self.store.delete_user(user_id):
            raise NotFoundError("user not found")
        log.info("user %s deleted by admin %s", user_id, actor.id)

    def stats(self, actor: Actor) -> AdminStats:
        policy.can_administer_users(actor).enforce()
        now = utcnow()
        by_role = self.store.count_users_by_role()
        return AdminStats(
            total_users=sum(by_role.values()),
            students=by_role.get(Role.STUDENT.value, 0),
            teachers=by_role.get(Role.TEACHER.value, 0),
            admins=by_role.get(Role.ADMIN.value, 0),
            total_classes=self.store.count_classes(),
            total_tasks=self.store.count_tasks(),
            completed_tasks=self.store.count_tasks(TaskStatus.COMPLETED.value),
            active_students=self.store.count_users(role=Role.STUDENT.value, last_login_since=active_since(now)),
            new_users_this_month=self.store.count_users(
                created_since=now.replace(day=1, hour=0, minute=0, second=0, microsecond=0),
            ),
        )
