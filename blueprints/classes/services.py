# blueprints/classes/services.py
from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Optional

from domain import policy
from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.policy import Actor, ListScope
from domain.store import Store
from models import ClassMember, ClassRoom, User
from blueprints.notifications.services import NotificationDispatcher

log = logging.getLogger(__name__)

INVITE_CODE_BYTES = 4  # 8 hex-символов


def generate_invite_code() -> str:
    return secrets.token_hex(INVITE_CODE_BYTES)


@dataclass
class ClassSummary:
    classroom: ClassRoom
    member_count: int


@dataclass
class ClassDetail:
    classroom: ClassRoom
    members: list[ClassMember]


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ClassService:
    """Классы и участники.

    Инвайт-код при коллизии перегенерируется не больше одного раза (одна
    проверка существования, без цикла); остаточный шанс совпадения ловит
    уникальный индекс на ``invite_code``.
    """

    def __init__(self, store: Store, dispatcher: Optional[NotificationDispatcher] = None):
        self.store = store
        self.dispatcher = dispatcher or NotificationDispatcher(store)

    def _load(self, class_id: int) -> ClassRoom:
        cls = self.store.get_class(class_id)
        if cls is None:
            raise NotFoundError("class not found")
        return cls

    def _load_visible(self, actor: Actor, class_id: int) -> ClassRoom:
        cls = self._load(class_id)
        # membership резолвим до проверки доступа
        is_member = self.store.is_member(cls.id, actor.id) if actor.has(policy.Capability.CLASS_READ_MEMBER) else False
        policy.can_read_class(actor, cls, is_member).enforce()
        return cls

    def _load_managed(self, actor: Actor, class_id: int) -> ClassRoom:
        cls = self._load(class_id)
        policy.can_manage_class(actor, cls).enforce()
        return cls

    # ---------- CRUD ----------
    def create_class(self, actor: Actor, name: Optional[str], description: Optional[str] = None) -> ClassRoom:
        policy.can_create_class(actor).enforce()
        if not name or not name.strip():
            raise ValidationError("class name is required")

        code = generate_invite_code()
        if self.store.invite_code_exists(code):
            code = generate_invite_code()

        cls = self.store.insert_class(
            name=name.strip(),
            description=_clean_optional(description),
            invite_code=code,
            teacher_id=actor.id,
        )
        log.info("class %s created by user %s", cls.id, actor.id)
        return cls

    def get_classes(self, actor: Actor) -> list[ClassSummary]:
        scope = policy.class_list_scope(actor)
        if scope is ListScope.ALL:
            classes = self.store.list_classes()
        elif scope is ListScope.OWNED:
            classes = self.store.list_classes(teacher_id=actor.id)
        else:
            ids = self.store.member_class_ids(actor.id)
            if not ids:
                return []
            classes = self.store.list_classes(class_ids=ids)
        return [ClassSummary(c, self.store.count_members(c.id)) for c in classes]

    def get_class(self, actor: Actor, class_id: int) -> ClassDetail:
        cls = self._load_visible(actor, class_id)
        return ClassDetail(cls, self.store.list_memberships(cls.id))

    def update_class(self, actor: Actor, class_id: int, fields: dict[str, Any]) -> ClassRoom:
        cls = self._load_managed(actor, class_id)
        data: dict[str, Any] = {}
        if "name" in fields:
            name = fields["name"]
            if not name or not name.strip():
                raise ValidationError("class name cannot be blank")
            data["name"] = name.strip()
        if "description" in fields:
            data["description"] = _clean_optional(fields["description"])
        if not data:
            raise ValidationError("no fields to update")
        updated = self.store.update_class(cls.id, data)
        if updated is None:
            raise NotFoundError("class not found")
        return updated

    def delete_class(self, actor: Actor, class_id: int) -> None:
        cls = self._load_managed(actor, class_id)
        detached = self.store.detach_tasks_from_class(cls.id)
        self.store.delete_class(cls.id)
        log.info("class %s deleted by user %s, %d task(s) detached", class_id, actor.id, detached)

    # ---------- membership ----------
    def join_class(self, actor: Actor, invite_code: Optional[str]) -> ClassRoom:
        code = (invite_code or "").strip()
        if not code:
            raise ValidationError("invite code is required")
        cls = self.store.get_class_by_invite_code(code)
        if cls is None:
            raise NotFoundError("invalid invite code")
        if cls.teacher_id == actor.id:
            raise ValidationError("you are the teacher of this class")
        # проверка до вставки; уникальный индекс (class_id, user_id) страхует гонку
        if self.store.is_member(cls.id, actor.id):
            raise ConflictError("you are already a member of this class")

        self.store.insert_membership(cls.id, actor.id)
        log.info("user %s joined class %s", actor.id, cls.id)
        self.dispatcher.class_joined(cls, actor.id)
        return cls

    def remove_member(self, actor: Actor, class_id: int, member_id: int) -> None:
        cls = self._load_managed(actor, class_id)
        removed = self.store.delete_membership(cls.id, member_id)
        if removed:
            log.info("user %s removed from class %s by %s", member_id, cls.id, actor.id)

    def get_class_members(self, actor: Actor, class_id: int) -> list[User]:
        cls = self._load_visible(actor, class_id)
        return [m.user for m in self.store.list_memberships(cls.id)]
