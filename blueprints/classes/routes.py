# blueprints/classes/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from extensions import db
from domain.store import SqlStore
from models import Role
from blueprints.auth.routes import current_actor, role_required
from blueprints.core.schemas import UserBriefOut, dump_all
from .schemas import (
    ClassCreateIn, ClassUpdateIn, JoinIn, ClassOut, ClassSummaryOut, ClassDetailOut, MemberOut,
)
from .services import ClassService

api_bp = Blueprint("classes_api", __name__)


def _svc() -> ClassService:
    return ClassService(SqlStore(db.session))


def _class_json(cls) -> dict:
    return ClassOut.model_validate(cls).model_dump(mode="json")


# ---------- управление классом (teacher/admin) ----------
@api_bp.post("/classes")
@role_required(Role.TEACHER, Role.ADMIN)
def api_create_class():
    data = ClassCreateIn.model_validate(request.get_json(silent=True) or {})
    cls = _svc().create_class(current_actor(), data.name, data.description)
    return jsonify({"ok": True, "class": _class_json(cls)}), 201


@api_bp.put("/classes/<int:class_id>")
@role_required(Role.TEACHER, Role.ADMIN)
def api_update_class(class_id: int):
    data = ClassUpdateIn.model_validate(request.get_json(silent=True) or {})
    cls = _svc().update_class(current_actor(), class_id, data.model_dump(exclude_unset=True))
    return jsonify({"ok": True, "class": _class_json(cls)})


@api_bp.delete("/classes/<int:class_id>")
@role_required(Role.TEACHER, Role.ADMIN)
def api_delete_class(class_id: int):
    _svc().delete_class(current_actor(), class_id)
    return jsonify({"ok": True})


@api_bp.delete("/classes/<int:class_id>/members/<int:user_id>")
@role_required(Role.TEACHER, Role.ADMIN)
def api_remove_member(class_id: int, user_id: int):
    _svc().remove_member(current_actor(), class_id, user_id)
    return jsonify({"ok": True})


# ---------- общие (роль проверяется в сервисе) ----------
@api_bp.post("/classes/join")
@login_required
def api_join_class():
    data = JoinIn.model_validate(request.get_json(silent=True) or {})
    cls = _svc().join_class(current_actor(), data.invite_code)
    return jsonify({"ok": True, "message": f'Joined class "{cls.name}"', "class": _class_json(cls)})


@api_bp.get("/classes")
@login_required
def api_list_classes():
    items = [
        ClassSummaryOut.model_validate({**_class_json(s.classroom), "member_count": s.member_count})
        .model_dump(mode="json")
        for s in _svc().get_classes(current_actor())
    ]
    return jsonify({"ok": True, "classes": items})


@api_bp.get("/classes/<int:class_id>")
@login_required
def api_get_class(class_id: int):
    detail = _svc().get_class(current_actor(), class_id)
    out = ClassDetailOut.model_validate({
        **_class_json(detail.classroom),
        "members": dump_all(MemberOut, detail.members),
    })
    return jsonify({"ok": True, "class": out.model_dump(mode="json")})


@api_bp.get("/classes/<int:class_id>/members")
@login_required
def api_class_members(class_id: int):
    users = _svc().get_class_members(current_actor(), class_id)
    return jsonify({"ok": True, "students": dump_all(UserBriefOut, users)})
