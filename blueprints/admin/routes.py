# blueprints/admin/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from extensions import db
from domain.store import SqlStore
from models import Role
from blueprints.auth.routes import current_actor, role_required
from blueprints.core.schemas import dump_all, page_args, pagination_json
from .schemas import UserCreateIn, UserUpdateIn, RoleIn, UserOut, AdminStatsOut
from .services import AdminService

api_bp = Blueprint("admin_api", __name__)

admin_required = role_required(Role.ADMIN)


def _svc() -> AdminService:
    return AdminService(SqlStore(db.session))


def _user_json(user) -> dict:
    return UserOut.model_validate(user).model_dump(mode="json")


@api_bp.get("/admin/stats")
@admin_required
def api_admin_stats():
    stats = _svc().stats(current_actor())
    return jsonify({"ok": True, "stats": AdminStatsOut.model_validate(stats).model_dump()})


@api_bp.get("/admin/users")
@admin_required
def api_list_users():
    page, limit = page_args("USERS_PAGE_SIZE")
    result = _svc().list_users(
        current_actor(),
        search=request.args.get("search"),
        role=request.args.get("role") or None,
        status=request.args.get("status") or None,
        sort_by=request.args.get("sort_by") or "created_at",
        ascending=(request.args.get("sort_order") or "desc").lower() == "asc",
        page=page,
        limit=limit,
    )
    return jsonify({"ok": True, "users": dump_all(UserOut, result.items), "pagination": pagination_json(result)})


@api_bp.get("/admin/users/<int:user_id>")
@admin_required
def api_get_user(user_id: int):
    return jsonify({"ok": True, "user": _user_json(_svc().get_user(current_actor(), user_id))})


@api_bp.post("/admin/users")
@admin_required
def api_create_user():
    data = UserCreateIn.model_validate(request.get_json(silent=True) or {})
    user = _svc().create_user(
        current_actor(), name=data.name, email=data.email, password=data.password, role=data.role.value,
    )
    return jsonify({"ok": True, "user": _user_json(user)}), 201


@api_bp.put("/admin/users/<int:user_id>")
@admin_required
def api_update_user(user_id: int):
    data = UserUpdateIn.model_validate(request.get_json(silent=True) or {})
    user = _svc().update_user(current_actor(), user_id, data.model_dump(exclude_unset=True))
    return jsonify({"ok": True, "user": _user_json(user)})


@api_bp.patch("/admin/users/<int:user_id>/role")
@admin_required
def api_change_role(user_id: int):
    data = RoleIn.model_validate(request.get_json(silent=True) or {})
    user = _svc().change_role(current_actor(), user_id, data.role.value)
    return jsonify({"ok": True, "user": _user_json(user)})


@api_bp.delete("/admin/users/<int:user_id>")
@admin_required
def api_delete_user(user_id: int):
    _svc().delete_user(current_actor(), user_id)
    return jsonify({"ok": True})
