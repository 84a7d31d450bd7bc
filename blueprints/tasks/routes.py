# blueprints/tasks/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from extensions import db
from domain.store import SqlStore
from models import Role
from blueprints.auth.routes import current_actor, role_required
from blueprints.core.schemas import UserBriefOut, dump_all, page_args, pagination_json
from .schemas import TaskCreateIn, TaskUpdateIn, TaskOut, TaskStatsOut
from .services import TaskService

api_bp = Blueprint("tasks_api", __name__)


def _svc() -> TaskService:
    return TaskService(SqlStore(db.session))


def _task_json(task) -> dict:
    return TaskOut.model_validate(task).model_dump(mode="json")


# ---------- teacher/admin ----------
@api_bp.post("/tasks")
@role_required(Role.TEACHER, Role.ADMIN)
def api_create_task():
    data = TaskCreateIn.model_validate(request.get_json(silent=True) or {})
    task = _svc().create_task(current_actor(), data.model_dump(exclude_unset=True))
    return jsonify({"ok": True, "task": _task_json(task)}), 201


@api_bp.get("/tasks/stats")
@role_required(Role.TEACHER, Role.ADMIN)
def api_task_stats():
    stats = _svc().get_task_stats(current_actor())
    return jsonify({"ok": True, "stats": TaskStatsOut.model_validate(stats).model_dump()})


@api_bp.get("/tasks/students")
@role_required(Role.TEACHER, Role.ADMIN)
def api_students():
    return jsonify({"ok": True, "students": dump_all(UserBriefOut, _svc().get_students(current_actor()))})


@api_bp.delete("/tasks/<int:task_id>")
@role_required(Role.TEACHER, Role.ADMIN)
def api_delete_task(task_id: int):
    _svc().delete_task(current_actor(), task_id)
    return jsonify({"ok": True})


# ---------- общие ----------
@api_bp.get("/tasks")
@login_required
def api_list_tasks():
    page, limit = page_args("TASKS_PAGE_SIZE")
    class_id = request.args.get("class_id", type=int)
    result = _svc().get_tasks(
        current_actor(),
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        class_id=class_id,
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return jsonify({
        "ok": True,
        "tasks": dump_all(TaskOut, result.items),
        "pagination": pagination_json(result),
    })


@api_bp.get("/tasks/<int:task_id>")
@login_required
def api_get_task(task_id: int):
    return jsonify({"ok": True, "task": _task_json(_svc().get_task(current_actor(), task_id))})


@api_bp.put("/tasks/<int:task_id>")
@login_required
def api_update_task(task_id: int):
    data = TaskUpdateIn.model_validate(request.get_json(silent=True) or {})
    task = _svc().update_task(current_actor(), task_id, data.model_dump(exclude_unset=True))
    return jsonify({"ok": True, "task": _task_json(task)})
