# blueprints/notifications/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from extensions import db
from domain.store import SqlStore
from blueprints.auth.routes import current_actor
from blueprints.core.schemas import dump_all, page_args, pagination_json
from .schemas import NotificationOut
from .services import NotificationDispatcher

api_bp = Blueprint("notifications_api", __name__)


def _svc() -> NotificationDispatcher:
    return NotificationDispatcher(SqlStore(db.session))


@api_bp.get("/notifications")
@login_required
def api_list_notifications():
    page, limit = page_args("NOTIFICATIONS_PAGE_SIZE")
    unread_only = (request.args.get("unread_only") or "").lower() in ("1", "true", "yes")
    result = _svc().get_notifications(current_actor(), page=page, limit=limit, unread_only=unread_only)
    return jsonify({
        "ok": True,
        "notifications": dump_all(NotificationOut, result.items),
        "pagination": pagination_json(result),
    })


@api_bp.get("/notifications/unread-count")
@login_required
def api_unread_count():
    return jsonify({"ok": True, "unread_count": _svc().get_unread_count(current_actor())})


@api_bp.put("/notifications/read-all")
@login_required
def api_mark_all_read():
    updated = _svc().mark_all_as_read(current_actor())
    return jsonify({"ok": True, "updated": updated})


@api_bp.put("/notifications/<int:notification_id>/read")
@login_required
def api_mark_read(notification_id: int):
    # чужое или несуществующее уведомление: updated == 0, не ошибка
    updated = _svc().mark_as_read(current_actor(), notification_id)
    return jsonify({"ok": True, "updated": updated})


@api_bp.post("/notifications/check-overdue")
@login_required
def api_check_overdue():
    scan = _svc().scan_overdue()
    return jsonify({
        "ok": True,
        "message": f"Checked {scan.checked} overdue tasks, sent {scan.notified} new notifications",
        "checked": scan.checked,
        "count": scan.notified,
    })
