# blueprints/auth/routes.py
from __future__ import annotations
from functools import wraps
from typing import Callable, Optional

from flask import Blueprint, request, jsonify, abort
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from pydantic import BaseModel, Field, field_validator, ValidationError
from werkzeug.security import generate_password_hash

from extensions import db, login_manager, csrf
from domain.policy import Actor
from domain.store import SqlStore
from models import Role, User, utcnow

api_bp = Blueprint("auth_api", __name__)


@login_manager.user_loader
def load_user(uid: str) -> Optional[User]:
    try:
        return db.session.get(User, int(uid))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def _unauth():
    return jsonify({"error": "unauthorized"}), 401


def current_actor() -> Actor:
    return Actor.from_user(current_user)


# ---------- декоратор ролей ----------
def role_required(*roles: Role):
    allowed = {r.value for r in roles}

    def decorator(fn: Callable):
        @wraps(fn)
        @login_required
        def wrapper(*args, **kwargs):
            if getattr(current_user, "role", None) not in allowed:
                abort(403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


# ---------- схемы ----------
class RegisterIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str):
        if not v.strip():
            raise ValueError("name_required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def _norm_email(cls, v: str):
        return v.strip().lower()


def _user_json(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email, "role": user.role}


# ---------- API ----------
@api_bp.get("/csrf")
@csrf.exempt
def api_csrf():
    token = generate_csrf()
    resp = jsonify({"csrf": token})
    resp.set_cookie("csrf_token", token, samesite="Lax", httponly=False, path="/")
    return resp


@api_bp.post("/auth/register")
def api_register():
    payload = request.get_json(silent=True) or {}
    try:
        data = RegisterIn.model_validate(payload)
    except ValidationError as ve:
        return jsonify({"error": "validation_error", "detail": ve.errors(include_context=False)}), 422

    store = SqlStore(db.session)
    if store.get_user_by_email(data.email):
        return jsonify({"error": "email_taken"}), 409

    user = store.insert_user(
        name=data.name,
        email=data.email,
        role=Role.STUDENT.value,
        password_hash=generate_password_hash(data.password),
    )
    login_user(user, remember=True)
    return jsonify({"ok": True, "user": _user_json(user)}), 201


@api_bp.post("/auth/login")
def api_login():
    payload = request.get_json(silent=True) or request.form or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "missing_credentials"}), 400

    store = SqlStore(db.session)
    user = store.get_user_by_email(email)
    if not user or not user.password_hash or not user.check_password(password):
        return jsonify({"error": "invalid_credentials"}), 401

    store.update_user(user.id, {"last_login": utcnow()})
    login_user(user, remember=True)
    return jsonify({"ok": True, "user": _user_json(user)})


@api_bp.post("/auth/logout")
@login_required
def api_logout():
    logout_user()
    return jsonify({"ok": True})


@api_bp.get("/auth/me")
@login_required
def api_me():
    return jsonify({"ok": True, "user": _user_json(current_user)})
