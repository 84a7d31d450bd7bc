from __future__ import annotations
import json, logging
from datetime import datetime, timezone

from flask import g, jsonify, request
from flask_login import current_user
from flask_wtf.csrf import CSRFError
from pydantic import ValidationError as SchemaError
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers.response import Response

from domain.errors import DomainError, StoreError
from . import bp

log = logging.getLogger(__name__)


def _utc_iso(timespec: str = "milliseconds") -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": _utc_iso(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in ("event", "path", "method", "status", "duration_ms", "user_id"):
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _setup_structured_logging(app):
    logger = app.logger
    has_json = any(
        isinstance(h, logging.StreamHandler)
        and isinstance(getattr(h, "formatter", None), JSONFormatter)
        for h in logger.handlers
    )
    if not has_json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)


def _json_err(code: str, http: int, message: str | None = None):
    body = {"error": code}
    if message:
        body["message"] = message
    return jsonify(body), http


@bp.before_app_request
def _start_timer():
    g._req_start = datetime.now(timezone.utc)


@bp.after_app_request
def _log_request(response: Response):
    try:
        duration_ms = int((datetime.now(timezone.utc) - g._req_start).total_seconds() * 1000)
    except AttributeError:
        duration_ms = None
    extra = {
        "event": "http_request",
        "path": request.path,
        "method": request.method,
        "status": response.status_code,
        "duration_ms": duration_ms,
    }
    if current_user.is_authenticated:
        extra["user_id"] = current_user.id
    # логгер уже настроен в _on_register
    logging.getLogger("app.requests").info("request handled", extra=extra)
    return response


@bp.record_once
def _on_register(state):
    _setup_structured_logging(state.app)


# ---------- ошибки → JSON ----------
@bp.app_errorhandler(DomainError)
def _domain_error(e: DomainError):
    if isinstance(e, StoreError):
        # причину только в лог, наружу — непрозрачная ошибка
        log.error("store failure on %s %s: %s", request.method, request.path, e, exc_info=e.__cause__)
        return _json_err(e.code, e.http_status)
    return _json_err(e.code, e.http_status, e.message)


@bp.app_errorhandler(SchemaError)
def _schema_error(e: SchemaError):
    return jsonify({"error": "validation_error", "detail": e.errors(include_context=False, include_url=False)}), 422


@bp.app_errorhandler(CSRFError)
def _csrf_error(e: CSRFError):
    return _json_err("csrf_failed", 400, e.description)


@bp.app_errorhandler(HTTPException)
def _http_error(e: HTTPException):
    code = (e.name or "error").lower().replace(" ", "_")
    return _json_err(code, e.code or 500)


@bp.get("/health")
def health():
    return jsonify({
        "status": "ok",
        "ts": _utc_iso("seconds"),
    })
