from __future__ import annotations


class DomainError(Exception):
    """Базовая ошибка сервисов.

    ``code`` уходит в JSON-ответ как машинный ключ,
    ``http_status`` — код ответа транспортного слоя.
    """
    code = "error"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(DomainError):
    code = "validation_error"
    http_status = 400


class NotFoundError(DomainError):
    # также «существует, но не виден» — не раскрываем существование
    code = "not_found"
    http_status = 404


class ForbiddenError(DomainError):
    code = "forbidden"
    http_status = 403


class ConflictError(DomainError):
    code = "conflict"
    http_status = 409


class StoreError(DomainError):
    """Сбой хранилища. Подробности наружу не отдаются."""
    code = "internal_error"
    http_status = 500
