from __future__ import annotations
from typing import Any, Iterable, Optional

from flask import current_app, request
from pydantic import BaseModel, ConfigDict

from domain.store import Page


class ORMOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserBriefOut(ORMOut):
    id: int
    name: str
    email: str
    role: Optional[str] = None


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def page_args(size_key: str) -> tuple[int, int]:
    """(page, limit) из query string; limit ограничен MAX_PAGE_SIZE."""
    page = max(1, _int_arg("page", 1))
    limit = _int_arg("limit", current_app.config.get(size_key, 10))
    limit = max(1, min(limit, current_app.config.get("MAX_PAGE_SIZE", 100)))
    return page, limit


def dump_all(schema: type[BaseModel], rows: Iterable[Any]) -> list[dict]:
    return [schema.model_validate(r).model_dump(mode="json") for r in rows]


def pagination_json(page: Page) -> dict:
    return PaginationOut(
        page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages,
    ).model_dump()
