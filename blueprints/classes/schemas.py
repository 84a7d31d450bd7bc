from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from blueprints.core.schemas import ORMOut, UserBriefOut


class ClassCreateIn(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)


class ClassUpdateIn(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)


class JoinIn(BaseModel):
    invite_code: Optional[str] = Field(None, max_length=64)


class ClassOut(ORMOut):
    id: int
    name: str
    description: Optional[str] = None
    invite_code: str
    teacher_id: int
    created_at: datetime
    updated_at: datetime


class ClassSummaryOut(ClassOut):
    member_count: int


class MemberOut(ORMOut):
    user_id: int
    joined_at: datetime
    user: UserBriefOut


class ClassDetailOut(ClassOut):
    members: list[MemberOut]
