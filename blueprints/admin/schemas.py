from __future__ import annotations
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from models import Role
from blueprints.core.schemas import ORMOut
from .services import user_status


class UserCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1, max_length=128)
    role: Role = Role.STUDENT


class UserUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    # длину пароля проверяет сервис
    password: Optional[str] = Field(default=None, max_length=128)
    role: Optional[Role] = None


class RoleIn(BaseModel):
    role: Role


class UserOut(ORMOut):
    id: int
    name: str
    email: str
    role: str
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def status(self) -> str:
        return user_status(self.last_login)


class AdminStatsOut(ORMOut):
    total_users: int
    students: int
    teachers: int
    admins: int
    total_classes: int
    total_tasks: int
    completed_tasks: int
    completion_rate: int
    active_students: int
    new_users_this_month: int
