from __future__ import annotations
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from models import TaskPriority, TaskStatus
from blueprints.core.schemas import ORMOut, UserBriefOut


class TaskCreateIn(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    due_date: Optional[date] = None
    priority: Optional[TaskPriority] = None
    assignee_id: Optional[int] = None
    class_id: Optional[int] = None


class TaskUpdateIn(BaseModel):
    # только присланные поля попадут в обновление (exclude_unset)
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    due_date: Optional[date] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assignee_id: Optional[int] = None
    class_id: Optional[int] = None


class TaskOut(ORMOut):
    id: int
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: str
    status: str
    created_by: int
    assignee_id: Optional[int] = None
    class_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    assignee: Optional[UserBriefOut] = None
    creator: Optional[UserBriefOut] = None


class TaskStatsOut(ORMOut):
    total_active: int
    pending_review: int
    todo: int
    in_progress: int
    completed: int
    total_tasks: int
    total_students: int
