from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"
    CLASS_JOINED = "class_joined"


def utcnow() -> datetime:
    # naive UTC: SQLite не хранит tzinfo
    return datetime.now(timezone.utc).replace(tzinfo=None)
