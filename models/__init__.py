from .common import Role, TaskStatus, TaskPriority, NotificationType, utcnow
from .user import User
from .classroom import ClassRoom, ClassMember
from .task import Task
from .notification import Notification

__all__ = [
    "Role", "TaskStatus", "TaskPriority", "NotificationType", "utcnow",
    "User", "ClassRoom", "ClassMember", "Task", "Notification",
]
