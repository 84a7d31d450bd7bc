from __future__ import annotations
from datetime import datetime
from typing import Optional

from blueprints.core.schemas import ORMOut


class NotificationOut(ORMOut):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    task_id: Optional[int] = None
    class_id: Optional[int] = None
    is_read: bool
    created_at: datetime
