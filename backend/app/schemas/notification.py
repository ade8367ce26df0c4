from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class NotificationItem(BaseModel):
    id: int
    user_id: Optional[int] = None
    title: str
    message: str
    type: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    is_read: bool
    created_at: datetime
    name: Optional[str] = None
    email: Optional[str] = None


class NotificationListResponse(BaseModel):
    success: bool = True
    data: List[NotificationItem]
