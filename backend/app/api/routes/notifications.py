from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import is_super_admin
from app.core.config import settings
from app.core.security import get_current_user
from app.crud import notifications as crud
from app.db.session import get_db
from app.models.user import User
from app.schemas.message import StatusResponse
from app.schemas.notification import NotificationListResponse


router = APIRouter(prefix='/notifications', tags=['notifications'])


@router.get('', response_model=NotificationListResponse)
def get_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Own and broadcast notifications; super admins see everything."""
    rows = crud.list_for_user(
        db,
        current_user.id,
        see_all=is_super_admin(current_user),
        limit=settings.notifications_page_size,
    )
    return NotificationListResponse(data=rows)


@router.put('/{notification_id}/read', response_model=StatusResponse)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    crud.mark_read(db, notification_id, None if is_super_admin(current_user) else current_user.id)
    db.commit()
    return StatusResponse()
