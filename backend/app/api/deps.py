from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.core.security import get_current_user
from app.db.session import SessionFactory, get_session_factory
from app.models.user import User
from app.realtime.channel import DeliveryChannel
from app.services.messaging import MessagingEngine


def get_channel(request: Request) -> Optional[DeliveryChannel]:
    return getattr(request.app.state, "channel", None)


def get_messaging_engine(
    factory: SessionFactory = Depends(get_session_factory),
    channel: Optional[DeliveryChannel] = Depends(get_channel),
) -> MessagingEngine:
    return MessagingEngine(factory, channel, preview_length=settings.preview_length)


def is_super_admin(user: User) -> bool:
    return user.role_name == settings.super_admin_role


def require_super_admin(current_user: User = Depends(get_current_user)) -> User:
    if not is_super_admin(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return current_user
