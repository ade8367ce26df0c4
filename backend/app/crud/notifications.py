# backend/app/crud/notifications.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.models.user import User


def list_for_user(db: Session, user_id: int, see_all: bool = False, limit: int = 50) -> list[dict]:
    """
    Newest notifications visible to a user: their own rows plus broadcasts.
    ``see_all`` (super admins) lifts the filter.
    """
    stmt = (
        select(Notification, User.name, User.email)
        .outerjoin(User, User.id == Notification.user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    if not see_all:
        stmt = stmt.where(or_(Notification.user_id == user_id, Notification.user_id.is_(None)))

    return [
        {**to_payload(n), "name": name, "email": email}
        for n, name, email in db.execute(stmt).all()
    ]


def mark_read(db: Session, notification_id: int, user_id: int | None = None) -> int:
    """
    Flip the read flag. With ``user_id`` only that user's rows and
    broadcasts match. Returns affected rows; zero is not an error.
    """
    stmt = select(Notification).where(Notification.id == notification_id)
    if user_id is not None:
        stmt = stmt.where(or_(Notification.user_id == user_id, Notification.user_id.is_(None)))
    n = db.execute(stmt).scalar_one_or_none()
    if n is None:
        return 0
    n.mark_read()
    return 1


def exists_since(db: Session, type: str, entity_type: str, entity_id: int, since: datetime) -> bool:
    stmt = select(Notification.id).where(
        Notification.type == type,
        Notification.entity_type == entity_type,
        Notification.entity_id == entity_id,
        Notification.created_at >= since,
    )
    return db.execute(stmt.limit(1)).first() is not None


def to_payload(n: Notification) -> dict:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "title": n.title,
        "message": n.message,
        "type": n.type,
        "entity_type": n.entity_type,
        "entity_id": n.entity_id,
        "is_read": n.is_read,
        "created_at": n.created_at,
    }
