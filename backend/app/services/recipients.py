"""
Recipient resolution.

Every "who hears about this" question goes through here so that the
conversation audience has one definition. Nothing is cached: a reply's
audience is recomputed from the thread at call time, so participants who
joined through an earlier reply are always included.
"""
from __future__ import annotations

from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select, union
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.crud.users import existing_user_ids
from app.models.message import Message
from app.models.message_recipient import MessageRecipient
from app.models.project import Project, ProjectMember
from app.models.user import Role, User


def audience(*groups: Optional[Iterable[int]], actor_id: Optional[int] = None) -> list[int]:
    """
    Union of user id groups, first-seen order, without duplicates.

    An actor never receives a notification about their own action, so
    ``actor_id`` is always dropped. ``None`` groups are skipped.
    """
    seen: dict[int, None] = {}
    for group in groups:
        for uid in group or ():
            if uid is None or uid == actor_id:
                continue
            seen.setdefault(uid, None)
    return list(seen)


def _coerce_user_id(value) -> int:
    if isinstance(value, bool):
        raise ValidationFailed("Invalid recipients")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationFailed("Invalid recipients")


class RecipientResolver:
    def __init__(self, db: Session):
        self.db = db

    # --- conversation audiences ---------------------------------------

    def resolve_send_audience(self, recipient_ids: Iterable, sender_id: Optional[int] = None) -> list[int]:
        """
        Validate the explicit audience of a new conversation.

        Ids are de-duplicated (first-seen order kept) and the sender is
        removed. Raises ValidationFailed when nothing is left or any id
        does not name an existing user.
        """
        ids = audience([_coerce_user_id(r) for r in recipient_ids or ()], actor_id=sender_id)
        if not ids:
            raise ValidationFailed("subject, body & recipients required")

        missing = set(ids) - existing_user_ids(self.db, ids)
        if missing:
            raise ValidationFailed("Invalid recipients", details={"unknown": sorted(missing)})

        return ids

    def resolve_reply_audience(self, thread_id: int, replying_user_id: int) -> list[int]:
        """Everyone who ever sent or received a message in the thread, minus the replier."""
        senders = select(Message.sender_id.label("user_id")).where(Message.thread_id == thread_id)
        recipients = (
            select(MessageRecipient.recipient_id.label("user_id"))
            .join(Message, Message.id == MessageRecipient.message_id)
            .where(Message.thread_id == thread_id)
        )
        participants = union(senders, recipients).subquery()

        stmt = (
            select(participants.c.user_id)
            .where(participants.c.user_id != replying_user_id)
            .order_by(participants.c.user_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    # --- domain audiences ---------------------------------------------

    def project_member_ids(self, project_id: int) -> list[int]:
        stmt = (
            select(ProjectMember.user_id)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def project_creator_id(self, project_id: int) -> Optional[int]:
        return self.db.execute(
            select(Project.created_by).where(Project.id == project_id)
        ).scalar_one_or_none()

    def super_admin_ids(self) -> list[int]:
        stmt = (
            select(User.id)
            .join(Role, Role.id == User.role_id)
            .where(Role.name == settings.super_admin_role)
            .order_by(User.id)
        )
        return list(self.db.execute(stmt).scalars().all())

    def projects_starting_on(self, day: date) -> list[Project]:
        stmt = (
            select(Project)
            .where(Project.start_date == day, Project.status != "Cancelled")
            .order_by(Project.id)
        )
        return list(self.db.execute(stmt).scalars().all())
