# backend/app/crud/mails.py
"""
Read-side queries for mail views.

The deletion flags are list filters only: the inbox hides threads the user
deleted as a recipient, the sent view hides messages the user deleted as a
sender. Thread detail always shows the whole reply chain.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.models.attachment import Attachment
from app.models.message import Message
from app.models.message_recipient import MessageRecipient
from app.models.thread import Thread
from app.models.user import User


def _attachment_dict(a: Attachment) -> dict:
    return {
        "id": a.id,
        "original_name": a.original_name,
        "file_name": a.file_name,
        "file_path": a.file_path,
        "mime_type": a.mime_type,
        "file_size": a.file_size,
    }


def _attachments_by_message(db: Session, message_ids: Iterable[int]) -> dict[int, list[dict]]:
    ids = list(set(message_ids))
    grouped: dict[int, list[dict]] = defaultdict(list)
    if not ids:
        return grouped
    rows = db.execute(
        select(Attachment).where(Attachment.message_id.in_(ids)).order_by(Attachment.id)
    ).scalars()
    for a in rows:
        grouped[a.message_id].append(_attachment_dict(a))
    return grouped


def _thread_messages(db: Session, thread_ids: Iterable[int]) -> dict[int, list[tuple[Message, User]]]:
    """All messages of the given threads, oldest first, with their senders."""
    ids = list(set(thread_ids))
    grouped: dict[int, list[tuple[Message, User]]] = defaultdict(list)
    if not ids:
        return grouped
    rows = db.execute(
        select(Message, User)
        .join(User, User.id == Message.sender_id)
        .where(Message.thread_id.in_(ids))
        .order_by(Message.created_at.asc(), Message.id.asc())
    ).all()
    for msg, sender in rows:
        grouped[msg.thread_id].append((msg, sender))
    return grouped


def list_inbox(db: Session, user_id: int, preview_length: int = 120) -> list[dict]:
    """One entry per thread the user received (and did not hide), newest activity first."""
    thread_ids = db.execute(
        select(Message.thread_id)
        .join(MessageRecipient, MessageRecipient.message_id == Message.id)
        .where(MessageRecipient.recipient_id == user_id, MessageRecipient.is_deleted.is_(False))
        .distinct()
    ).scalars().all()
    if not thread_ids:
        return []

    by_thread = _thread_messages(db, thread_ids)
    latest = {tid: msgs[-1] for tid, msgs in by_thread.items() if msgs}

    latest_ids = [msg.id for msg, _ in latest.values()]
    read_state = dict(
        db.execute(
            select(MessageRecipient.message_id, MessageRecipient.is_read).where(
                MessageRecipient.message_id.in_(latest_ids),
                MessageRecipient.recipient_id == user_id,
            )
        ).all()
    )
    attachments = _attachments_by_message(db, latest_ids)

    items = []
    for tid, (msg, sender) in latest.items():
        chain = by_thread[tid]
        items.append({
            "id": msg.id,
            "thread_id": tid,
            "subject": msg.subject,
            "preview": msg.body[:preview_length],
            "created_at": msg.created_at,
            "sender_id": sender.id,
            "sender_name": sender.name,
            "sender_email": sender.email,
            # the latest message may be the user's own reply
            "is_read": read_state.get(msg.id, True),
            "attachments_count": len(attachments[msg.id]),
            "attachments": attachments[msg.id],
            "has_replies": len(chain) > 1,
            "replies_count": max(len(chain) - 1, 0),
            "replies": [
                {
                    "id": m.id,
                    "body": m.body,
                    "created_at": m.created_at,
                    "sender_id": s.id,
                    "sender_name": s.name,
                }
                for m, s in chain
            ],
        })

    items.sort(key=lambda i: (i["created_at"], i["id"]), reverse=True)
    return items


def list_sent(db: Session, user_id: int, preview_length: int = 120) -> list[dict]:
    msgs = db.execute(
        select(Message)
        .where(Message.sender_id == user_id, Message.sender_deleted.is_(False))
        .order_by(Message.created_at.desc(), Message.id.desc())
    ).scalars().all()
    if not msgs:
        return []

    ids = [m.id for m in msgs]
    recipients: dict[int, list[dict]] = defaultdict(list)
    rows = db.execute(
        select(MessageRecipient.message_id, User.id, User.name, User.email)
        .join(User, User.id == MessageRecipient.recipient_id)
        .where(MessageRecipient.message_id.in_(ids))
        .order_by(User.name.asc(), User.id.asc())
    ).all()
    for message_id, uid, name, email in rows:
        recipients[message_id].append({"id": uid, "name": name, "email": email})

    attachments = _attachments_by_message(db, ids)

    return [
        {
            "id": m.id,
            "thread_id": m.thread_id,
            "subject": m.subject,
            "preview": m.body[:preview_length],
            "created_at": m.created_at,
            "recipients": ", ".join(r["name"] for r in recipients[m.id]),
            "recipient_list": recipients[m.id],
            "attachments_count": len(attachments[m.id]),
            "attachments": attachments[m.id],
        }
        for m in msgs
    ]


def get_thread_detail(db: Session, message_id: int) -> dict:
    """The full conversation a message belongs to, regardless of deletion flags."""
    msg = db.get(Message, message_id)
    if msg is None:
        raise NotFound("Mail not found")

    thread = db.get(Thread, msg.thread_id)
    chain = _thread_messages(db, [msg.thread_id])[msg.thread_id]
    attachments = _attachments_by_message(db, [m.id for m, _ in chain])

    return {
        "thread_id": msg.thread_id,
        "subject": thread.subject if thread else msg.subject,
        "mails": [
            {
                "id": m.id,
                "subject": m.subject,
                "body": m.body,
                "created_at": m.created_at,
                "sender_id": s.id,
                "sender_name": s.name,
                "sender_email": s.email,
                "attachments": attachments[m.id],
            }
            for m, s in chain
        ],
    }


def list_all_threads(db: Session) -> list[dict]:
    """Administrative view: every thread with every message, recipient state and attachment."""
    threads = db.execute(
        select(Thread, User)
        .join(User, User.id == Thread.created_by)
        .order_by(Thread.created_at.desc(), Thread.id.desc())
    ).all()
    if not threads:
        return []

    by_thread = _thread_messages(db, [t.id for t, _ in threads])
    message_ids = [m.id for msgs in by_thread.values() for m, _ in msgs]

    recipients: dict[int, list[dict]] = defaultdict(list)
    if message_ids:
        rows = db.execute(
            select(MessageRecipient, User)
            .join(User, User.id == MessageRecipient.recipient_id)
            .where(MessageRecipient.message_id.in_(message_ids))
            .order_by(User.id)
        ).all()
        for mr, u in rows:
            recipients[mr.message_id].append({
                "recipient_id": u.id,
                "recipient_name": u.name,
                "recipient_email": u.email,
                "is_read": mr.is_read,
                "read_at": mr.read_at,
                "is_deleted": mr.is_deleted,
            })
    attachments = _attachments_by_message(db, message_ids)

    return [
        {
            "thread_id": t.id,
            "subject": t.subject,
            "created_at": t.created_at,
            "created_by": {"id": creator.id, "name": creator.name},
            "mails": [
                {
                    "id": m.id,
                    "subject": m.subject,
                    "body": m.body,
                    "created_at": m.created_at,
                    "sender_deleted": m.sender_deleted,
                    "sender_id": s.id,
                    "sender_name": s.name,
                    "sender_email": s.email,
                    "recipients": recipients[m.id],
                    "attachments": attachments[m.id],
                }
                for m, s in by_thread[t.id]
            ],
        }
        for t, creator in threads
    ]
