"""
Threaded internal mail.

Each write operation follows the same shape:

1. validate input (no transaction yet, no side effects on failure);
2. run every row write of the operation inside one ``session_scope``;
   any failure rolls the whole unit back and surfaces as an opaque
   PersistenceFailure;
3. only after the commit, push ``mail:*`` events over the delivery
   channel. Push errors are logged and never reach the caller.

Deleting is view-hiding only: flags on the recipient rows and on the
sender's messages, never a row removal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import select

from app.core.config import settings
from app.core.errors import MailError, NotFound, PersistenceFailure, ValidationFailed
from app.db.base import utcnow
from app.db.session import SessionFactory, SessionLocal, session_scope
from app.models.attachment import Attachment
from app.models.message import Message
from app.models.message_recipient import MessageRecipient
from app.models.thread import Thread
from app.models.user import User
from app.realtime.channel import DeliveryChannel
from app.services.recipients import RecipientResolver
from app.storage.uploads import StoredFile

logger = logging.getLogger(__name__)

EVENT_RECEIVED = "mail:received"
EVENT_SENT = "mail:sent"
EVENT_REPLIED = "mail:replied"
EVENT_READ = "mail:read"
EVENT_UPDATE = "mail:update"


@dataclass
class DeliveryResult:
    message_id: int
    thread_id: int
    recipient_ids: List[int] = field(default_factory=list)


@dataclass
class DeleteResult:
    thread_id: int
    hidden_received: int
    hidden_sent: int


class MessagingEngine:
    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        channel: Optional[DeliveryChannel] = None,
        preview_length: int = settings.preview_length,
    ):
        self._session_factory = session_factory
        self._channel = channel
        self._preview_length = preview_length

    # --- send ---------------------------------------------------------

    def send(
        self,
        sender_id: int,
        subject: str,
        body: str,
        recipient_ids: Iterable[Any],
        attachments: Sequence[StoredFile] = (),
    ) -> DeliveryResult:
        """Start a new thread with its first message."""
        subject = (subject or "").strip()
        recipient_ids = list(recipient_ids or [])
        if not subject or not body or not body.strip() or not recipient_ids:
            raise ValidationFailed("subject, body & recipients required")

        try:
            with session_scope(self._session_factory) as db:
                audience = RecipientResolver(db).resolve_send_audience(recipient_ids, sender_id=sender_id)

                thread = Thread(subject=subject, created_by=sender_id)
                db.add(thread)
                db.flush()

                msg = Message(thread_id=thread.id, sender_id=sender_id, subject=thread.subject, body=body)
                db.add(msg)
                db.flush()

                self._add_attachments(db, msg.id, attachments)
                db.add_all(MessageRecipient(message_id=msg.id, recipient_id=uid) for uid in audience)
                db.flush()

                sender = db.get(User, sender_id)
                result = DeliveryResult(message_id=msg.id, thread_id=thread.id, recipient_ids=audience)
                received = {
                    "mail_id": msg.id,
                    "thread_id": thread.id,
                    "sender_id": sender_id,
                    "sender_name": sender.name if sender else None,
                    "sender_email": sender.email if sender else None,
                    "recipient_ids": list(audience),
                    "subject": subject,
                    "preview": self._preview(body),
                    "created_at": msg.created_at,
                }
        except MailError:
            raise
        except Exception as exc:
            logger.exception("Mail sending failed (sender=%s)", sender_id)
            raise PersistenceFailure("Mail sending failed") from exc

        ref = self._ref(result, sender_id)
        self._emit(result.recipient_ids, EVENT_RECEIVED, received)
        self._emit([sender_id], EVENT_SENT, ref)
        # coarse event for clients that only listen to mail:update
        self._emit(result.recipient_ids, EVENT_UPDATE, {**ref, "action": "received"})
        self._emit([sender_id], EVENT_UPDATE, {**ref, "action": "sent"})

        logger.info("Mail %s sent in thread %s to %d recipient(s)", result.message_id, result.thread_id, len(audience))
        return result

    # --- reply --------------------------------------------------------

    def reply(
        self,
        sender_id: int,
        parent_message_id: int,
        body: str,
        attachments: Sequence[StoredFile] = (),
    ) -> DeliveryResult:
        """Append a message to the parent's thread, addressed to every past participant."""
        if not body or not body.strip():
            raise ValidationFailed("Body is required")

        try:
            with session_scope(self._session_factory) as db:
                parent = db.get(Message, parent_message_id)
                thread = db.get(Thread, parent.thread_id) if parent is not None else None
                if thread is None:
                    raise NotFound("Mail not found")

                msg = Message(thread_id=thread.id, sender_id=sender_id, subject=thread.subject, body=body)
                db.add(msg)
                db.flush()

                self._add_attachments(db, msg.id, attachments)

                audience = RecipientResolver(db).resolve_reply_audience(thread.id, sender_id)
                db.add_all(MessageRecipient(message_id=msg.id, recipient_id=uid) for uid in audience)
                db.flush()

                sender = db.get(User, sender_id)
                result = DeliveryResult(message_id=msg.id, thread_id=thread.id, recipient_ids=audience)
                replied = {
                    "mail_id": msg.id,
                    "thread_id": thread.id,
                    "reply_from": sender_id,
                    "reply_from_name": sender.name if sender else None,
                    "recipient_ids": list(audience),
                    "preview": self._preview(body),
                    "created_at": msg.created_at,
                }
        except MailError:
            raise
        except Exception as exc:
            logger.exception("Reply failed (sender=%s, parent=%s)", sender_id, parent_message_id)
            raise PersistenceFailure("Reply failed") from exc

        ref = self._ref(result, sender_id)
        self._emit(result.recipient_ids, EVENT_REPLIED, replied)
        self._emit([sender_id], EVENT_REPLIED, {**ref, "self": True})
        self._emit([sender_id, *result.recipient_ids], EVENT_UPDATE, {**ref, "action": "replied"})

        logger.info("Reply %s in thread %s to %d recipient(s)", result.message_id, result.thread_id, len(audience))
        return result

    # --- read / delete ------------------------------------------------

    def mark_read(self, user_id: int, message_id: int) -> bool:
        """
        Mark the user's copy of a message read. Returns False (and pushes
        nothing) when the user is not a recipient of that message.
        """
        try:
            with session_scope(self._session_factory) as db:
                row = db.get(MessageRecipient, (message_id, user_id))
                if row is None:
                    return False
                if not row.is_read:
                    row.mark_read(utcnow())
                read = {
                    "mail_id": message_id,
                    "thread_id": row.message.thread_id,
                    "user_id": user_id,
                    "read_at": row.read_at,
                }
        except Exception as exc:
            logger.exception("Mark read failed (user=%s, mail=%s)", user_id, message_id)
            raise PersistenceFailure("Failed to mark mail as read") from exc

        self._emit([user_id], EVENT_READ, read)
        return True

    def delete_conversation(self, user_id: int, thread_id: int) -> DeleteResult:
        """Hide a thread from one user's inbox and sent views. Idempotent."""
        try:
            with session_scope(self._session_factory) as db:
                if db.get(Thread, thread_id) is None:
                    raise NotFound("Thread not found")

                received = db.execute(
                    select(MessageRecipient)
                    .join(Message, Message.id == MessageRecipient.message_id)
                    .where(Message.thread_id == thread_id, MessageRecipient.recipient_id == user_id)
                ).scalars().all()
                for row in received:
                    row.mark_recipient_deleted()

                sent = db.execute(
                    select(Message).where(Message.thread_id == thread_id, Message.sender_id == user_id)
                ).scalars().all()
                for msg in sent:
                    msg.mark_sender_deleted()

                result = DeleteResult(thread_id=thread_id, hidden_received=len(received), hidden_sent=len(sent))
        except MailError:
            raise
        except Exception as exc:
            logger.exception("Delete failed (user=%s, thread=%s)", user_id, thread_id)
            raise PersistenceFailure("Delete failed") from exc

        # keeps the user's other open sessions in step
        self._emit([user_id], EVENT_UPDATE, {"thread_id": thread_id, "user_id": user_id, "action": "deleted"})
        return result

    # --- helpers ------------------------------------------------------

    @staticmethod
    def _add_attachments(db, message_id: int, attachments: Sequence[StoredFile]) -> None:
        if not attachments:
            return
        db.add_all(
            Attachment(
                message_id=message_id,
                original_name=a.original_name,
                file_name=a.file_name,
                file_path=a.file_path,
                mime_type=a.mime_type,
                file_size=a.file_size,
            )
            for a in attachments
        )
        db.flush()

    @staticmethod
    def _ref(result: DeliveryResult, sender_id: int) -> dict:
        return {
            "mail_id": result.message_id,
            "thread_id": result.thread_id,
            "sender_id": sender_id,
            "recipient_ids": list(result.recipient_ids),
        }

    def _preview(self, body: str) -> str:
        return body[: self._preview_length]

    def _emit(self, user_ids: Iterable[int], event: str, payload: dict) -> None:
        if self._channel is None:
            return
        try:
            self._channel.push_to_users(user_ids, event, payload)
        except Exception:
            logger.exception("Real-time push of %s failed", event)
