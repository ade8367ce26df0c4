"""
Notification fan-out.

The one place domain operations announce events. A call has two parts
with different failure rules:

1. Persist the rows. This is the result of the call: if it fails the
   caller gets a PersistenceFailure and nothing was written.
2. Push ``notification:new`` over the delivery channel. Best effort only:
   any error is logged and dropped, the rows are already durable and the
   client will see them on its next fetch.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import PersistenceFailure
from app.crud import notifications as crud
from app.db.session import SessionFactory, SessionLocal, session_scope
from app.models.notification import Notification
from app.realtime.channel import DeliveryChannel

logger = logging.getLogger(__name__)

NEW_NOTIFICATION_EVENT = "notification:new"


class NotificationService:
    def __init__(
        self,
        session_factory: SessionFactory = SessionLocal,
        channel: Optional[DeliveryChannel] = None,
    ):
        self._session_factory = session_factory
        self._channel = channel

    def notify(
        self,
        user_ids: Optional[Iterable[int]],
        title: str,
        message: str,
        type: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> List[Notification]:
        """
        Store one row per distinct target, or a single NULL-target row when
        ``user_ids`` is None/empty (broadcast), then push.
        """
        targets = list(dict.fromkeys(uid for uid in (user_ids or ()) if uid is not None))
        broadcast = not targets

        try:
            with session_scope(self._session_factory) as db:
                rows = [
                    Notification(
                        user_id=uid,
                        title=title,
                        message=message,
                        type=type,
                        entity_type=entity_type,
                        entity_id=entity_id,
                    )
                    for uid in (targets or [None])
                ]
                db.add_all(rows)
                db.flush()
                payloads = [crud.to_payload(n) for n in rows]
        except SQLAlchemyError as exc:
            logger.exception("Failed to store %s notification for %s", type, "all users" if broadcast else targets)
            raise PersistenceFailure("Failed to create notification") from exc

        if broadcast:
            self._push_all(payloads[0])
        else:
            for payload in payloads:
                self._push_user(payload["user_id"], payload)

        return rows

    def already_announced(self, type: str, entity_type: str, entity_id: int, since: datetime) -> bool:
        with session_scope(self._session_factory) as db:
            return crud.exists_since(db, type, entity_type, entity_id, since)

    def _push_user(self, user_id: int, payload: dict) -> None:
        if self._channel is None:
            return
        try:
            self._channel.push_to_user(user_id, NEW_NOTIFICATION_EVENT, payload)
        except Exception:
            logger.exception("Real-time push of notification %s to user %s failed", payload["id"], user_id)

    def _push_all(self, payload: dict) -> None:
        if self._channel is None:
            return
        try:
            self._channel.push_to_all(NEW_NOTIFICATION_EVENT, payload)
        except Exception:
            logger.exception("Real-time broadcast of notification %s failed", payload["id"])
