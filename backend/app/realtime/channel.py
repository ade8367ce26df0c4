"""
Per-user real-time delivery channel.

Keeps a registry of open connections keyed by user id (a user can have
several at once: two tabs, phone + laptop). Pushes are fire-and-forget:
no acknowledgement, no retry, no queue for offline users. A user who is
not connected simply gets nothing and picks the state up from the
database on their next fetch.

The registry is the only long-lived shared mutable state in the service.
It is mutated by connect/disconnect only and guarded by a lock; pushes
take a snapshot under the lock and send outside it.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from app.core.errors import AuthenticationFailed
from app.core.security import user_id_from_token

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """One physical session (socket) as seen by the registry."""

    sid: str

    def send(self, event: str, payload: Any) -> None: ...

    def close(self) -> None: ...


Authenticator = Callable[[Optional[str]], int]


class DeliveryChannel:
    def __init__(self, authenticator: Authenticator = user_id_from_token):
        self._authenticate = authenticator
        self._by_user: Dict[int, Dict[str, Connection]] = {}
        self._owner: Dict[str, int] = {}
        self._lock = threading.RLock()

    # --- registry -----------------------------------------------------

    def connect(self, connection: Connection, credential: Optional[str]) -> int:
        """
        Authenticate a new connection and subscribe it to its user's channel.

        Returns the user id. On a bad credential the connection is closed
        and AuthenticationFailed is raised.
        """
        try:
            user_id = self._authenticate(credential)
        except AuthenticationFailed:
            logger.info("Rejected real-time connection %s", connection.sid)
            self._close_quietly(connection)
            raise

        with self._lock:
            previous = self._owner.get(connection.sid)
            if previous is not None and previous != user_id:
                self._by_user.get(previous, {}).pop(connection.sid, None)
            self._by_user.setdefault(user_id, {})[connection.sid] = connection
            self._owner[connection.sid] = user_id

        logger.info("Connection %s joined channel user_%s", connection.sid, user_id)
        return user_id

    def disconnect(self, connection) -> None:
        """Drop a connection (object or sid). Unknown connections are ignored."""
        sid = connection if isinstance(connection, str) else connection.sid

        with self._lock:
            user_id = self._owner.pop(sid, None)
            if user_id is None:
                return
            sessions = self._by_user.get(user_id)
            if sessions is not None:
                sessions.pop(sid, None)
                if not sessions:
                    del self._by_user[user_id]

        logger.info("Connection %s left channel user_%s", sid, user_id)

    def connections_for(self, user_id: int) -> List[Connection]:
        with self._lock:
            return list(self._by_user.get(user_id, {}).values())

    def online_user_ids(self) -> List[int]:
        with self._lock:
            return list(self._by_user)

    def close(self) -> None:
        """Shutdown: close every open connection and empty the registry."""
        with self._lock:
            connections = [c for sessions in self._by_user.values() for c in sessions.values()]
            self._by_user.clear()
            self._owner.clear()
        for conn in connections:
            self._close_quietly(conn)

    # --- pushes -------------------------------------------------------

    def push_to_user(self, user_id: int, event: str, payload: Any) -> int:
        """Send to every open session of ``user_id``. Returns how many sends succeeded."""
        return self._deliver(self.connections_for(user_id), event, payload)

    def push_to_users(self, user_ids: Iterable[int], event: str, payload: Any) -> int:
        return sum(self.push_to_user(uid, event, payload) for uid in user_ids)

    def push_to_all(self, event: str, payload: Any) -> int:
        with self._lock:
            connections = [c for sessions in self._by_user.values() for c in sessions.values()]
        return self._deliver(connections, event, payload)

    def _deliver(self, connections: List[Connection], event: str, payload: Any) -> int:
        delivered = 0
        for conn in connections:
            try:
                conn.send(event, payload)
                delivered += 1
            except Exception:
                logger.warning("Push of %s to connection %s failed", event, conn.sid, exc_info=True)
        return delivered

    @staticmethod
    def _close_quietly(connection: Connection) -> None:
        try:
            connection.close()
        except Exception:
            logger.debug("Closing connection %s failed", connection.sid, exc_info=True)
