from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .transport import Transport

if TYPE_CHECKING:
    from .service import RelayService


@dataclass(eq=False)
class ConnectionState:
    """Relay-side state for one live connection.

    The transport handle is owned by the transport layer; everything else is
    owned by the relay and only mutated under the service state lock.
    """

    conn_id: int
    transport: Transport
    room: str | None = None
    alive: bool = True
    msg_count: int = 0
    window_start: float = 0.0
    connected_at: float = 0.0


class SessionManager:
    """
    Tracks every live connection, keyed by a stable connection id.

    This is the global connection set the heartbeat supervisor scans. Room
    membership is kept on each ConnectionState and mirrored by RoomManager.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("sigrelay.session")
        self.sessions: dict[int, ConnectionState] = {}
        self._ids = itertools.count(1)

    def on_connection_established(self, transport: Transport) -> ConnectionState:
        """
        Create state for a freshly accepted connection.

        Must be called with state lock held.
        """
        now = self.hub.clock()
        sess = ConnectionState(
            conn_id=next(self._ids),
            transport=transport,
            window_start=now,
            connected_at=now,
        )
        self.sessions[sess.conn_id] = sess
        return sess

    def on_connection_closed(self, conn_id: int) -> ConnectionState | None:
        """
        Forget a connection. Returns its state the first time, None after.

        Must be called with state lock held.
        """
        return self.sessions.pop(conn_id, None)

    def get_session(self, conn_id: int) -> ConnectionState | None:
        return self.sessions.get(conn_id)

    def mark_alive(self, conn_id: int) -> bool:
        sess = self.sessions.get(conn_id)
        if sess is None:
            return False
        sess.alive = True
        return True

    def clear_all(self) -> list[ConnectionState]:
        """
        Drop every session and return them for teardown.

        Must be called with state lock held.
        """
        sessions = list(self.sessions.values())
        self.sessions.clear()
        return sessions

    def get_stats(self) -> dict[str, Any]:
        total = len(self.sessions)
        in_room = sum(1 for s in self.sessions.values() if s.room is not None)
        return {"total": total, "in_room": in_room}
