"""Room registry for the relay.

Maps room ids to the connection ids currently in them. A room exists only
while it has at least one member: it is created by the first JOIN and deleted
when its last member leaves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .codec import encode
from .constants import T_JOINED, T_PEER_JOINED
from .envelope import make_message

if TYPE_CHECKING:
    from .messages import Outgoing
    from .service import RelayService
    from .session import ConnectionState


class RoomManager:
    """Manages room membership and fanout. All methods expect the state lock held."""

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("sigrelay.rooms")
        self.rooms: dict[str, set[int]] = {}

    def clear_all(self) -> None:
        self.rooms.clear()

    def get_room_members(self, room: str) -> set[int]:
        """Get the set of connection ids currently in a room."""
        return self.rooms.get(room, set())

    def _peers(self, room: str, exclude: int) -> list[ConnectionState]:
        peers: list[ConnectionState] = []
        for conn_id in self.rooms.get(room, ()):
            if conn_id == exclude:
                continue
            peer = self.hub.session_manager.get_session(conn_id)
            if peer is not None and peer.transport.is_open():
                peers.append(peer)
        return peers

    def join(self, sess: ConnectionState, room: str, outgoing: Outgoing) -> None:
        """Add ``sess`` to ``room``, acknowledge it and notify existing peers."""
        if not room:
            raise ValueError("room name must not be empty")

        if sess.room is not None and sess.room != room:
            self.leave(sess)

        self.rooms.setdefault(room, set()).add(sess.conn_id)
        sess.room = room
        self.hub.stats_manager.inc("joins")

        # Acknowledge to the joiner first, then let existing peers know so
        # they can resend their offer.
        self.hub.message_helper.queue_message(outgoing, sess, T_JOINED, room=room)
        peers = self._peers(room, sess.conn_id)
        if peers:
            notice = encode(make_message(T_PEER_JOINED, room=room))
            for peer in peers:
                self.hub.message_helper.queue_payload(outgoing, peer, notice)

        self.log.info(
            "Joined conn=%s room=%r members=%s",
            sess.conn_id,
            room,
            len(self.rooms[room]),
        )

    def leave(self, sess: ConnectionState) -> str | None:
        """Remove ``sess`` from its room. Returns the room left, if any."""
        room = sess.room
        if room is None:
            return None
        sess.room = None

        members = self.rooms.get(room)
        if members is None:
            return None
        members.discard(sess.conn_id)
        if not members:
            self.rooms.pop(room, None)
            self.log.debug("Room %r empty; removed", room)

        self.hub.stats_manager.inc("leaves")
        return room

    def broadcast(self, sess: ConnectionState, msg: Any, outgoing: Outgoing) -> int:
        """Queue ``msg`` for every other open member of the sender's room."""
        room = sess.room
        if room is None or room not in self.rooms:
            return 0

        peers = self._peers(room, sess.conn_id)
        if not peers:
            return 0

        payload = encode(msg)
        for peer in peers:
            self.hub.message_helper.queue_payload(outgoing, peer, payload)
        self.hub.stats_manager.inc("msgs_forwarded", len(peers))
        return len(peers)

    def get_stats(self) -> dict[str, Any]:
        """Get room statistics for relay stats."""
        rooms_total = len(self.rooms)
        memberships = sum(len(v) for v in self.rooms.values())
        top_rooms = sorted(
            ((room, len(members)) for room, members in self.rooms.items()),
            key=lambda x: (-x[1], x[0]),
        )[:5]
        return {
            "rooms_total": rooms_total,
            "memberships": memberships,
            "top_rooms": top_rooms,
        }
