from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import K_ROOM, K_TYPE, T_JOIN
from .util import normalize_room

if TYPE_CHECKING:
    from .messages import Outgoing
    from .service import RelayService
    from .session import ConnectionState


class MessageRouter:
    """
    Decides what an inbound message does.

    JOIN with a non-empty string room joins that room. Anything else is
    fanned out verbatim to the rest of the sender's room, or dropped if the
    sender has not joined one. Only ``type`` and, for JOIN, ``room`` are
    ever looked at.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("sigrelay.router")

    def route_message(
        self,
        sess: ConnectionState,
        data: bytes | str,
        outgoing: Outgoing,
    ) -> None:
        """
        Main entry point for an inbound frame.

        This method should be called with the state lock held.
        """
        msg = self.hub.admission.accept(sess, data)
        if msg is None:
            return

        t = msg.get(K_TYPE)
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("RX conn=%s t=%r room=%r", sess.conn_id, t, sess.room)

        if t == T_JOIN:
            self._handle_join(sess, msg, outgoing)
        else:
            self._handle_forward(sess, msg, outgoing)

    def _handle_join(self, sess: ConnectionState, msg: dict, outgoing: Outgoing) -> None:
        room = normalize_room(msg.get(K_ROOM))
        if room is None:
            self.hub.stats_manager.inc("joins_bad")
            self.log.debug("Ignoring JOIN without room conn=%s", sess.conn_id)
            return
        self.hub.room_manager.join(sess, room, outgoing)

    def _handle_forward(self, sess: ConnectionState, msg: dict, outgoing: Outgoing) -> None:
        if sess.room is None:
            self.hub.stats_manager.inc("unrouted")
            return
        self.hub.room_manager.broadcast(sess, msg, outgoing)
