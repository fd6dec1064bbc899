"""Outbound message queueing for the relay."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from websockets.exceptions import ConnectionClosed

from .codec import encode
from .envelope import make_message
from .transport import SendError

if TYPE_CHECKING:
    from .service import RelayService
    from .session import ConnectionState

Outgoing = list[tuple["ConnectionState", str]]


class MessageHelper:
    """
    Builds and delivers outbound frames.

    Handlers running under the state lock only queue ``(session, payload)``
    pairs onto an outgoing list; :meth:`send_outgoing` performs the actual
    transport sends after the lock is released. Each destination is attempted
    independently.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("sigrelay.messages")

    def queue_payload(self, outgoing: Outgoing, sess: ConnectionState, payload: str) -> None:
        outgoing.append((sess, payload))

    def queue_message(
        self,
        outgoing: Outgoing,
        sess: ConnectionState,
        msg_type: str,
        *,
        room: str | None = None,
    ) -> None:
        self.queue_payload(outgoing, sess, encode(make_message(msg_type, room=room)))

    def send(self, sess: ConnectionState, payload: str) -> bool:
        try:
            sess.transport.send(payload)
        except (SendError, ConnectionClosed, OSError) as e:
            self.hub.stats_manager.inc("send_failures")
            self.log.debug(
                "Send failed conn=%s peer=%s bytes=%s err=%s",
                sess.conn_id,
                sess.transport.label,
                len(payload),
                e,
            )
            return False

        self.hub.stats_manager.inc("bytes_out", len(payload.encode("utf-8")))
        return True

    def send_outgoing(self, outgoing: Outgoing) -> int:
        """Deliver queued payloads. Returns how many were handed to a transport."""
        if self.log.isEnabledFor(logging.DEBUG) and outgoing:
            self.log.debug("Sending %d frame(s)", len(outgoing))

        delivered = 0
        for sess, payload in outgoing:
            if self.send(sess, payload):
                delivered += 1
        return delivered
