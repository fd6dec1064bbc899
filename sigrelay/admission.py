from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .codec import decode
from .envelope import validate_message
from .util import payload_size

if TYPE_CHECKING:
    from .service import RelayService
    from .session import ConnectionState


class AdmissionFilter:
    """
    Per-message gate applied before any routing.

    A message is dropped, silently as far as the sender can tell, when it is
    larger than ``max_msg_bytes``, when the connection already sent
    ``rate_limit_msgs`` messages in the current window, or when it is not a
    JSON object. Checks run in that order: oversized frames do not use up the
    rate budget, unparseable ones do.

    Windows are fixed, anchored at connect time, and advanced lazily when a
    message arrives. A burst straddling a boundary can get close to twice the
    nominal rate through.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("sigrelay.admission")

    def take(self, sess: ConnectionState) -> bool:
        """
        Count one message against the connection's current window.

        Returns False once the window's budget is exhausted.
        Must be called with state lock held.
        """
        window = float(self.hub.config.rate_limit_window_s)
        now = self.hub.clock()
        elapsed = now - sess.window_start
        if elapsed >= window:
            sess.window_start += (elapsed // window) * window
            sess.msg_count = 0

        sess.msg_count += 1
        return sess.msg_count <= int(self.hub.config.rate_limit_msgs)

    def accept(self, sess: ConnectionState, data: bytes | str) -> dict | None:
        """Return the parsed message, or None if it must be dropped."""
        size = payload_size(data)
        stats = self.hub.stats_manager
        stats.inc("msgs_in")
        stats.inc("bytes_in", size)

        if size > int(self.hub.config.max_msg_bytes):
            stats.inc("oversized")
            self.log.debug("Oversized message conn=%s bytes=%s", sess.conn_id, size)
            return None

        if not self.take(sess):
            stats.inc("rate_limited")
            if sess.msg_count == int(self.hub.config.rate_limit_msgs) + 1:
                self.log.debug(
                    "Rate limited conn=%s peer=%s", sess.conn_id, sess.transport.label
                )
            return None

        try:
            msg = decode(data)
            validate_message(msg)
        except (ValueError, TypeError, RecursionError) as e:
            stats.inc("msgs_bad")
            self.log.debug("Bad message conn=%s bytes=%s err=%s", sess.conn_id, size, e)
            return None

        return msg
