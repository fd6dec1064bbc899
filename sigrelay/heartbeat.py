from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from websockets.exceptions import ConnectionClosed

from .transport import SendError

if TYPE_CHECKING:
    from .service import RelayService
    from .session import ConnectionState


class HeartbeatSupervisor:
    """
    Evicts connections that stop answering probes.

    Every ``ping_interval_s`` each connection is either probed (if it answered
    since the last tick, or is new) or terminated (if it did not). A peer that
    goes silent is therefore gone after at most two ticks. Only probe
    responses count as liveness; application traffic does not.
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub
        self.log = logging.getLogger("sigrelay.heartbeat")
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        interval = float(self.hub.config.ping_interval_s)
        if interval <= 0:
            self.log.info("Heartbeat disabled")
            return
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="sigrelay-heartbeat", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        t = self._thread
        if t is not None and t is not threading.current_thread():
            t.join(timeout=5.0)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(float(self.hub.config.ping_interval_s)):
            try:
                self.tick()
            except Exception:
                self.log.exception("Heartbeat tick failed")

    def _collect_responses(self, sessions: list[ConnectionState]) -> None:
        # Some transports only expose a pollable pong waiter.
        for sess in sessions:
            if sess.transport.probe_answered():
                self.hub.on_probe_response(sess.conn_id)

    def tick(self) -> tuple[int, int]:
        """Run one probe cycle. Returns (evicted, probed)."""
        with self.hub._state_lock:
            sessions = list(self.hub.session_manager.sessions.values())

        self._collect_responses(sessions)

        to_evict: list[ConnectionState] = []
        to_probe: list[ConnectionState] = []
        with self.hub._state_lock:
            for sess in self.hub.session_manager.sessions.values():
                if not sess.alive:
                    to_evict.append(sess)
                    continue
                sess.alive = False
                to_probe.append(sess)

        for sess in to_evict:
            self.hub.evict(sess.conn_id)

        for sess in to_probe:
            try:
                sess.transport.probe()
                self.hub.stats_manager.inc("probes_out")
            except (SendError, ConnectionClosed, OSError) as e:
                self.log.debug("Probe failed conn=%s err=%s", sess.conn_id, e)

        if to_evict:
            self.log.info(
                "Heartbeat evicted=%s probed=%s", len(to_evict), len(to_probe)
            )
        return len(to_evict), len(to_probe)
