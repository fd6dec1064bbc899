from __future__ import annotations

import logging
import signal
import threading
import time

from . import __version__
from .admission import AdmissionFilter
from .config import RelayRuntimeConfig
from .heartbeat import HeartbeatSupervisor
from .messages import MessageHelper, Outgoing
from .rooms import RoomManager
from .router import MessageRouter
from .session import SessionManager
from .stats import StatsManager
from .transport import Transport


class RelayService:
    def __init__(self, config: RelayRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("sigrelay.relay")

        # Shared mutable state (sessions/rooms/counters) is touched from every
        # connection handler thread and the heartbeat thread. Guard it with a
        # single re-entrant lock; never send while holding it.
        self._state_lock = threading.RLock()

        self._shutdown = threading.Event()
        self.clock = time.monotonic

        self.stats_manager = StatsManager(self)
        self.session_manager = SessionManager(self)
        self.room_manager = RoomManager(self)
        self.admission = AdmissionFilter(self)
        self.router = MessageRouter(self)
        self.message_helper = MessageHelper(self)
        self.heartbeat = HeartbeatSupervisor(self)

        self._server = None
        self._server_thread: threading.Thread | None = None
        self._stats_thread: threading.Thread | None = None

    # Transport events

    def on_connect(self, transport: Transport) -> int:
        with self._state_lock:
            sess = self.session_manager.on_connection_established(transport)
        self.stats_manager.inc("connections")
        self.log.info("Connection opened conn=%s peer=%s", sess.conn_id, transport.label)
        return sess.conn_id

    def on_message(self, conn_id: int, data: bytes | str) -> None:
        # Handler threads run concurrently with each other and the heartbeat.
        # Mutate state under the lock, deliver after releasing it.
        outgoing: Outgoing = []
        with self._state_lock:
            sess = self.session_manager.get_session(conn_id)
            if sess is None:
                return
            self.router.route_message(sess, data, outgoing)

        if outgoing:
            self.message_helper.send_outgoing(outgoing)

    def on_probe_response(self, conn_id: int) -> None:
        with self._state_lock:
            known = self.session_manager.mark_alive(conn_id)
        if known:
            self.stats_manager.inc("probes_answered")

    def on_close(self, conn_id: int) -> bool:
        """Run the close path for a connection. Safe to call more than once."""
        with self._state_lock:
            sess = self.session_manager.on_connection_closed(conn_id)
            if sess is None:
                return False
            room = self.room_manager.leave(sess)

        sess.transport.release()
        self.log.info(
            "Connection closed conn=%s peer=%s room=%r",
            conn_id,
            sess.transport.label,
            room,
        )
        return True

    def evict(self, conn_id: int) -> None:
        """Forcibly drop a connection that stopped answering probes."""
        with self._state_lock:
            sess = self.session_manager.get_session(conn_id)
        if sess is None:
            return

        self.log.info("Evicting unresponsive conn=%s peer=%s", conn_id, sess.transport.label)
        self.stats_manager.inc("evictions")
        try:
            sess.transport.terminate()
        except OSError:
            self.log.debug("Terminate failed conn=%s", conn_id, exc_info=True)
        self.on_close(conn_id)

    # Lifecycle

    def start(self) -> None:
        from .server import build_server

        self.stats_manager.set_start_time()
        self._shutdown.clear()

        self._server = build_server(self)
        self._server_thread = threading.Thread(
            target=self._server.serve_forever, name="sigrelay-server", daemon=True
        )
        self._server_thread.start()

        self.heartbeat.start()

        if self.config.stats_interval_s and self.config.stats_interval_s > 0:
            self._stats_thread = threading.Thread(
                target=self._stats_loop, name="sigrelay-stats", daemon=True
            )
            self._stats_thread.start()

        self.log.info(
            "sigrelay %s listening host=%s port=%s ws_path=%s",
            __version__,
            self.config.host,
            self.config.port,
            self.config.ws_path or "*",
        )
        self.log.info(
            "Policy max_msg_bytes=%s rate_limit=%s/%ss ping_interval_s=%s",
            self.config.max_msg_bytes,
            self.config.rate_limit_msgs,
            self.config.rate_limit_window_s,
            self.config.ping_interval_s,
        )

    def _stats_loop(self) -> None:
        while not self._shutdown.wait(float(self.config.stats_interval_s)):
            self.log.info(self.stats_manager.format_stats())

    def run_forever(self) -> None:
        if self._server is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.log.info("Shutting down")

        self.heartbeat.stop()

        if self._server is not None:
            self._server.shutdown()

        with self._state_lock:
            sessions = self.session_manager.clear_all()
            self.room_manager.clear_all()

        for sess in sessions:
            sess.transport.terminate()
            sess.transport.release()

        self.log.info(self.stats_manager.format_stats())
