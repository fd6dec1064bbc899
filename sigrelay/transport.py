"""Connection handles the relay core sends through.

The core never touches a socket directly. Anything that can send a frame,
report whether it is still open, probe for liveness, and be closed or
terminated can be plugged in; the WebSocket server uses
:class:`WebSocketTransport`.
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
from typing import Protocol

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State
from websockets.sync.server import ServerConnection


class SendError(Exception):
    """A frame could not be handed to one destination."""


class Transport(Protocol):
    label: str

    def send(self, data: str | bytes) -> None: ...

    def is_open(self) -> bool: ...

    def probe(self) -> None: ...

    def probe_answered(self) -> bool: ...

    def close(self) -> None: ...

    def terminate(self) -> None: ...

    def release(self) -> None: ...


_STOP = object()


class WebSocketTransport:
    """Transport over a ``websockets`` sync server connection.

    Outbound frames go through a bounded queue drained by a writer thread, so
    a peer that stops reading only ever stalls its own writer. Probes are
    WebSocket pings; the pong waiter is polled by the heartbeat supervisor.
    """

    def __init__(self, ws: ServerConnection, *, queue_max: int) -> None:
        self.ws = ws
        self.log = logging.getLogger("sigrelay.transport")
        self.label = self._fmt_address(ws)

        self._queue: queue.Queue[object] = queue.Queue(maxsize=max(1, int(queue_max)))
        self._released = threading.Event()
        self._pong: threading.Event | None = None

        self._writer = threading.Thread(
            target=self._write_loop,
            name=f"sigrelay-writer-{self.label}",
            daemon=True,
        )
        self._writer.start()

    @staticmethod
    def _fmt_address(ws: ServerConnection) -> str:
        addr = getattr(ws, "remote_address", None)
        if isinstance(addr, tuple) and len(addr) >= 2:
            return f"{addr[0]}:{addr[1]}"
        return "-"

    def send(self, data: str | bytes) -> None:
        if self._released.is_set() or not self.is_open():
            raise SendError("connection closed")
        try:
            self._queue.put_nowait(data)
        except queue.Full:
            raise SendError("send queue full") from None

    def is_open(self) -> bool:
        return self.ws.protocol.state is State.OPEN

    def probe(self) -> None:
        try:
            self._pong = self.ws.ping()
        except ConnectionClosed as e:
            raise SendError("connection closed") from e

    def probe_answered(self) -> bool:
        pong = self._pong
        if pong is None or not pong.is_set():
            return False
        self._pong = None
        return True

    def close(self) -> None:
        try:
            self.ws.close()
        except OSError:
            self.log.debug("Close failed conn=%s", self.label, exc_info=True)

    def terminate(self) -> None:
        # No closing handshake: drop the TCP connection so the handler thread
        # sees EOF and runs the normal close path.
        try:
            self.ws.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def release(self) -> None:
        self._released.set()
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            # The writer checks the release flag after every frame.
            pass

    def _write_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP or self._released.is_set():
                return
            try:
                self.ws.send(item)  # type: ignore[arg-type]
            except ConnectionClosed:
                return
            except OSError as e:
                self.log.debug("Write failed conn=%s err=%s", self.label, e)
                return
