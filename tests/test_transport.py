import threading
import time

import pytest
from websockets.exceptions import ConnectionClosedOK
from websockets.protocol import State

from sigrelay.transport import SendError, WebSocketTransport


class _Protocol:
    def __init__(self) -> None:
        self.state = State.OPEN


class _Socket:
    def __init__(self) -> None:
        self.shutdown_called = False

    def shutdown(self, how) -> None:
        self.shutdown_called = True


class StubConnection:
    """Just enough of a websockets sync ServerConnection for the transport."""

    def __init__(self) -> None:
        self.protocol = _Protocol()
        self.socket = _Socket()
        self.remote_address = ("203.0.113.7", 51000)
        self.frames: list = []
        self.gate = threading.Event()
        self.gate.set()
        self.written = threading.Event()
        self.pong = threading.Event()
        self.closed = False

    def send(self, data) -> None:
        self.gate.wait(5.0)
        if self.protocol.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        self.frames.append(data)
        self.written.set()

    def ping(self) -> threading.Event:
        if self.protocol.state is not State.OPEN:
            raise ConnectionClosedOK(None, None)
        return self.pong

    def close(self) -> None:
        self.closed = True
        self.protocol.state = State.CLOSED


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_label_uses_remote_address() -> None:
    t = WebSocketTransport(StubConnection(), queue_max=4)
    try:
        assert t.label == "203.0.113.7:51000"
    finally:
        t.release()


def test_frames_are_written_in_order() -> None:
    ws = StubConnection()
    t = WebSocketTransport(ws, queue_max=8)
    try:
        for i in range(5):
            t.send(f"m{i}")
        assert _wait_for(lambda: len(ws.frames) == 5)
        assert ws.frames == ["m0", "m1", "m2", "m3", "m4"]
    finally:
        t.release()


def test_full_queue_fails_the_send() -> None:
    ws = StubConnection()
    ws.gate.clear()
    t = WebSocketTransport(ws, queue_max=1)
    try:
        t.send("first")
        # Writer picks up the first frame and blocks on the gate.
        assert _wait_for(lambda: t._queue.empty())
        t.send("second")
        with pytest.raises(SendError):
            t.send("third")
    finally:
        ws.gate.set()
        t.release()


def test_send_after_close_fails() -> None:
    ws = StubConnection()
    t = WebSocketTransport(ws, queue_max=4)
    t.close()
    assert ws.closed
    assert not t.is_open()
    with pytest.raises(SendError):
        t.send("late")
    t.release()


def test_send_after_release_fails() -> None:
    t = WebSocketTransport(StubConnection(), queue_max=4)
    t.release()
    with pytest.raises(SendError):
        t.send("late")


def test_release_stops_writer_thread() -> None:
    t = WebSocketTransport(StubConnection(), queue_max=4)
    t.release()
    t._writer.join(timeout=2.0)
    assert not t._writer.is_alive()


def test_probe_answered_reports_pong_once() -> None:
    ws = StubConnection()
    t = WebSocketTransport(ws, queue_max=4)
    try:
        assert not t.probe_answered()
        t.probe()
        assert not t.probe_answered()
        ws.pong.set()
        assert t.probe_answered()
        assert not t.probe_answered()
    finally:
        t.release()


def test_probe_on_closed_connection_raises_send_error() -> None:
    ws = StubConnection()
    t = WebSocketTransport(ws, queue_max=4)
    ws.protocol.state = State.CLOSED
    with pytest.raises(SendError):
        t.probe()
    t.release()


def test_terminate_shuts_down_socket() -> None:
    ws = StubConnection()
    t = WebSocketTransport(ws, queue_max=4)
    t.terminate()
    assert ws.socket.shutdown_called
    t.release()
