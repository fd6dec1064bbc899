import json

import pytest

from sigrelay.config import RelayRuntimeConfig
from sigrelay.service import RelayService
from sigrelay.transport import SendError


class FakeTransport:
    """In-memory connection handle that records what the relay sends."""

    def __init__(self, label: str = "fake") -> None:
        self.label = label
        self.sent: list[str] = []
        self.open = True
        self.fail_sends = False
        self.probes = 0
        self.pong_pending = False
        self.closed = False
        self.terminated = False
        self.released = 0

    def send(self, data) -> None:
        if self.fail_sends or not self.open:
            raise SendError("connection closed")
        self.sent.append(data)

    def is_open(self) -> bool:
        return self.open

    def probe(self) -> None:
        self.probes += 1

    def probe_answered(self) -> bool:
        answered = self.pong_pending
        self.pong_pending = False
        return answered

    def close(self) -> None:
        self.closed = True
        self.open = False

    def terminate(self) -> None:
        self.terminated = True
        self.open = False

    def release(self) -> None:
        self.released += 1

    def messages(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_hub(clock):
    def _make(**overrides) -> RelayService:
        hub = RelayService(RelayRuntimeConfig(**overrides))
        hub.clock = clock
        return hub

    return _make


@pytest.fixture
def hub(make_hub) -> RelayService:
    return make_hub()


@pytest.fixture
def connect():
    def _connect(relay: RelayService, label: str = "fake") -> tuple[int, FakeTransport]:
        transport = FakeTransport(label)
        return relay.on_connect(transport), transport

    return _connect


@pytest.fixture
def send():
    def _send(relay: RelayService, conn_id: int, obj) -> None:
        relay.on_message(conn_id, json.dumps(obj))

    return _send
