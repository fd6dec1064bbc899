"""Statistics tracking and reporting for the relay."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import RelayService


class StatsManager:
    """
    Lifetime counters for the relay.

    Tracks counters for:
    - Bytes in/out
    - Messages received, dropped (oversized, rate limited, malformed, unrouted)
    - Room joins/leaves
    - Messages forwarded and per-destination send failures
    - Heartbeat probes, responses and evictions
    """

    def __init__(self, hub: RelayService) -> None:
        self.hub = hub

        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "bytes_in": 0,
            "bytes_out": 0,
            "msgs_in": 0,
            "msgs_bad": 0,
            "oversized": 0,
            "rate_limited": 0,
            "unrouted": 0,
            "joins": 0,
            "joins_bad": 0,
            "leaves": 0,
            "msgs_forwarded": 0,
            "send_failures": 0,
            "probes_out": 0,
            "probes_answered": 0,
            "evictions": 0,
            "connections": 0,
            "health_requests": 0,
        }

    def set_start_time(self) -> None:
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self.hub._state_lock:
            self._counters[key] = self._counters.get(key, 0) + int(delta)

    def get(self, key: str) -> int:
        with self.hub._state_lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        with self.hub._state_lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a single log line."""
        from . import __version__

        started = self.started_monotonic
        uptime_s = (time.monotonic() - started) if started is not None else 0.0

        with self.hub._state_lock:
            session_stats = self.hub.session_manager.get_stats()
            room_stats = self.hub.room_manager.get_stats()
            c = dict(self._counters)

        parts: list[str] = [
            f"sigrelay {__version__} stats",
            f"uptime_s={uptime_s:.1f}",
            f"clients={session_stats['total']} in_room={session_stats['in_room']}",
            f"rooms={room_stats['rooms_total']} memberships={room_stats['memberships']}",
        ]
        top_rooms = room_stats["top_rooms"]
        if top_rooms:
            parts.append("top_rooms=" + ",".join(f"{r}:{n}" for r, n in top_rooms))

        parts.append(
            "io: msgs_in={} bytes_in={} bytes_out={}".format(
                c["msgs_in"], c["bytes_in"], c["bytes_out"]
            )
        )
        parts.append(
            "drops: oversized={} rate_limited={} bad={} unrouted={} joins_bad={}".format(
                c["oversized"], c["rate_limited"], c["msgs_bad"], c["unrouted"], c["joins_bad"]
            )
        )
        parts.append(
            "events: connections={} joins={} leaves={} fwd={} send_failures={}".format(
                c["connections"], c["joins"], c["leaves"], c["msgs_forwarded"], c["send_failures"]
            )
        )
        parts.append(
            "heartbeat: probes={} answered={} evictions={}".format(
                c["probes_out"], c["probes_answered"], c["evictions"]
            )
        )
        return " | ".join(parts)
