"""Lifetime counters for the ghostroom hub."""

from __future__ import annotations

import threading
import time
from typing import Any


class StatsManager:
    """
    Thread-safe counters plus a one-line summary for the logs.

    Tracks:
    - Packets and bytes in/out
    - Rooms created, closed and expired
    - Joins, parts, kicks
    - Messages forwarded and self-destructed
    - Errors sent and rate limiting
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started_monotonic = time.monotonic()
        self._counters: dict[str, int] = {
            "bytes_in": 0,
            "bytes_out": 0,
            "pkts_in": 0,
            "pkts_bad": 0,
            "rate_limited": 0,
            "errors_sent": 0,
            "rooms_created": 0,
            "rooms_closed": 0,
            "rooms_expired": 0,
            "joins": 0,
            "parts": 0,
            "kicks": 0,
            "msgs_forwarded": 0,
            "self_destructs": 0,
        }

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self, room_stats: dict[str, Any] | None = None) -> str:
        from . import __version__

        uptime_s = time.monotonic() - self.started_monotonic
        c = self.snapshot()
        rs = room_stats or {}

        parts = [
            f"ghostroomd {__version__} stats uptime_s={uptime_s:.1f}",
            "rooms={} members={} pending={} destroyed_remembered={}".format(
                rs.get("rooms_total", 0),
                rs.get("memberships", 0),
                rs.get("pending_joins", 0),
                rs.get("destroyed_remembered", 0),
            ),
            "io: pkts_in={} pkts_bad={} bytes_in={} bytes_out={}".format(
                c["pkts_in"], c["pkts_bad"], c["bytes_in"], c["bytes_out"]
            ),
            "rooms: created={} closed={} expired={}".format(
                c["rooms_created"], c["rooms_closed"], c["rooms_expired"]
            ),
            "events: joins={} parts={} kicks={} msgs_fwd={} self_destructs={} "
            "errors_sent={} rate_limited={}".format(
                c["joins"],
                c["parts"],
                c["kicks"],
                c["msgs_forwarded"],
                c["self_destructs"],
                c["errors_sent"],
                c["rate_limited"],
            ),
        ]
        return "; ".join(parts)
