from __future__ import annotations

import itertools

import pytest

from ghostroom.config import HubRuntimeConfig
from ghostroom.constants import K_BODY, K_T
from ghostroom.core import HubCore
from helpers import make_core


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimers:
    """Deterministic stand-in for TimerRegistry driven by a FakeClock."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self._timers: dict = {}
        self._seq = itertools.count()

    def schedule(self, key, delay_s, fn) -> None:
        self._timers[key] = (self.clock.now + max(0.0, float(delay_s)), next(self._seq), fn)

    def cancel(self, key) -> bool:
        return self._timers.pop(key, None) is not None

    def cancel_where(self, predicate) -> int:
        keys = [k for k in self._timers if predicate(k)]
        for k in keys:
            del self._timers[k]
        return len(keys)

    def cancel_all(self) -> int:
        return self.cancel_where(lambda _k: True)

    def pending(self) -> int:
        return len(self._timers)

    def advance(self, seconds: float) -> None:
        target = self.clock.now + seconds
        while True:
            due = [(at, seq, k) for k, (at, seq, _fn) in self._timers.items() if at <= target]
            if not due:
                break
            at, _seq, key = min(due)
            _at, _s, fn = self._timers.pop(key)
            self.clock.now = max(self.clock.now, at)
            fn()
        self.clock.now = target


class Sent:
    """Collects everything the core delivers."""

    def __init__(self) -> None:
        self.items: list[tuple[bytes, dict]] = []

    def __call__(self, outgoing) -> None:
        self.items.extend(outgoing)

    def to(self, conn_id: bytes, msg_type: int | None = None) -> list[dict]:
        return [
            env
            for cid, env in self.items
            if cid == conn_id and (msg_type is None or env[K_T] == msg_type)
        ]

    def bodies(self, conn_id: bytes, msg_type: int) -> list:
        return [env.get(K_BODY) for env in self.to(conn_id, msg_type)]

    def types(self, conn_id: bytes) -> list[int]:
        return [env[K_T] for env in self.to(conn_id)]

    def clear(self) -> None:
        self.items.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers(clock: FakeClock) -> FakeTimers:
    return FakeTimers(clock)


@pytest.fixture
def sent() -> Sent:
    return Sent()


@pytest.fixture
def config() -> HubRuntimeConfig:
    return HubRuntimeConfig()


@pytest.fixture
def core(config, sent, clock, timers) -> HubCore:
    return make_core(config, sent, clock, timers)
