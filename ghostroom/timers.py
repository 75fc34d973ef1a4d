from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable


class TimerRegistry:
    """Deferred one-shot callbacks keyed by an arbitrary hashable.

    Scheduling a key that is already pending replaces the older timer.
    Cancellation is best effort: a callback that has already started will
    still run, so callbacks must tolerate the state they target being gone.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("ghostroomd.timers")
        self._lock = threading.Lock()
        self._timers: dict[Hashable, threading.Timer] = {}

    def schedule(self, key: Hashable, delay_s: float, fn: Callable[[], None]) -> None:
        delay = min(max(0.0, float(delay_s)), threading.TIMEOUT_MAX)
        timer = threading.Timer(delay, self._fire, args=(key, fn))
        timer.daemon = True
        timer.name = "ghostroomd-timer"
        with self._lock:
            old = self._timers.pop(key, None)
            self._timers[key] = timer
        if old is not None:
            old.cancel()
        timer.start()

    def _fire(self, key: Hashable, fn: Callable[[], None]) -> None:
        with self._lock:
            current = self._timers.get(key)
            if current is threading.current_thread():
                self._timers.pop(key, None)
        try:
            fn()
        except Exception:
            self.log.exception("Timer callback failed key=%r", key)

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> int:
        with self._lock:
            keys = [k for k in self._timers if predicate(k)]
            timers = [self._timers.pop(k) for k in keys]
        for t in timers:
            t.cancel()
        return len(timers)

    def cancel_all(self) -> int:
        return self.cancel_where(lambda _k: True)

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)
