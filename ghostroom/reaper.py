from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .constants import CLOSED_EXPIRED, DESTROYED_ROOM_RETENTION_S
from .messages import Outgoing

if TYPE_CHECKING:
    from .core import HubCore


class LifecycleReaper:
    """Expires rooms past their maximum age and forgets old destroyed ids."""

    def __init__(self, core: HubCore) -> None:
        self.core = core
        self.store = core.store
        self.log = logging.getLogger("ghostroomd.reaper")
        self._thread: threading.Thread | None = None

    def sweep(self, outgoing: Outgoing, now: float | None = None) -> list[str]:
        """Tear down expired rooms. Must be called with the state lock held."""
        if now is None:
            now = self.core.clock()
        max_age = float(self.core.config.max_room_age_s)

        expired: list[str] = []
        if max_age > 0:
            for room in self.store.rooms():
                if now - room.created_at > max_age:
                    if self.core.membership.teardown(room, CLOSED_EXPIRED, outgoing):
                        expired.append(room.id)

        pruned = self.store.prune_destroyed(now, DESTROYED_ROOM_RETENTION_S)

        if expired or pruned:
            self.log.info(
                "Sweep expired=%s pruned_destroyed=%s live=%s",
                len(expired),
                pruned,
                self.store.live_count(),
            )
            self.core.stats.inc("rooms_expired", len(expired))
        return expired

    def start(self, shutdown: threading.Event) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._loop, args=(shutdown,), name="ghostroomd-reaper", daemon=True
        )
        self._thread.start()

    def _loop(self, shutdown: threading.Event) -> None:
        while not shutdown.is_set():
            interval = float(self.core.config.cleanup_interval_s)
            if interval <= 0:
                if shutdown.wait(1.0):
                    break
                continue

            if shutdown.wait(interval):
                break

            try:
                self.core.sweep()
            except Exception:
                self.log.exception("Room sweep failed")
                continue
            self.log.debug("%s", self.core.format_stats())
