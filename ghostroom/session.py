from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .config import HubRuntimeConfig
from .util import fmt_conn

if TYPE_CHECKING:
    import RNS


@dataclass
class _RateState:
    """Token bucket state for rate limiting."""

    tokens: float
    last_refill: float


class SessionManager:
    """
    Manages per-link session state for hub connections.

    This class is responsible for:
    - Assigning each link a random connection id
    - Mapping connection ids back to links for delivery
    - Rate limiting with a token bucket per link
    - Session cleanup on link close

    Every method must be called with the hub's session lock held.
    """

    def __init__(self, config: HubRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("ghostroomd.session")
        self.sessions: dict[RNS.Link, dict[str, Any]] = {}
        self._rate: dict[RNS.Link, _RateState] = {}
        self._index_by_conn: dict[bytes, RNS.Link] = {}

    def _new_conn_id(self) -> bytes:
        while True:
            cid = os.urandom(8)
            if cid not in self._index_by_conn:
                return cid

    def on_link_established(self, link: RNS.Link) -> bytes:
        """Create session state for a new link and return its connection id."""
        conn_id = self._new_conn_id()
        self.sessions[link] = {
            "conn_id": conn_id,
            "connected_at": time.time(),
        }
        self._index_by_conn[conn_id] = link
        self._rate[link] = _RateState(
            tokens=float(self.config.rate_limit_msgs_per_minute),
            last_refill=time.monotonic(),
        )
        self.log.info("Session created conn=%s", fmt_conn(conn_id))
        return conn_id

    def on_link_closed(self, link: RNS.Link) -> bytes | None:
        """Drop session state. Returns the connection id the link had, if any."""
        sess = self.sessions.pop(link, None)
        self._rate.pop(link, None)
        if not sess:
            return None
        conn_id = sess.get("conn_id")
        if isinstance(conn_id, bytes):
            self._index_by_conn.pop(conn_id, None)
            return conn_id
        return None

    def conn_id_for(self, link: RNS.Link) -> bytes | None:
        sess = self.sessions.get(link)
        return sess.get("conn_id") if sess else None

    def link_for(self, conn_id: bytes) -> RNS.Link | None:
        return self._index_by_conn.get(bytes(conn_id))

    def refill_and_take(self, link: RNS.Link, cost: float = 1.0) -> bool:
        """
        Token bucket rate limiting.

        Refills tokens based on elapsed time and attempts to take `cost` tokens.
        Returns True if tokens were available and taken, False if rate limited.
        """
        state = self._rate.get(link)
        if state is None:
            return True

        now = time.monotonic()
        per_min = float(max(1, int(self.config.rate_limit_msgs_per_minute)))
        rate_per_s = per_min / 60.0
        elapsed = max(0.0, now - state.last_refill)
        state.tokens = min(per_min, state.tokens + elapsed * rate_per_s)
        state.last_refill = now

        if state.tokens < cost:
            return False

        state.tokens -= cost
        return True

    def clear_all(self) -> list[RNS.Link]:
        """Clear all sessions and return the links for teardown."""
        links = list(self.sessions.keys())
        self.sessions.clear()
        self._rate.clear()
        self._index_by_conn.clear()
        return links
