from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .codec import decode
from .constants import K_T
from .core import HubCore
from .envelope import validate_envelope
from .errors import BadRequest, RateLimited
from .events import parse_event
from .session import SessionManager
from .util import fmt_conn

if TYPE_CHECKING:
    import RNS


class MessageRouter:
    """
    Turns raw link packets into hub events.

    This class is responsible for:
    - Decoding CBOR and validating envelopes
    - Per-link rate limiting
    - Parsing bodies into typed events at the boundary
    - Handing events to the core and reporting refusals
    """

    def __init__(
        self,
        core: HubCore,
        sessions: SessionManager,
        session_lock: threading.RLock,
    ) -> None:
        self.core = core
        self.sessions = sessions
        self._session_lock = session_lock
        self.log = logging.getLogger("ghostroomd.router")

    def route_packet(self, link: RNS.Link, data: bytes) -> None:
        stats = self.core.stats
        with self._session_lock:
            conn_id = self.sessions.conn_id_for(link)
            if conn_id is None:
                return
            allowed = self.sessions.refill_and_take(link)

        stats.inc("pkts_in")
        stats.inc("bytes_in", len(data))

        try:
            env = decode(data)
            validate_envelope(env)
        except Exception as e:
            stats.inc("pkts_bad")
            self.log.debug("Dropping bad packet conn=%s: %s", fmt_conn(conn_id), e)
            return

        if not allowed:
            stats.inc("rate_limited")
            self.core.reject(conn_id, RateLimited())
            return

        try:
            event = parse_event(env)
        except (TypeError, ValueError) as e:
            self.core.reject(conn_id, BadRequest(str(e)))
            return

        if event is None:
            self.core.reject(conn_id, BadRequest(f"unsupported event type {env.get(K_T)}"))
            return

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Event %s conn=%s", type(event).__name__, fmt_conn(conn_id))

        self.core.handle(conn_id, event)
