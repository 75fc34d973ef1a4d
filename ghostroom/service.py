"""Reticulum front end for the hub.

``HubService`` owns everything that touches RNS: the destination, link
callbacks, announces and packet delivery. Room logic lives in ``HubCore``;
the service only maps links to connection ids and back.
"""

from __future__ import annotations

import logging
import os
import signal
import threading

import RNS

from .codec import encode
from .config import HubRuntimeConfig
from .core import HubCore
from .messages import Outgoing
from .router import MessageRouter
from .session import SessionManager
from .stats import StatsManager
from .util import expand_path, fmt_conn


class HubService:
    def __init__(self, config: HubRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("ghostroomd.hub")

        # Guards SessionManager only. HubCore has its own state lock and the
        # two are never held together.
        self._session_lock = threading.RLock()
        self._shutdown = threading.Event()

        self.stats = StatsManager()
        self.session_manager = SessionManager(config)
        self.core = HubCore(config, self._deliver, stats=self.stats)
        self.router = MessageRouter(self.core, self.session_manager, self._session_lock)

        self.identity: RNS.Identity | None = None
        self.destination: RNS.Destination | None = None

    # Startup

    def start(self) -> None:
        self.log.info("Starting Reticulum configdir=%s", self.config.configdir or "(default)")
        RNS.Reticulum(configdir=self.config.configdir, require_shared_instance=False)

        self.identity = self._load_identity(self.config.identity_path)
        self.core.messages.src = self.identity.hash
        self.destination = self._open_destination(self.identity)

        if self.config.announce_on_start:
            self._announce_once()
        if float(self.config.announce_period_s or 0) > 0:
            self._spawn(self._announce_loop, "ghostroomd-announce")
        self.core.reaper.start(self._shutdown)

        self.log.info(
            "Hub listening dest_name=%s dest_hash=%s",
            self.config.dest_name,
            self.destination.hash.hex(),
        )
        self.log.info(
            "Room policy max_rooms=%s key_len=%s..%s max_room_age_s=%s "
            "cleanup_interval_s=%s enforce_message_authors=%s",
            self.config.max_rooms,
            self.config.min_key_len,
            self.config.max_key_len,
            self.config.max_room_age_s,
            self.config.cleanup_interval_s,
            self.config.enforce_message_authors,
        )

    def _load_identity(self, path: str | None) -> RNS.Identity:
        if not path:
            raise RuntimeError("identity_path is not set")
        p = expand_path(path)
        if not os.path.exists(p):
            raise RuntimeError(f"Identity not found at {p}")
        ident = RNS.Identity.from_file(p)
        if ident is None:
            raise RuntimeError(f"Failed to load identity from {p}")
        return ident

    def _open_destination(self, identity: RNS.Identity) -> RNS.Destination:
        app_name, *aspects = [p for p in str(self.config.dest_name).split(".") if p] or [""]
        if not app_name:
            raise ValueError("dest_name must not be empty")
        dest = RNS.Destination(
            identity, RNS.Destination.IN, RNS.Destination.SINGLE, app_name, *aspects
        )
        dest.set_link_established_callback(self._on_link)
        return dest

    def _spawn(self, target, name: str) -> None:
        threading.Thread(target=target, name=name, daemon=True).start()

    def _announce_once(self) -> None:
        if self.destination is None:
            return
        app_data = encode({"proto": "ghostroom", "v": 1, "hub": self.config.hub_name})
        try:
            self.destination.announce(app_data=app_data)
        except Exception:
            self.log.exception("Announce failed")

    def _announce_loop(self) -> None:
        period = float(self.config.announce_period_s)
        while not self._shutdown.wait(period):
            self._announce_once()

    # Lifecycle

    def run_forever(self) -> None:
        if self.destination is None:
            self.start()

        for sig in (signal.SIGINT, signal.SIGTERM):
            signal.signal(sig, lambda *_: self.stop())

        while not self._shutdown.wait(0.25):
            pass

    def stop(self) -> None:
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.log.info("Shutting down")

        with self._session_lock:
            links = self.session_manager.clear_all()
        self.core.shutdown()

        for link in links:
            try:
                link.teardown()
            except Exception:
                self.log.debug("Link teardown failed", exc_info=True)

        self.log.info("%s", self.stats.format_stats())

    # Link callbacks (Reticulum threads)

    def _on_link(self, link: RNS.Link) -> None:
        with self._session_lock:
            self.session_manager.on_link_established(link)

        link.set_packet_callback(lambda data, _pkt: self.router.route_packet(link, data))
        link.set_link_closed_callback(self._on_close)

    def _on_close(self, link: RNS.Link) -> None:
        with self._session_lock:
            conn_id = self.session_manager.on_link_closed(link)
        if conn_id is None:
            return
        self.log.info("Link closed conn=%s", fmt_conn(conn_id))
        self.core.disconnect(conn_id)

    # Delivery

    def _fits(self, link: RNS.Link, payload: bytes) -> bool:
        mdu = getattr(link, "MDU", None)
        if mdu is not None:
            return len(payload) <= mdu
        try:
            RNS.Packet(link, payload).pack()
        except Exception:
            return False
        return True

    def _deliver(self, outgoing: Outgoing) -> None:
        with self._session_lock:
            targets = [(cid, self.session_manager.link_for(cid), env) for cid, env in outgoing]

        for conn_id, link, env in targets:
            if link is None:
                # Closed between queueing and delivery.
                self.log.debug("Dropping envelope for gone conn=%s", fmt_conn(conn_id))
                continue
            self._send(conn_id, link, encode(env))

    def _send(self, conn_id: bytes, link: RNS.Link, payload: bytes) -> None:
        if not self._fits(link, payload):
            self.log.warning(
                "Envelope exceeds link MDU; dropped conn=%s bytes=%s", fmt_conn(conn_id), len(payload)
            )
            return
        try:
            RNS.Packet(link, payload).send()
        except OSError as e:
            self.log.warning("Send failed conn=%s bytes=%s err=%s", fmt_conn(conn_id), len(payload), e)
            return
        except Exception:
            self.log.debug("Send failed conn=%s", fmt_conn(conn_id), exc_info=True)
            return
        self.stats.inc("bytes_out", len(payload))
