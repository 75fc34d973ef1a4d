"""The transport-independent hub engine.

``HubCore`` owns all room state and the components that mutate it. Every
entry point takes the state lock, collects outbound envelopes into a list,
releases the lock and then hands the list to ``deliver``. Handlers therefore
run one at a time and never send while holding the lock. Deliveries are
serialised in the same order as the handlers that produced them, whichever
thread (link callback, self-destruct timer, reaper) they came from.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from .admission import AdmissionController
from .config import HubRuntimeConfig
from .connections import ConnectionRegistry
from .errors import HubError, NotAMember, NotHost, RoomDestroyed, RoomNotFound
from .events import (
    CloseRoom,
    CreateRoom,
    DecideJoin,
    DeleteMessage,
    EditMessage,
    Event,
    JoinRoom,
    KickUser,
    LeaveRoom,
    PollVote,
    SendMessage,
    TypingStatus,
)
from .membership import MembershipCoordinator
from .messages import MessageHelper, Outgoing
from .reaper import LifecycleReaper
from .relay import MessageRelay
from .rooms import ConnectionId, Room, RoomStore
from .stats import StatsManager
from .timers import TimerRegistry
from .util import fingerprint as default_fingerprint
from .util import generate_room_id as default_generate_room_id

Deliver = Callable[[Outgoing], None]


class HubCore:
    def __init__(
        self,
        config: HubRuntimeConfig,
        deliver: Deliver,
        *,
        src: bytes = b"ghostroomd",
        timers: TimerRegistry | None = None,
        clock: Callable[[], float] = time.time,
        generate_room_id: Callable[[], str] = default_generate_room_id,
        fingerprint: Callable[[str], str] = default_fingerprint,
        stats: StatsManager | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("ghostroomd.core")
        self._deliver = deliver
        self._state_lock = threading.RLock()
        self._deliver_lock = threading.RLock()

        self.clock = clock
        self.generate_room_id = generate_room_id
        self.fingerprint = fingerprint

        self.store = RoomStore()
        self.connections = ConnectionRegistry()
        self.timers = timers if timers is not None else TimerRegistry()
        self.stats = stats if stats is not None else StatsManager()
        self.messages = MessageHelper(src)

        self.membership = MembershipCoordinator(self)
        self.admission = AdmissionController(self)
        self.relay = MessageRelay(self)
        self.reaper = LifecycleReaper(self)

    # Room resolution shared by the components

    def _resolve_room_id(self, conn_id: ConnectionId, claimed: str | None) -> str:
        current = self.connections.room_of(conn_id)
        if current is None:
            raise NotAMember()
        if claimed is not None and claimed.strip().upper() != current:
            raise NotAMember()
        return current

    def room_for_member(self, conn_id: ConnectionId, claimed: str | None = None) -> Room:
        room = self.store.get(self._resolve_room_id(conn_id, claimed))
        if room is None or not room.is_member(conn_id):
            raise NotAMember()
        return room

    def room_for_host(self, conn_id: ConnectionId, claimed: str | None = None) -> Room:
        current = self.connections.room_of(conn_id)
        room_id = claimed.strip().upper() if claimed else current
        if room_id is None:
            raise NotAMember()
        room = self.store.get(room_id)
        if room is None:
            if self.store.was_destroyed(room_id):
                raise RoomDestroyed()
            raise RoomNotFound()
        if room.host_id != conn_id:
            raise NotHost()
        return room

    # Entry points

    def _flush(self, outgoing: Outgoing) -> None:
        if not outgoing:
            return
        try:
            self._deliver(outgoing)
        except Exception:
            self.log.exception("Delivery of %d envelope(s) failed", len(outgoing))

    @contextmanager
    def _batch(self) -> Iterator[Outgoing]:
        """Run a block under the state lock, then deliver what it queued.

        The delivery lock is taken before the state lock is let go, so
        batches leave in the order their state changes were made.
        """
        outgoing: Outgoing = []
        self._state_lock.acquire()
        try:
            yield outgoing
        finally:
            self._deliver_lock.acquire()
            self._state_lock.release()
            try:
                self._flush(outgoing)
            finally:
                self._deliver_lock.release()

    def handle(self, conn_id: ConnectionId, event: Event) -> None:
        with self._batch() as outgoing:
            try:
                self._dispatch(conn_id, event, outgoing)
            except HubError as e:
                self.stats.inc("errors_sent")
                self.log.debug(
                    "Request refused event=%s code=%s", type(event).__name__, e.code
                )
                self.messages.error(outgoing, conn_id, e)

    def reject(self, conn_id: ConnectionId, err: HubError) -> None:
        """Answer a request that failed before it could be parsed."""
        self.stats.inc("errors_sent")
        with self._batch() as outgoing:
            self.messages.error(outgoing, conn_id, err)

    def _dispatch(self, conn_id: ConnectionId, ev: Event, outgoing: Outgoing) -> None:
        if isinstance(ev, CreateRoom):
            self.admission.create_room(
                conn_id, ev.nick, ev.secret, ev.room_name, ev.require_approval, outgoing
            )
        elif isinstance(ev, JoinRoom):
            self.admission.join_room(conn_id, ev.nick, ev.room_id, ev.secret, outgoing)
        elif isinstance(ev, DecideJoin):
            self.admission.decide_join_request(
                conn_id, ev.target, ev.approve, ev.reason, outgoing, room_id=ev.room
            )
        elif isinstance(ev, KickUser):
            self.membership.kick(conn_id, ev.target, outgoing, room_id=ev.room)
        elif isinstance(ev, LeaveRoom):
            self.membership.leave(conn_id, outgoing, room_id=ev.room)
        elif isinstance(ev, CloseRoom):
            self.membership.close(conn_id, outgoing, room_id=ev.room)
        elif isinstance(ev, SendMessage):
            self.relay.relay_message(conn_id, ev, outgoing)
        elif isinstance(ev, EditMessage):
            self.relay.edit_message(
                conn_id, ev.message_id, ev.ciphertext, outgoing, room_id=ev.room
            )
        elif isinstance(ev, DeleteMessage):
            self.relay.delete_message(conn_id, ev.message_id, outgoing, room_id=ev.room)
        elif isinstance(ev, PollVote):
            self.relay.vote_poll(
                conn_id, ev.message_id, ev.option_id, ev.action, outgoing, room_id=ev.room
            )
        elif isinstance(ev, TypingStatus):
            self.relay.typing(conn_id, ev.is_typing, outgoing, room_id=ev.room)
        else:
            raise TypeError(f"unhandled event {type(ev).__name__}")

    def disconnect(self, conn_id: ConnectionId) -> None:
        with self._batch() as outgoing:
            self.membership.disconnect(conn_id, outgoing)

    def sweep(self, now: float | None = None) -> list[str]:
        with self._batch() as outgoing:
            expired = self.reaper.sweep(outgoing, now)
        return expired

    def run_deferred(self, fn: Callable[[Outgoing], None]) -> None:
        """Run timer work under the state lock and deliver what it queued."""
        with self._batch() as outgoing:
            fn(outgoing)

    def format_stats(self) -> str:
        with self._state_lock:
            room_stats = self.store.get_stats()
        return self.stats.format_stats(room_stats)

    def shutdown(self) -> None:
        self.timers.cancel_all()
        with self._state_lock:
            self.store.clear_all()
            self.connections.clear_all()
