"""Room creation and join admission.

Validation always runs to completion before anything is written, so a
rejected request leaves the room store exactly as it found it.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from .constants import (
    B_REQ_ID,
    B_REQ_NICK,
    B_REQ_TS,
    B_RESULT_APPROVED,
    B_RESULT_REASON,
    DEFAULT_REJECT_REASON,
    T_JOIN_PENDING,
    T_JOIN_REQUEST,
    T_JOIN_RESULT,
    T_JOIN_WITHDRAWN,
)
from .errors import (
    AlreadyInRoom,
    BadRequest,
    CapacityExceeded,
    InvalidKeyLength,
    InvalidName,
    NameTaken,
    NoSuchRequest,
    RoomDestroyed,
    RoomNotFound,
    WrongSecret,
)
from .messages import Outgoing
from .rooms import ConnectionId, PendingJoinRequest, Room
from .util import fmt_conn, normalize_nick

if TYPE_CHECKING:
    from .core import HubCore


@dataclass(frozen=True)
class Admitted:
    room_id: str
    roster: list[dict[int, Any]]


@dataclass(frozen=True)
class Pending:
    room_id: str


JoinOutcome = Union[Admitted, Pending]


class AdmissionController:
    """
    Validates create/join requests and runs the host approval queue.

    Responsible for:
    - Capacity and key length policy
    - Secret fingerprint comparison
    - Case-insensitive codename uniqueness (members and pending requests)
    - Staging and resolving pending join requests
    """

    def __init__(self, core: HubCore) -> None:
        self.core = core
        self.store = core.store
        self.connections = core.connections
        self.log = logging.getLogger("ghostroomd.admission")

    def _check_key_length(self, secret: str) -> None:
        cfg = self.core.config
        n = len(secret) if isinstance(secret, str) else 0
        if n < int(cfg.min_key_len) or n > int(cfg.max_key_len):
            raise InvalidKeyLength(cfg.min_key_len, cfg.max_key_len)

    def _check_nick(self, nick: str) -> str:
        n = normalize_nick(nick, max_chars=self.core.config.nick_max_chars)
        if n is None:
            raise InvalidName()
        return n

    def _check_unbound(self, conn_id: ConnectionId) -> None:
        if self.connections.is_bound(conn_id):
            raise AlreadyInRoom()

    def create_room(
        self,
        conn_id: ConnectionId,
        nick: str,
        secret: str,
        room_name: str | None,
        require_approval: bool,
        outgoing: Outgoing,
    ) -> list[dict[int, Any]]:
        """Create a room with ``conn_id`` as its host. Returns the roster snapshot."""
        cfg = self.core.config

        # Reclaim expired rooms before judging capacity.
        self.core.reaper.sweep(outgoing)

        self._check_unbound(conn_id)
        n = self._check_nick(nick)

        name = room_name.strip() if isinstance(room_name, str) else None
        if name == "":
            name = None
        if name is not None and len(name) > int(cfg.max_room_name_len):
            raise BadRequest("room name too long")

        if self.store.live_count() >= int(cfg.max_rooms):
            self.log.warning(
                "Room limit reached rooms=%s max_rooms=%s",
                self.store.live_count(),
                cfg.max_rooms,
            )
            raise CapacityExceeded()

        self._check_key_length(secret)

        room = Room(
            id=self.store.new_room_id(self.core.generate_room_id),
            host_id=conn_id,
            fingerprint=self.core.fingerprint(secret),
            created_at=self.core.clock(),
            name=name,
            require_approval=bool(require_approval),
        )
        self.store.insert(room)
        self.core.stats.inc("rooms_created")

        self.log.info(
            "Room created room=%s host=%s nick=%r approval=%s",
            room.id,
            fmt_conn(conn_id),
            n,
            room.require_approval,
        )
        return self.core.membership.admit(room, conn_id, n, outgoing, is_host=True)

    def _lookup(self, room_id: str) -> Room:
        room = self.store.get(room_id)
        if room is not None:
            return room
        if self.store.was_destroyed(room_id):
            raise RoomDestroyed()
        raise RoomNotFound()

    def join_room(
        self,
        conn_id: ConnectionId,
        nick: str,
        room_id: str,
        secret: str,
        outgoing: Outgoing,
    ) -> JoinOutcome:
        self._check_unbound(conn_id)
        n = self._check_nick(nick)
        self._check_key_length(secret)

        room = self._lookup(room_id)

        if not hmac.compare_digest(self.core.fingerprint(secret), room.fingerprint):
            self.log.info("Join refused room=%s conn=%s: wrong secret", room.id, fmt_conn(conn_id))
            raise WrongSecret()

        if room.name_in_use(n):
            raise NameTaken()

        if not room.require_approval:
            roster = self.core.membership.admit(room, conn_id, n, outgoing, is_host=False)
            self.core.stats.inc("joins")
            return Admitted(room_id=room.id, roster=roster)

        req = PendingJoinRequest(conn_id=conn_id, nick=n, submitted_at=self.core.clock())
        room.pending[conn_id] = req
        self.connections.bind_pending(conn_id, room.id)

        msgs = self.core.messages
        msgs.queue(outgoing, conn_id, T_JOIN_PENDING, room=room.id, body={})
        msgs.queue(
            outgoing,
            room.host_id,
            T_JOIN_REQUEST,
            room=room.id,
            body={
                B_REQ_ID: conn_id,
                B_REQ_NICK: n,
                B_REQ_TS: int(req.submitted_at * 1000),
            },
        )
        self.log.info(
            "Join request queued room=%s conn=%s nick=%r pending=%s",
            room.id,
            fmt_conn(conn_id),
            n,
            len(room.pending),
        )
        return Pending(room_id=room.id)

    def decide_join_request(
        self,
        host_id: ConnectionId,
        target_id: ConnectionId,
        approve: bool,
        reason: str | None,
        outgoing: Outgoing,
        *,
        room_id: str | None = None,
    ) -> None:
        room = self.core.room_for_host(host_id, room_id)

        req = room.pending.get(target_id)
        if req is None:
            raise NoSuchRequest()

        room.pending.pop(target_id, None)
        msgs = self.core.messages

        if approve:
            msgs.queue(
                outgoing, target_id, T_JOIN_RESULT, room=room.id, body={B_RESULT_APPROVED: True}
            )
            self.core.membership.admit(room, target_id, req.nick, outgoing, is_host=False)
            self.core.stats.inc("joins")
            self.log.info(
                "Join approved room=%s conn=%s nick=%r", room.id, fmt_conn(target_id), req.nick
            )
            return

        self.connections.unbind(target_id)
        text = reason.strip() if isinstance(reason, str) and reason.strip() else DEFAULT_REJECT_REASON
        msgs.queue(
            outgoing,
            target_id,
            T_JOIN_RESULT,
            room=room.id,
            body={B_RESULT_APPROVED: False, B_RESULT_REASON: text},
        )
        self.log.info("Join rejected room=%s conn=%s nick=%r", room.id, fmt_conn(target_id), req.nick)

    def withdraw(self, conn_id: ConnectionId, outgoing: Outgoing) -> bool:
        """Drop the pending request held by ``conn_id`` and tell the host."""
        room_id = self.connections.pending_of(conn_id)
        self.connections.unbind(conn_id)
        if room_id is None:
            return False
        room = self.store.get(room_id)
        if room is None:
            return False
        req = room.pending.pop(conn_id, None)
        if req is None:
            return False

        self.core.messages.queue(
            outgoing,
            room.host_id,
            T_JOIN_WITHDRAWN,
            room=room.id,
            body={B_REQ_ID: conn_id, B_REQ_NICK: req.nick},
        )
        self.log.info("Join request withdrawn room=%s conn=%s", room.id, fmt_conn(conn_id))
        return True
