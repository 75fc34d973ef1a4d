"""Roster mutation: admit, remove, kick, leave and room teardown."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

from .constants import (
    B_CLOSED_REASON,
    B_RESULT_APPROVED,
    B_RESULT_REASON,
    CLOSED_HOST_CLOSED,
    CLOSED_HOST_LEFT,
    T_JOIN_RESULT,
    T_JOINED_ROOM,
    T_KICKED,
    T_ROOM_CLOSED,
    T_ROOM_CREATED,
    T_UPDATE_USERS,
)
from .errors import TargetNotInRoom
from .messages import Outgoing
from .rooms import ConnectionId, Member, Room
from .util import fmt_conn

if TYPE_CHECKING:
    from .core import HubCore


class RemovalCause(enum.Enum):
    LEFT = "left"
    KICKED = "kicked"
    HOST_CLOSED = "host_closed"


class MembershipCoordinator:
    def __init__(self, core: HubCore) -> None:
        self.core = core
        self.store = core.store
        self.connections = core.connections
        self.log = logging.getLogger("ghostroomd.membership")

    def admit(
        self,
        room: Room,
        conn_id: ConnectionId,
        nick: str,
        outgoing: Outgoing,
        *,
        is_host: bool = False,
    ) -> list[dict[int, Any]]:
        """Append a member and announce it.

        The joiner gets its own confirmation before any roster broadcast, so
        it never learns about itself from ``update_users`` first.
        """
        room.roster.append(Member(conn_id=conn_id, nick=nick, is_host=is_host))
        self.connections.bind_member(conn_id, room.id)

        msgs = self.core.messages
        confirm = T_ROOM_CREATED if is_host else T_JOINED_ROOM
        msgs.queue(outgoing, conn_id, confirm, room=room.id, body=room.snapshot_body(is_host=is_host))

        roster = room.roster_body()
        msgs.broadcast(outgoing, room, T_UPDATE_USERS, body=roster)
        if not is_host:
            msgs.notice(outgoing, room, f"{nick} has entered the frequency.", exclude=conn_id)

        self.log.info(
            "Admitted room=%s conn=%s nick=%r host=%s members=%s",
            room.id,
            fmt_conn(conn_id),
            nick,
            is_host,
            len(room.roster),
        )
        return roster

    def remove(
        self,
        room: Room,
        conn_id: ConnectionId,
        cause: RemovalCause,
        outgoing: Outgoing,
    ) -> bool:
        member = room.member(conn_id)
        if member is None:
            return False

        if member.is_host and cause is not RemovalCause.HOST_CLOSED:
            self.teardown(room, CLOSED_HOST_LEFT, outgoing)
            return True

        room.roster = [m for m in room.roster if m.conn_id != conn_id]
        self.connections.unbind(conn_id)
        self.core.stats.inc("parts")

        if cause is RemovalCause.HOST_CLOSED:
            return True

        msgs = self.core.messages
        if cause is RemovalCause.KICKED:
            text = f"{member.nick} was removed from the session."
        else:
            text = f"{member.nick} has left."
        msgs.notice(outgoing, room, text)
        msgs.broadcast(outgoing, room, T_UPDATE_USERS, body=room.roster_body())

        self.log.info(
            "Removed room=%s conn=%s nick=%r cause=%s members=%s",
            room.id,
            fmt_conn(conn_id),
            member.nick,
            cause.value,
            len(room.roster),
        )
        return True

    def kick(
        self,
        host_id: ConnectionId,
        target_id: ConnectionId,
        outgoing: Outgoing,
        *,
        room_id: str | None = None,
    ) -> None:
        room = self.core.room_for_host(host_id, room_id)
        if target_id == host_id or not room.is_member(target_id):
            raise TargetNotInRoom()

        self.core.messages.queue(outgoing, target_id, T_KICKED, room=room.id, body={})
        self.remove(room, target_id, RemovalCause.KICKED, outgoing)
        self.core.stats.inc("kicks")

    def leave(self, conn_id: ConnectionId, outgoing: Outgoing, *, room_id: str | None = None) -> None:
        if self.connections.pending_of(conn_id) is not None:
            self.core.admission.withdraw(conn_id, outgoing)
            return
        room = self.core.room_for_member(conn_id, room_id)
        self.remove(room, conn_id, RemovalCause.LEFT, outgoing)

    def close(self, host_id: ConnectionId, outgoing: Outgoing, *, room_id: str | None = None) -> None:
        room = self.core.room_for_host(host_id, room_id)
        self.teardown(room, CLOSED_HOST_CLOSED, outgoing)

    def disconnect(self, conn_id: ConnectionId, outgoing: Outgoing) -> None:
        if self.connections.pending_of(conn_id) is not None:
            self.core.admission.withdraw(conn_id, outgoing)
            return
        room_id = self.connections.room_of(conn_id)
        if room_id is None:
            return
        room = self.store.get(room_id)
        if room is None:
            self.connections.unbind(conn_id)
            return
        self.remove(room, conn_id, RemovalCause.LEFT, outgoing)

    def teardown(self, room: Room, reason: str, outgoing: Outgoing) -> bool:
        """Close a room for good. Safe to call on a room that is already gone."""
        if self.store.get(room.id) is not room:
            return False

        msgs = self.core.messages
        msgs.broadcast(outgoing, room, T_ROOM_CLOSED, body={B_CLOSED_REASON: reason})
        for conn_id in list(room.pending):
            msgs.queue(
                outgoing,
                conn_id,
                T_JOIN_RESULT,
                room=room.id,
                body={B_RESULT_APPROVED: False, B_RESULT_REASON: "room closed"},
            )
            self.connections.unbind(conn_id)

        members = len(room.roster)
        for m in room.roster:
            self.connections.unbind(m.conn_id)
        room.roster = []
        room.pending.clear()

        self.core.relay.cancel_room_timers(room.id)
        self.store.discard(room.id)
        self.store.mark_destroyed(room.id, self.core.clock())
        self.core.stats.inc("rooms_closed")

        self.log.info("Room closed room=%s reason=%s members=%s", room.id, reason, members)
        return True
