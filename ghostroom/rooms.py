"""Room state for the ghostroom hub.

This module holds the in-process room model:
- Rooms, their rosters and pending join requests
- Poll tallies and per-message bookkeeping (authors, deletions)
- The live room table and the memory of recently destroyed room ids

Nothing here talks to the network. All mutation happens under the hub's
state lock (see ``HubCore``).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from .constants import (
    B_MEMBER_HOST,
    B_MEMBER_ID,
    B_MEMBER_NICK,
    B_ROOM_APPROVAL,
    B_ROOM_CREATED_AT,
    B_ROOM_ID,
    B_ROOM_IS_HOST,
    B_ROOM_NAME,
    B_ROOM_ROSTER,
)
from .util import nick_key

ConnectionId = bytes


@dataclass(frozen=True)
class Member:
    conn_id: ConnectionId
    nick: str
    is_host: bool = False


@dataclass(frozen=True)
class PendingJoinRequest:
    conn_id: ConnectionId
    nick: str
    submitted_at: float


@dataclass
class PollOption:
    id: Any
    ciphertext: Any
    votes: set[str] = field(default_factory=set)


@dataclass
class Poll:
    options: list[PollOption]
    allow_multiple: bool = False
    expires_at: float | None = None

    def option(self, option_id: Any) -> PollOption | None:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    def is_closed(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


@dataclass(frozen=True)
class MessageRecord:
    author_id: ConnectionId
    author_nick: str


@dataclass
class Room:
    id: str
    host_id: ConnectionId
    fingerprint: str
    created_at: float
    name: str | None = None
    require_approval: bool = False
    roster: list[Member] = field(default_factory=list)
    pending: dict[ConnectionId, PendingJoinRequest] = field(default_factory=dict)
    polls: dict[Any, Poll] = field(default_factory=dict)
    messages: dict[Any, MessageRecord] = field(default_factory=dict)
    deleted: set[Any] = field(default_factory=set)

    def member(self, conn_id: ConnectionId) -> Member | None:
        for m in self.roster:
            if m.conn_id == conn_id:
                return m
        return None

    def is_member(self, conn_id: ConnectionId) -> bool:
        return self.member(conn_id) is not None

    def member_ids(self) -> list[ConnectionId]:
        return [m.conn_id for m in self.roster]

    def name_in_use(self, nick: str) -> bool:
        """True if a member or a pending request already holds ``nick``.

        Comparison is case-insensitive.
        """
        key = nick_key(nick)
        if any(nick_key(m.nick) == key for m in self.roster):
            return True
        return any(nick_key(p.nick) == key for p in self.pending.values())

    def roster_body(self) -> list[dict[int, Any]]:
        return [
            {B_MEMBER_ID: m.conn_id, B_MEMBER_NICK: m.nick, B_MEMBER_HOST: m.is_host}
            for m in self.roster
        ]

    def snapshot_body(self, *, is_host: bool) -> dict[int, Any]:
        body: dict[int, Any] = {
            B_ROOM_ID: self.id,
            B_ROOM_CREATED_AT: int(self.created_at * 1000),
            B_ROOM_ROSTER: self.roster_body(),
            B_ROOM_IS_HOST: bool(is_host),
            B_ROOM_APPROVAL: bool(self.require_approval),
        }
        if self.name is not None:
            body[B_ROOM_NAME] = self.name
        return body


class RoomStore:
    """Live rooms plus the memory of destroyed room ids."""

    def __init__(self) -> None:
        self.log = logging.getLogger("ghostroomd.rooms")
        self._rooms: dict[str, Room] = {}
        self._destroyed: dict[str, float] = {}

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def insert(self, room: Room) -> None:
        if room.id in self._rooms:
            raise ValueError(f"room {room.id} already exists")
        self._rooms[room.id] = room

    def discard(self, room_id: str) -> Room | None:
        return self._rooms.pop(room_id, None)

    def live_count(self) -> int:
        return len(self._rooms)

    def rooms(self) -> Iterator[Room]:
        # Snapshot so callers may discard while iterating.
        return iter(list(self._rooms.values()))

    def new_room_id(self, generate: Callable[[], str], *, attempts: int = 64) -> str:
        """Draw ids until one is unused by live and recently destroyed rooms."""
        for _ in range(max(1, attempts)):
            rid = generate()
            if rid not in self._rooms and rid not in self._destroyed:
                return rid
            self.log.debug("Room id collision id=%s; retrying", rid)
        raise RuntimeError("could not allocate a unique room id")

    def mark_destroyed(self, room_id: str, at: float) -> None:
        self._destroyed[room_id] = float(at)

    def was_destroyed(self, room_id: str) -> bool:
        return room_id in self._destroyed

    def prune_destroyed(self, now: float, retention_s: float) -> int:
        stale = [rid for rid, at in self._destroyed.items() if now - at > retention_s]
        for rid in stale:
            self._destroyed.pop(rid, None)
        return len(stale)

    def get_stats(self) -> dict[str, Any]:
        memberships = sum(len(r.roster) for r in self._rooms.values())
        pending = sum(len(r.pending) for r in self._rooms.values())
        return {
            "rooms_total": len(self._rooms),
            "memberships": memberships,
            "pending_joins": pending,
            "destroyed_remembered": len(self._destroyed),
        }

    def clear_all(self) -> None:
        self._rooms.clear()
        self._destroyed.clear()
