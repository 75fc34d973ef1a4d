from __future__ import annotations

from .rooms import ConnectionId


class ConnectionRegistry:
    """Tracks which room, if any, each connection belongs to.

    A connection is either a member of one room, waiting on one pending join
    request, or unbound.
    """

    def __init__(self) -> None:
        self._member_of: dict[ConnectionId, str] = {}
        self._pending_on: dict[ConnectionId, str] = {}

    def bind_member(self, conn_id: ConnectionId, room_id: str) -> None:
        self._pending_on.pop(conn_id, None)
        self._member_of[conn_id] = room_id

    def bind_pending(self, conn_id: ConnectionId, room_id: str) -> None:
        self._member_of.pop(conn_id, None)
        self._pending_on[conn_id] = room_id

    def unbind(self, conn_id: ConnectionId) -> None:
        self._member_of.pop(conn_id, None)
        self._pending_on.pop(conn_id, None)

    def room_of(self, conn_id: ConnectionId) -> str | None:
        return self._member_of.get(conn_id)

    def pending_of(self, conn_id: ConnectionId) -> str | None:
        return self._pending_on.get(conn_id)

    def is_bound(self, conn_id: ConnectionId) -> bool:
        return conn_id in self._member_of or conn_id in self._pending_on

    def __len__(self) -> int:
        return len(self._member_of) + len(self._pending_on)

    def clear_all(self) -> None:
        self._member_of.clear()
        self._pending_on.clear()
