"""Outbound message queueing for the ghostroom hub."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .constants import B_ERROR_CODE, B_ERROR_TEXT, T_ERROR, T_NOTICE
from .envelope import make_envelope
from .errors import HubError
from .rooms import ConnectionId, Room

Outgoing = list[tuple[ConnectionId, dict]]


class MessageHelper:
    """
    Builds hub envelopes and appends them to an outgoing queue.

    Nothing is sent from here: the queue is delivered by the caller once the
    state lock has been released, in list order.
    """

    def __init__(self, src: bytes) -> None:
        self.src = src

    def queue(
        self,
        outgoing: Outgoing,
        conn_id: ConnectionId,
        msg_type: int,
        *,
        room: str | None = None,
        body: Any = None,
    ) -> None:
        env = make_envelope(msg_type, src=self.src, room=room, body=body)
        outgoing.append((conn_id, env))

    def queue_many(
        self,
        outgoing: Outgoing,
        conn_ids: Iterable[ConnectionId],
        msg_type: int,
        *,
        room: str | None = None,
        body: Any = None,
    ) -> None:
        # One envelope id per fan-out so receivers can correlate copies.
        env = make_envelope(msg_type, src=self.src, room=room, body=body)
        for conn_id in conn_ids:
            outgoing.append((conn_id, dict(env)))

    def broadcast(
        self,
        outgoing: Outgoing,
        room: Room,
        msg_type: int,
        *,
        body: Any = None,
        exclude: ConnectionId | None = None,
    ) -> None:
        recipients = [cid for cid in room.member_ids() if cid != exclude]
        if recipients:
            self.queue_many(outgoing, recipients, msg_type, room=room.id, body=body)

    def notice(
        self,
        outgoing: Outgoing,
        room: Room,
        text: str,
        *,
        exclude: ConnectionId | None = None,
    ) -> None:
        self.broadcast(outgoing, room, T_NOTICE, body=text, exclude=exclude)

    def error(
        self,
        outgoing: Outgoing,
        conn_id: ConnectionId,
        err: HubError,
        *,
        room: str | None = None,
    ) -> None:
        self.queue(
            outgoing,
            conn_id,
            T_ERROR,
            room=room,
            body={B_ERROR_CODE: err.code, B_ERROR_TEXT: err.text},
        )
