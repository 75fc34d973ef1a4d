from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .constants import (
    B_DELETE_ID,
    B_EDIT_CIPHERTEXT,
    B_EDIT_ID,
    B_MSG_SENDER,
    B_TYPING,
    B_TYPING_NICK,
    B_VOTE_ACTION,
    B_VOTE_MSG,
    B_VOTE_OPTION,
    B_VOTE_VOTER,
    SELF_DESTRUCT_MAX_MS,
    T_MESSAGE_DELETED,
    T_MESSAGE_UPDATED,
    T_POLL_VOTE_UPDATE,
    T_RECEIVE_MESSAGE,
    T_USER_TYPING,
    VOTE_ADD,
    VOTE_REMOVE,
)
from .errors import BadRequest, NotAMember, NotAuthor, PollClosed
from .events import SendMessage
from .messages import Outgoing
from .rooms import ConnectionId, MessageRecord, Room
from .util import fmt_conn

if TYPE_CHECKING:
    from .core import HubCore


class MessageRelay:
    """
    Forwards chat traffic between the members of a room.

    Ciphertext is passed through untouched. The relay also owns:
    - Self-destruct timers, keyed by (room id, message id)
    - Idempotent deletion (one message_deleted per message id)
    - Poll tallies for polls it has seen go by
    """

    def __init__(self, core: HubCore) -> None:
        self.core = core
        self.store = core.store
        self.timers = core.timers
        self.log = logging.getLogger("ghostroomd.relay")

    def _sender(self, room: Room, conn_id: ConnectionId) -> str:
        member = room.member(conn_id)
        if member is None:
            raise NotAMember()
        return member.nick

    def _check_author(self, room: Room, conn_id: ConnectionId, message_id: Any) -> None:
        if not self.core.config.enforce_message_authors:
            return
        rec = room.messages.get(message_id)
        if rec is not None and rec.author_id != conn_id:
            raise NotAuthor()

    def _size_ok(self, ciphertext: Any) -> bool:
        limit = int(self.core.config.max_msg_body_bytes)
        if limit <= 0:
            return True
        raw = ciphertext.encode("utf-8") if isinstance(ciphertext, str) else ciphertext
        return len(raw) <= limit

    def relay_message(self, conn_id: ConnectionId, msg: SendMessage, outgoing: Outgoing) -> None:
        room = self.core.room_for_member(conn_id, msg.room)
        nick = self._sender(room, conn_id)

        if not self._size_ok(msg.ciphertext):
            raise BadRequest("message too large")
        delay_s = self._delay_s(msg.self_destruct_ms)

        mid = msg.message_id
        if mid in room.messages or mid in room.deleted:
            self.log.debug("Duplicate message id ignored room=%s mid=%r", room.id, mid)
            return

        room.messages[mid] = MessageRecord(author_id=conn_id, author_nick=nick)
        if msg.poll is not None:
            room.polls[mid] = msg.poll

        body = dict(msg.body)
        body[B_MSG_SENDER] = nick
        self.core.messages.broadcast(outgoing, room, T_RECEIVE_MESSAGE, body=body, exclude=conn_id)
        self.core.stats.inc("msgs_forwarded")

        if delay_s is not None:
            self._schedule_self_destruct(room.id, mid, delay_s)

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Relayed room=%s conn=%s mid=%r recipients=%s timer_ms=%s",
                room.id,
                fmt_conn(conn_id),
                mid,
                len(room.roster) - 1,
                msg.self_destruct_ms,
            )

    def _delay_s(self, delay_ms: int | None) -> float | None:
        if not delay_ms:
            return None
        if delay_ms > SELF_DESTRUCT_MAX_MS:
            raise BadRequest("self destruct too long")
        return delay_ms / 1000.0

    def _schedule_self_destruct(self, room_id: str, message_id: Any, delay_s: float) -> None:
        key = (room_id, message_id)

        def fire() -> None:
            self.core.run_deferred(lambda out: self._expire(room_id, message_id, out))

        self.timers.schedule(key, delay_s, fire)

    def _expire(self, room_id: str, message_id: Any, outgoing: Outgoing) -> None:
        room = self.store.get(room_id)
        if room is None:
            return
        if self._mark_deleted(room, message_id, outgoing):
            self.core.stats.inc("self_destructs")

    def _mark_deleted(self, room: Room, message_id: Any, outgoing: Outgoing) -> bool:
        if message_id in room.deleted:
            return False
        room.deleted.add(message_id)
        room.messages.pop(message_id, None)
        room.polls.pop(message_id, None)
        self.core.messages.broadcast(
            outgoing, room, T_MESSAGE_DELETED, body={B_DELETE_ID: message_id}
        )
        return True

    def delete_message(
        self,
        conn_id: ConnectionId,
        message_id: Any,
        outgoing: Outgoing,
        *,
        room_id: str | None = None,
    ) -> None:
        room = self.core.room_for_member(conn_id, room_id)
        self._sender(room, conn_id)
        self._check_author(room, conn_id, message_id)

        if self._mark_deleted(room, message_id, outgoing):
            self.timers.cancel((room.id, message_id))
            self.log.debug("Deleted room=%s mid=%r by=%s", room.id, message_id, fmt_conn(conn_id))

    def edit_message(
        self,
        conn_id: ConnectionId,
        message_id: Any,
        ciphertext: Any,
        outgoing: Outgoing,
        *,
        room_id: str | None = None,
    ) -> None:
        room = self.core.room_for_member(conn_id, room_id)
        self._sender(room, conn_id)
        self._check_author(room, conn_id, message_id)

        if not self._size_ok(ciphertext):
            raise BadRequest("message too large")
        if message_id in room.deleted:
            return

        self.core.messages.broadcast(
            outgoing,
            room,
            T_MESSAGE_UPDATED,
            body={B_EDIT_ID: message_id, B_EDIT_CIPHERTEXT: ciphertext},
        )

    def vote_poll(
        self,
        conn_id: ConnectionId,
        message_id: Any,
        option_id: Any,
        action: str,
        outgoing: Outgoing,
        *,
        room_id: str | None = None,
    ) -> None:
        room = self.core.room_for_member(conn_id, room_id)
        voter = self._sender(room, conn_id)
        if message_id in room.deleted:
            return

        poll = room.polls.get(message_id)
        if poll is None:
            # Never saw this poll; pass the vote through and let clients tally.
            self._emit_vote(room, message_id, option_id, action, voter, outgoing)
            return

        if poll.is_closed(self.core.clock()):
            raise PollClosed()
        option = poll.option(option_id)
        if option is None:
            raise BadRequest("unknown poll option")

        if action == VOTE_REMOVE:
            if voter in option.votes:
                option.votes.discard(voter)
                self._emit_vote(room, message_id, option_id, VOTE_REMOVE, voter, outgoing)
            return

        if voter in option.votes:
            return
        if not poll.allow_multiple:
            for other in poll.options:
                if other is not option and voter in other.votes:
                    other.votes.discard(voter)
                    self._emit_vote(room, message_id, other.id, VOTE_REMOVE, voter, outgoing)
        option.votes.add(voter)
        self._emit_vote(room, message_id, option_id, VOTE_ADD, voter, outgoing)

    def _emit_vote(
        self,
        room: Room,
        message_id: Any,
        option_id: Any,
        action: str,
        voter: str,
        outgoing: Outgoing,
    ) -> None:
        self.core.messages.broadcast(
            outgoing,
            room,
            T_POLL_VOTE_UPDATE,
            body={
                B_VOTE_MSG: message_id,
                B_VOTE_OPTION: option_id,
                B_VOTE_ACTION: action,
                B_VOTE_VOTER: voter,
            },
        )

    def typing(
        self,
        conn_id: ConnectionId,
        is_typing: bool,
        outgoing: Outgoing,
        *,
        room_id: str | None = None,
    ) -> None:
        room = self.core.room_for_member(conn_id, room_id)
        nick = self._sender(room, conn_id)
        self.core.messages.broadcast(
            outgoing,
            room,
            T_USER_TYPING,
            body={B_TYPING_NICK: nick, B_TYPING: bool(is_typing)},
            exclude=conn_id,
        )

    def cancel_room_timers(self, room_id: str) -> int:
        return self.timers.cancel_where(lambda k: isinstance(k, tuple) and k[0] == room_id)
