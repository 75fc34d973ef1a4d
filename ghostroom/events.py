"""Inbound event schemas.

Each inbound event type has one frozen dataclass. :func:`parse_event` turns a
validated envelope into one of them, raising ``TypeError``/``ValueError`` for
bodies that do not fit the schema. Nothing past this module ever looks at a
raw body map.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .constants import (
    B_CREATE_APPROVAL,
    B_CREATE_NAME,
    B_CREATE_NICK,
    B_CREATE_SECRET,
    B_DECIDE_APPROVE,
    B_DECIDE_REASON,
    B_DECIDE_TARGET,
    B_DELETE_ID,
    B_EDIT_CIPHERTEXT,
    B_EDIT_ID,
    B_JOIN_NICK,
    B_JOIN_SECRET,
    B_KICK_TARGET,
    B_MSG_CIPHERTEXT,
    B_MSG_ID,
    B_MSG_POLL,
    B_MSG_REPLY_TO,
    B_MSG_SELF_DESTRUCT_MS,
    B_MSG_SENDER,
    B_OPTION_CIPHERTEXT,
    B_OPTION_ID,
    B_POLL_EXPIRES_AT,
    B_POLL_MULTIPLE,
    B_POLL_OPTIONS,
    B_TYPING,
    B_VOTE_ACTION,
    B_VOTE_MSG,
    B_VOTE_OPTION,
    K_BODY,
    K_ROOM,
    K_T,
    MESSAGE_ID_MAX_LEN,
    POLL_EXPIRES_MAX_MS,
    SELF_DESTRUCT_MAX_MS,
    T_CLOSE_ROOM,
    T_CREATE_ROOM,
    T_DECIDE_JOIN,
    T_DELETE_MESSAGE,
    T_EDIT_MESSAGE,
    T_JOIN_ROOM,
    T_KICK_USER,
    T_LEAVE_ROOM,
    T_POLL_VOTE,
    T_SEND_MESSAGE,
    T_TYPING_STATUS,
    VOTE_ADD,
    VOTE_REMOVE,
)
from .rooms import Poll, PollOption


@dataclass(frozen=True)
class CreateRoom:
    nick: str
    secret: str
    room_name: str | None = None
    require_approval: bool = False


@dataclass(frozen=True)
class JoinRoom:
    room_id: str
    nick: str
    secret: str


@dataclass(frozen=True)
class DecideJoin:
    target: bytes
    approve: bool
    reason: str | None = None
    room: str | None = None


@dataclass(frozen=True)
class KickUser:
    target: bytes
    room: str | None = None


@dataclass(frozen=True)
class LeaveRoom:
    room: str | None = None


@dataclass(frozen=True)
class CloseRoom:
    room: str | None = None


@dataclass(frozen=True)
class SendMessage:
    message_id: Any
    ciphertext: Any
    body: dict
    self_destruct_ms: int | None = None
    reply_to: Any = None
    poll: Poll | None = None
    room: str | None = None


@dataclass(frozen=True)
class EditMessage:
    message_id: Any
    ciphertext: Any
    room: str | None = None


@dataclass(frozen=True)
class DeleteMessage:
    message_id: Any
    room: str | None = None


@dataclass(frozen=True)
class PollVote:
    message_id: Any
    option_id: Any
    action: str
    room: str | None = None


@dataclass(frozen=True)
class TypingStatus:
    is_typing: bool
    room: str | None = None


Event = Union[
    CreateRoom,
    JoinRoom,
    DecideJoin,
    KickUser,
    LeaveRoom,
    CloseRoom,
    SendMessage,
    EditMessage,
    DeleteMessage,
    PollVote,
    TypingStatus,
]


def _body(env: dict) -> dict:
    body = env.get(K_BODY)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise TypeError("event body must be a map")
    return body


def _opt_str(value: Any, what: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"{what} must be a string")
    return value


def _secret(value: Any) -> str:
    # A missing or non-string secret counts as zero length and is rejected by
    # the key length policy rather than as a malformed request.
    return value if isinstance(value, str) else ""


def _nick(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError("nick must be a string")
    return value


def _bool(value: Any, what: str, default: bool = False) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise TypeError(f"{what} must be a boolean")
    return value


def _conn_id(value: Any) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or not value:
        raise TypeError("target must be a connection id (bytes)")
    return bytes(value)


def message_id(value: Any) -> Any:
    if isinstance(value, bytearray):
        value = bytes(value)
    if not isinstance(value, (bytes, str)):
        raise TypeError("message id must be bytes or a string")
    if not value:
        raise ValueError("message id must not be empty")
    if len(value) > MESSAGE_ID_MAX_LEN:
        raise ValueError("message id too long")
    return value


def _ciphertext(value: Any) -> Any:
    if isinstance(value, bytearray):
        value = bytes(value)
    if not isinstance(value, (bytes, str)):
        raise TypeError("ciphertext must be bytes or a string")
    return value


def _parse_poll(raw: Any) -> Poll:
    if not isinstance(raw, dict):
        raise TypeError("poll must be a map")
    raw_opts = raw.get(B_POLL_OPTIONS)
    if not isinstance(raw_opts, list) or not raw_opts:
        raise ValueError("poll needs at least one option")

    options: list[PollOption] = []
    seen: set[Any] = set()
    for item in raw_opts:
        if not isinstance(item, dict):
            raise TypeError("poll option must be a map")
        oid = message_id(item.get(B_OPTION_ID))
        if oid in seen:
            raise ValueError("duplicate poll option id")
        seen.add(oid)
        options.append(PollOption(id=oid, ciphertext=_ciphertext(item.get(B_OPTION_CIPHERTEXT))))

    expires = raw.get(B_POLL_EXPIRES_AT)
    if expires is not None:
        if isinstance(expires, bool) or not isinstance(expires, int):
            raise TypeError("poll expiry must be an integer (ms)")
        if not 0 <= expires <= POLL_EXPIRES_MAX_MS:
            raise ValueError("poll expiry out of range")

    return Poll(
        options=options,
        allow_multiple=_bool(raw.get(B_POLL_MULTIPLE), "allow_multiple"),
        expires_at=(expires / 1000.0) if expires is not None else None,
    )


def _parse_send(room: str | None, body: dict) -> SendMessage:
    timer = body.get(B_MSG_SELF_DESTRUCT_MS)
    if timer is not None:
        if isinstance(timer, bool) or not isinstance(timer, int):
            raise TypeError("self destruct must be an integer (ms)")
        if timer < 0:
            raise ValueError("self destruct must not be negative")
        if timer > SELF_DESTRUCT_MAX_MS:
            raise ValueError("self destruct too long")

    reply_to = body.get(B_MSG_REPLY_TO)
    if reply_to is not None:
        reply_to = message_id(reply_to)

    raw_poll = body.get(B_MSG_POLL)
    forwarded = dict(body)
    # The hub stamps the sender itself.
    forwarded.pop(B_MSG_SENDER, None)

    return SendMessage(
        message_id=message_id(body.get(B_MSG_ID)),
        ciphertext=_ciphertext(body.get(B_MSG_CIPHERTEXT)),
        body=forwarded,
        self_destruct_ms=timer,
        reply_to=reply_to,
        poll=_parse_poll(raw_poll) if raw_poll is not None else None,
        room=room,
    )


def parse_event(env: dict) -> Event | None:
    """Parse a validated envelope. Returns None for event types the hub does not accept."""
    t = env.get(K_T)
    room = env.get(K_ROOM)
    body = _body(env)

    if t == T_CREATE_ROOM:
        return CreateRoom(
            nick=_nick(body.get(B_CREATE_NICK)),
            secret=_secret(body.get(B_CREATE_SECRET)),
            room_name=_opt_str(body.get(B_CREATE_NAME), "room name"),
            require_approval=_bool(body.get(B_CREATE_APPROVAL), "require_approval"),
        )
    if t == T_JOIN_ROOM:
        if not isinstance(room, str) or not room.strip():
            raise ValueError("join_room requires a room id")
        return JoinRoom(
            room_id=room.strip().upper(),
            nick=_nick(body.get(B_JOIN_NICK)),
            secret=_secret(body.get(B_JOIN_SECRET)),
        )
    if t == T_DECIDE_JOIN:
        approve = body.get(B_DECIDE_APPROVE)
        if not isinstance(approve, bool):
            raise TypeError("approve must be a boolean")
        return DecideJoin(
            target=_conn_id(body.get(B_DECIDE_TARGET)),
            approve=approve,
            reason=_opt_str(body.get(B_DECIDE_REASON), "reason"),
            room=room,
        )
    if t == T_KICK_USER:
        return KickUser(target=_conn_id(body.get(B_KICK_TARGET)), room=room)
    if t == T_LEAVE_ROOM:
        return LeaveRoom(room=room)
    if t == T_CLOSE_ROOM:
        return CloseRoom(room=room)
    if t == T_SEND_MESSAGE:
        return _parse_send(room, body)
    if t == T_EDIT_MESSAGE:
        return EditMessage(
            message_id=message_id(body.get(B_EDIT_ID)),
            ciphertext=_ciphertext(body.get(B_EDIT_CIPHERTEXT)),
            room=room,
        )
    if t == T_DELETE_MESSAGE:
        return DeleteMessage(message_id=message_id(body.get(B_DELETE_ID)), room=room)
    if t == T_POLL_VOTE:
        action = body.get(B_VOTE_ACTION)
        if action not in (VOTE_ADD, VOTE_REMOVE):
            raise ValueError("vote action must be 'add' or 'remove'")
        return PollVote(
            message_id=message_id(body.get(B_VOTE_MSG)),
            option_id=message_id(body.get(B_VOTE_OPTION)),
            action=action,
            room=room,
        )
    if t == T_TYPING_STATUS:
        return TypingStatus(is_typing=_bool(body.get(B_TYPING), "is_typing"), room=room)

    return None
