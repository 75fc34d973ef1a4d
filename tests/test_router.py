import threading
from dataclasses import replace

from helpers import SECRET, make_core

from ghostroom.codec import encode
from ghostroom.constants import (
    B_CREATE_NICK,
    B_CREATE_SECRET,
    B_ERROR_CODE,
    B_JOIN_NICK,
    B_JOIN_SECRET,
    B_MSG_CIPHERTEXT,
    B_MSG_ID,
    B_MSG_POLL,
    B_MSG_SELF_DESTRUCT_MS,
    B_MSG_SENDER,
    B_OPTION_CIPHERTEXT,
    B_OPTION_ID,
    B_POLL_EXPIRES_AT,
    B_POLL_OPTIONS,
    B_ROOM_ID,
    K_BODY,
    T_CREATE_ROOM,
    T_ERROR,
    T_JOIN_ROOM,
    T_RECEIVE_MESSAGE,
    T_ROOM_CREATED,
    T_SEND_MESSAGE,
    T_USER_TYPING,
)
from ghostroom.envelope import make_envelope
from ghostroom.router import MessageRouter
from ghostroom.session import SessionManager


class FakeLink:
    pass


def _setup(config, sent, clock, timers):
    core = make_core(config, sent, clock, timers)
    sessions = SessionManager(config)
    router = MessageRouter(core, sessions, threading.RLock())
    return core, sessions, router


def _packet(t, body=None, room=None) -> bytes:
    return encode(make_envelope(t, src=b"client", room=room, body=body))


def _error_codes(sent, conn_id):
    return [b[B_ERROR_CODE] for b in sent.bodies(conn_id, T_ERROR)]


def test_create_join_and_relay_over_packets(config, sent, clock, timers) -> None:
    core, sessions, router = _setup(config, sent, clock, timers)
    host_link, bob_link = FakeLink(), FakeLink()
    host = sessions.on_link_established(host_link)
    bob = sessions.on_link_established(bob_link)

    router.route_packet(host_link, _packet(T_CREATE_ROOM, {B_CREATE_NICK: "ghost", B_CREATE_SECRET: SECRET}))
    room_id = sent.bodies(host, T_ROOM_CREATED)[0][B_ROOM_ID]

    router.route_packet(
        bob_link,
        _packet(T_JOIN_ROOM, {B_JOIN_NICK: "bob", B_JOIN_SECRET: SECRET}, room=room_id.lower()),
    )
    assert core.store.get(room_id).is_member(bob)

    router.route_packet(
        bob_link,
        _packet(
            T_SEND_MESSAGE,
            {B_MSG_ID: b"\x00\x01", B_MSG_CIPHERTEXT: b"sealed", B_MSG_SENDER: "ghost"},
            room=room_id,
        ),
    )
    received = sent.bodies(host, T_RECEIVE_MESSAGE)
    assert received == [{B_MSG_ID: b"\x00\x01", B_MSG_CIPHERTEXT: b"sealed", B_MSG_SENDER: "bob"}]
    assert core.stats.get("pkts_in") == 3


def test_garbage_is_dropped_silently(config, sent, clock, timers) -> None:
    core, sessions, router = _setup(config, sent, clock, timers)
    link = FakeLink()
    sessions.on_link_established(link)

    router.route_packet(link, b"\xff\x00not cbor")
    router.route_packet(link, encode({"not": "an envelope"}))

    assert sent.items == []
    assert core.stats.get("pkts_bad") == 2


def test_malformed_body_gets_bad_request(config, sent, clock, timers) -> None:
    core, sessions, router = _setup(config, sent, clock, timers)
    link = FakeLink()
    conn = sessions.on_link_established(link)

    router.route_packet(link, _packet(T_SEND_MESSAGE, {B_MSG_ID: 12, B_MSG_CIPHERTEXT: b"x"}))
    router.route_packet(link, _packet(T_USER_TYPING, {}))

    assert _error_codes(sent, conn) == ["BAD_REQUEST", "BAD_REQUEST"]


def test_unknown_link_is_ignored(config, sent, clock, timers) -> None:
    _core, _sessions, router = _setup(config, sent, clock, timers)
    router.route_packet(FakeLink(), _packet(T_CREATE_ROOM, {B_CREATE_NICK: "x", B_CREATE_SECRET: SECRET}))
    assert sent.items == []


def test_rate_limit(config, sent, clock, timers) -> None:
    cfg = replace(config, rate_limit_msgs_per_minute=2)
    core, sessions, router = _setup(cfg, sent, clock, timers)
    link = FakeLink()
    conn = sessions.on_link_established(link)

    for _ in range(3):
        router.route_packet(link, _packet(T_SEND_MESSAGE, {B_MSG_ID: "m", B_MSG_CIPHERTEXT: b"x"}))

    assert _error_codes(sent, conn) == ["NOT_A_MEMBER", "NOT_A_MEMBER", "RATE_LIMITED"]
    assert core.stats.get("rate_limited") == 1


def test_link_close_forgets_session(config, sent, clock, timers) -> None:
    _core, sessions, _router = _setup(config, sent, clock, timers)
    link = FakeLink()
    conn = sessions.on_link_established(link)

    assert sessions.link_for(conn) is link
    assert sessions.on_link_closed(link) == conn
    assert sessions.link_for(conn) is None
    assert sessions.on_link_closed(link) is None


def test_error_envelope_body_has_code_and_text(config, sent, clock, timers) -> None:
    _core, sessions, router = _setup(config, sent, clock, timers)
    link = FakeLink()
    conn = sessions.on_link_established(link)

    router.route_packet(link, _packet(T_JOIN_ROOM, {B_JOIN_NICK: "bob", B_JOIN_SECRET: SECRET}, room="NOPE"))

    (env,) = sent.to(conn, T_ERROR)
    assert set(env[K_BODY]) == {0, 1}


def test_oversized_timer_and_expiry_are_bad_requests(config, sent, clock, timers) -> None:
    core, sessions, router = _setup(config, sent, clock, timers)
    host_link, bob_link = FakeLink(), FakeLink()
    host = sessions.on_link_established(host_link)
    bob = sessions.on_link_established(bob_link)

    router.route_packet(host_link, _packet(T_CREATE_ROOM, {B_CREATE_NICK: "ghost", B_CREATE_SECRET: SECRET}))
    room_id = sent.bodies(host, T_ROOM_CREATED)[0][B_ROOM_ID]
    router.route_packet(bob_link, _packet(T_JOIN_ROOM, {B_JOIN_NICK: "bob", B_JOIN_SECRET: SECRET}, room=room_id))

    poll = {B_POLL_OPTIONS: [{B_OPTION_ID: "a", B_OPTION_CIPHERTEXT: b"yes"}], B_POLL_EXPIRES_AT: 10**400}
    for extra in ({B_MSG_SELF_DESTRUCT_MS: 10**400}, {B_MSG_POLL: poll}):
        body = {B_MSG_ID: "m1", B_MSG_CIPHERTEXT: b"sealed", **extra}
        router.route_packet(host_link, _packet(T_SEND_MESSAGE, body, room=room_id))

    assert _error_codes(sent, host) == ["BAD_REQUEST", "BAD_REQUEST"]
    assert sent.bodies(bob, T_RECEIVE_MESSAGE) == []
    assert "m1" not in core.store.get(room_id).messages
    assert timers.pending() == 0

    # The id was never recorded, so a well-formed retry goes through.
    router.route_packet(host_link, _packet(T_SEND_MESSAGE, {B_MSG_ID: "m1", B_MSG_CIPHERTEXT: b"sealed"}, room=room_id))
    assert [b[B_MSG_ID] for b in sent.bodies(bob, T_RECEIVE_MESSAGE)] == ["m1"]
