from dataclasses import replace

from helpers import create, join, make_core

from ghostroom.constants import (
    B_CLOSED_REASON,
    B_ERROR_CODE,
    B_MSG_CIPHERTEXT,
    B_MSG_ID,
    CLOSED_EXPIRED,
    T_ERROR,
    T_ROOM_CLOSED,
)
from ghostroom.events import SendMessage

HOST = b"\x01" * 8
BOB = b"\x02" * 8
CAROL = b"\x03" * 8


def test_sweep_expires_old_rooms_only(config, sent, clock, timers) -> None:
    core = make_core(replace(config, max_room_age_s=100.0), sent, clock, timers)
    old = create(core, HOST, "ghost")
    join(core, BOB, old, "bob")

    clock.advance(50)
    young = create(core, CAROL, "carol")
    sent.clear()

    clock.advance(51)
    expired = core.sweep()

    assert expired == [old]
    assert sent.bodies(BOB, T_ROOM_CLOSED) == [{B_CLOSED_REASON: CLOSED_EXPIRED}]
    assert sent.bodies(HOST, T_ROOM_CLOSED) == [{B_CLOSED_REASON: CLOSED_EXPIRED}]
    assert sent.to(CAROL) == []
    assert core.store.get(young) is not None
    assert core.stats.get("rooms_expired") == 1


def test_room_at_exact_age_is_kept(config, sent, clock, timers) -> None:
    core = make_core(replace(config, max_room_age_s=100.0), sent, clock, timers)
    room_id = create(core, HOST)
    clock.advance(100)
    assert core.sweep() == []
    assert core.store.get(room_id) is not None


def test_expired_room_reads_as_destroyed(config, sent, clock, timers) -> None:
    core = make_core(replace(config, max_room_age_s=100.0), sent, clock, timers)
    room_id = create(core, HOST)
    clock.advance(101)
    core.sweep()

    join(core, BOB, room_id, "bob")
    assert [b[B_ERROR_CODE] for b in sent.bodies(BOB, T_ERROR)] == ["ROOM_DESTROYED"]


def test_expiry_cancels_pending_self_destructs(config, sent, clock, timers) -> None:
    core = make_core(replace(config, max_room_age_s=100.0), sent, clock, timers)
    create(core, HOST)
    core.handle(
        HOST,
        SendMessage(
            message_id="m1",
            ciphertext=b"x",
            body={B_MSG_ID: "m1", B_MSG_CIPHERTEXT: b"x"},
            self_destruct_ms=3_600_000,
        ),
    )
    clock.advance(101)
    core.sweep()
    assert timers.pending() == 0


def test_sweep_is_idempotent(config, sent, clock, timers) -> None:
    core = make_core(replace(config, max_room_age_s=10.0), sent, clock, timers)
    create(core, HOST)
    clock.advance(11)
    assert len(core.sweep()) == 1
    assert core.sweep() == []
    assert core.stats.get("rooms_closed") == 1
