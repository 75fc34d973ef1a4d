import threading
import time

from helpers import create, join

from ghostroom.constants import (
    B_MSG_CIPHERTEXT,
    B_MSG_ID,
    K_BODY,
    K_T,
    T_MESSAGE_DELETED,
    T_RECEIVE_MESSAGE,
)
from ghostroom.core import HubCore
from ghostroom.events import SendMessage

HOST = b"\x01" * 8
BOB = b"\x02" * 8


def test_timer_batch_waits_for_slow_earlier_delivery(config, sent) -> None:
    deleted = threading.Event()

    def deliver(outgoing) -> None:
        types = {env[K_T] for _cid, env in outgoing}
        if T_RECEIVE_MESSAGE in types:
            time.sleep(0.3)
        sent(outgoing)
        if T_MESSAGE_DELETED in types:
            deleted.set()

    core = HubCore(config, deliver)
    room_id = create(core, HOST, "ghost")
    join(core, BOB, room_id, "bob")
    sent.clear()

    try:
        core.handle(
            HOST,
            SendMessage(
                message_id="m1",
                ciphertext=b"x",
                body={B_MSG_ID: "m1", B_MSG_CIPHERTEXT: b"x"},
                self_destruct_ms=10,
            ),
        )
        assert deleted.wait(2.0)
    finally:
        core.shutdown()

    assert sent.types(BOB) == [T_RECEIVE_MESSAGE, T_MESSAGE_DELETED]
    assert sent.types(HOST) == [T_MESSAGE_DELETED]


def test_concurrent_handlers_deliver_in_state_order(config, sent) -> None:
    first_queued = threading.Event()

    def deliver(outgoing) -> None:
        if any(env[K_BODY].get(B_MSG_ID) == "m1" for _cid, env in outgoing if env[K_T] == T_RECEIVE_MESSAGE):
            first_queued.set()
            time.sleep(0.2)
        sent(outgoing)

    core = HubCore(config, deliver)
    room_id = create(core, HOST, "ghost")
    join(core, BOB, room_id, "bob")

    def send(mid: str) -> None:
        core.handle(HOST, SendMessage(message_id=mid, ciphertext=b"x", body={B_MSG_ID: mid, B_MSG_CIPHERTEXT: b"x"}))

    first = threading.Thread(target=send, args=("m1",))
    first.start()
    assert first_queued.wait(2.0)
    send("m2")
    first.join(2.0)

    assert [b[B_MSG_ID] for b in sent.bodies(BOB, T_RECEIVE_MESSAGE)] == ["m1", "m2"]
