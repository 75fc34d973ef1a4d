import pytest
from helpers import join

from ghostroom.admission import Admitted
from ghostroom.constants import B_ERROR_CODE, B_MEMBER_NICK, T_ERROR, T_KICKED, T_UPDATE_USERS
from ghostroom.errors import NameTaken, WrongSecret
from ghostroom.events import CreateRoom, KickUser

HOST = b"\x0a" * 8
GUEST = b"\x0b" * 8
OTHER = b"\x0c" * 8


def test_create_join_kick_disconnect(core, sent) -> None:
    core.handle(HOST, CreateRoom(nick="H", secret="abcdef"))
    room_id = core.connections.room_of(HOST)
    assert room_id is not None

    join(core, OTHER, room_id, "h", secret="abcdef")
    join(core, GUEST, room_id, "guest", secret="abcdeg")
    assert [b[B_ERROR_CODE] for b in sent.bodies(OTHER, T_ERROR)] == ["NAME_TAKEN"]
    assert [b[B_ERROR_CODE] for b in sent.bodies(GUEST, T_ERROR)] == ["WRONG_SECRET"]

    join(core, GUEST, room_id, "guest", secret="abcdef")
    roster = sent.bodies(HOST, T_UPDATE_USERS)[-1]
    assert [m[B_MEMBER_NICK] for m in roster] == ["H", "guest"]

    core.handle(HOST, KickUser(target=GUEST))
    assert sent.types(GUEST)[-1] == T_KICKED
    assert [m[B_MEMBER_NICK] for m in sent.bodies(HOST, T_UPDATE_USERS)[-1]] == ["H"]

    core.disconnect(HOST)
    assert core.store.get(room_id) is None
    assert core.store.was_destroyed(room_id)
    assert len(core.connections) == 0


def test_admission_returns_outcomes(core) -> None:
    outgoing: list = []
    core.admission.create_room(HOST, "H", "abcdef", None, False, outgoing)
    room_id = core.connections.room_of(HOST)

    with pytest.raises(NameTaken):
        core.admission.join_room(OTHER, "h", room_id, "abcdef", outgoing)
    with pytest.raises(WrongSecret):
        core.admission.join_room(GUEST, "guest", room_id, "abcdeg", outgoing)

    outcome = core.admission.join_room(GUEST, "guest", room_id, "abcdef", outgoing)
    assert isinstance(outcome, Admitted)
    assert [m[B_MEMBER_NICK] for m in outcome.roster] == ["H", "guest"]
