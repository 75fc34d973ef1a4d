from __future__ import annotations

import itertools

from ghostroom.config import HubRuntimeConfig
from ghostroom.core import HubCore
from ghostroom.events import CreateRoom, JoinRoom

SECRET = "correct-horse"


def make_core(config: HubRuntimeConfig, sent, clock, timers) -> HubCore:
    ids = (f"ROOM{n:04d}" for n in itertools.count(1))
    return HubCore(config, sent, timers=timers, clock=clock, generate_room_id=lambda: next(ids))


def create(core: HubCore, conn_id: bytes, nick: str = "host", *, approval: bool = False, name=None) -> str:
    core.handle(conn_id, CreateRoom(nick=nick, secret=SECRET, room_name=name, require_approval=approval))
    room_id = core.connections.room_of(conn_id)
    assert room_id is not None
    return room_id


def join(core: HubCore, conn_id: bytes, room_id: str, nick: str, secret: str = SECRET) -> None:
    core.handle(conn_id, JoinRoom(room_id=room_id, nick=nick, secret=secret))
