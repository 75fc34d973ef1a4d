"""Envelope framing shared by every ghostroom packet.

An envelope is a CBOR map with small integer keys. The header fields
(version, type, id, timestamp, source) are always present; the room id and
body are optional and only carried when the event needs them.
"""

from __future__ import annotations

import os
import time
from typing import Any

from .constants import GHR_VERSION, K_BODY, K_ID, K_ROOM, K_SRC, K_T, K_TS, K_V

# Header key -> (accepted types, what it is called in errors)
_HEADER: tuple[tuple[int, tuple[type, ...], str], ...] = (
    (K_V, (int,), "protocol version"),
    (K_T, (int,), "event type"),
    (K_ID, (bytes, bytearray), "envelope id"),
    (K_TS, (int,), "timestamp"),
    (K_SRC, (bytes, bytearray), "sender"),
)


def make_envelope(
    msg_type: int,
    *,
    src: bytes,
    room: str | None = None,
    body: Any = None,
    mid: bytes | None = None,
    ts: int | None = None,
) -> dict:
    env: dict[int, Any] = {
        K_V: GHR_VERSION,
        K_T: int(msg_type),
        K_ID: mid if mid else os.urandom(8),
        K_TS: ts if ts else int(time.time() * 1000),
        K_SRC: src,
    }
    if room is not None:
        env[K_ROOM] = room
    if body is not None:
        env[K_BODY] = body
    return env


def validate_envelope(env: Any) -> None:
    """Raise ``TypeError``/``ValueError`` unless ``env`` is a well-formed envelope.

    Unknown non-negative integer keys are tolerated so newer clients can add
    fields. The body is not inspected here.
    """
    if not isinstance(env, dict):
        raise TypeError("envelope must be a CBOR map (dict)")

    if any(not isinstance(k, int) or isinstance(k, bool) for k in env):
        raise TypeError("envelope keys must be integers")
    if any(k < 0 for k in env):
        raise ValueError("envelope keys must be unsigned integers")

    for key, types, what in _HEADER:
        if key not in env:
            raise ValueError(f"missing {what} (key {key})")
        value = env[key]
        if isinstance(value, bool) or not isinstance(value, types):
            raise TypeError(f"{what} has the wrong type")

    if env[K_V] != GHR_VERSION:
        raise ValueError(f"unsupported version {env[K_V]}")
    if env[K_TS] < 0:
        raise ValueError("timestamp must be unsigned")

    room = env.get(K_ROOM)
    if K_ROOM in env and not isinstance(room, str):
        raise TypeError("room id must be a string")
    if room == "":
        raise ValueError("room id must not be empty")
