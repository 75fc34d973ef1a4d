from __future__ import annotations

import hashlib
import os

from .constants import NICK_MAX_CHARS


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_nick(value, *, max_chars: int | None = None) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    limit = NICK_MAX_CHARS if max_chars is None else int(max_chars)
    if limit > 0 and len(s) > limit:
        return None

    # Keep this conservative: avoid embedded newlines or NUL, which frequently
    # cause UI/log formatting issues.
    if "\n" in s or "\r" in s or "\x00" in s:
        return None

    try:
        s.encode("utf-8", "strict")
    except UnicodeError:
        return None

    return s


def nick_key(nick: str) -> str:
    return nick.strip().casefold()


def generate_room_id() -> str:
    """Return a short random room code (8 upper-case hex characters)."""
    return os.urandom(4).hex().upper()


def fingerprint(secret: str) -> str:
    """One-way fingerprint of a room secret, compared for equality only."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def fmt_conn(conn_id) -> str:
    if isinstance(conn_id, (bytes, bytearray)):
        return bytes(conn_id).hex()
    return "-" if conn_id is None else str(conn_id)
