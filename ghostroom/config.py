from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace


@dataclass(frozen=True)
class HubRuntimeConfig:
    config_path: str | None = None
    configdir: str | None = None
    identity_path: str | None = None
    dest_name: str = "ghostroom.hub"
    announce_on_start: bool = True
    announce_period_s: float = 0.0
    hub_name: str = "ghostroom"
    max_rooms: int = 50_000
    min_key_len: int = 6
    max_key_len: int = 64
    max_room_age_s: float = 24 * 3600.0
    cleanup_interval_s: float = 15 * 60.0
    nick_max_chars: int = 32
    max_room_name_len: int = 64
    max_msg_body_bytes: int = 350
    rate_limit_msgs_per_minute: int = 240
    enforce_message_authors: bool = False
    log_level: str = "INFO"
    log_rns_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


# Environment variable -> (field, scale). Millisecond variables are stored in
# seconds.
_ENV_OVERRIDES: tuple[tuple[str, str, float | None], ...] = (
    ("MAX_ROOMS", "max_rooms", None),
    ("MIN_ENCRYPTION_KEY_LENGTH", "min_key_len", None),
    ("MIN_KEY_LEN", "min_key_len", None),
    ("MAX_ENCRYPTION_KEY_LENGTH", "max_key_len", None),
    ("MAX_KEY_LEN", "max_key_len", None),
    ("MAX_ROOM_AGE_MS", "max_room_age_s", 1000.0),
    ("CLEANUP_INTERVAL_MS", "cleanup_interval_s", 1000.0),
)


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: HubRuntimeConfig, data: dict) -> HubRuntimeConfig:
    hub = data.get("hub") if isinstance(data, dict) else None
    if isinstance(hub, dict):
        data = {**data, **hub}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for src_key, dst_key in (
            ("level", "log_level"),
            ("rns_level", "log_rns_level"),
            ("console", "log_console"),
            ("file", "log_file"),
            ("format", "log_format"),
            ("datefmt", "log_datefmt"),
        ):
            if src_key in log_table:
                mapped[dst_key] = log_table.get(src_key)
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config was loaded from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    for opt_key in ("configdir", "log_file", "log_datefmt"):
        if opt_key in updates and updates[opt_key] == "":
            updates[opt_key] = None

    return replace(base, **updates) if updates else base


def apply_env_overrides(
    base: HubRuntimeConfig, environ: Mapping[str, str] | None = None
) -> HubRuntimeConfig:
    env = os.environ if environ is None else environ
    updates: dict[str, object] = {}

    for var, field, scale in _ENV_OVERRIDES:
        raw = env.get(var)
        if raw is None or not str(raw).strip():
            continue
        try:
            n = int(str(raw).strip(), 10)
        except ValueError:
            continue
        if n <= 0:
            continue
        updates[field] = n / scale if scale else n

    return replace(base, **updates) if updates else base
