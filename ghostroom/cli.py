from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace

import RNS

from .config import HubRuntimeConfig, apply_config_data, apply_env_overrides, load_toml
from .logging_config import configure_logging
from .paths import default_config_path, default_identity_path, ensure_parent_dir
from .service import HubService


def _default_config_text(identity_path: str) -> str:
    d = HubRuntimeConfig()
    return f"""# ghostroomd configuration
#
# Generated on first start. Review it, then run ghostroomd again.
# Precedence, lowest to highest: this file, environment variables
# (MAX_ROOMS, MIN_KEY_LEN, MAX_KEY_LEN, MAX_ROOM_AGE_MS, CLEANUP_INTERVAL_MS),
# command line flags.

[hub]

# Reticulum config directory. Empty means the Reticulum default.
configdir = ""

# Hub identity file. The destination hash clients dial is derived from it.
identity_path = {identity_path!r}

dest_name = {d.dest_name!r}
hub_name = {d.hub_name!r}

announce_on_start = true
# Seconds between re-announces; 0 announces only at start.
announce_period_s = 0.0

# Live rooms allowed at once.
max_rooms = {d.max_rooms}

# Accepted room secret length, in characters.
min_key_len = {d.min_key_len}
max_key_len = {d.max_key_len}

# Rooms older than max_room_age_s are closed by the sweep that runs every
# cleanup_interval_s seconds.
max_room_age_s = {d.max_room_age_s}
cleanup_interval_s = {d.cleanup_interval_s}

nick_max_chars = {d.nick_max_chars}
max_room_name_len = {d.max_room_name_len}

# Ciphertext cap per message. Envelopes must still fit one link packet.
max_msg_body_bytes = {d.max_msg_body_bytes}
rate_limit_msgs_per_minute = {d.rate_limit_msgs_per_minute}

# Only let a message's author edit or delete it.
enforce_message_authors = false

[logging]
level = "INFO"
rns_level = "WARNING"
console = true
# Log file path; empty disables file logging. The file is created 0600.
file = ""
format = {d.log_format!r}
datefmt = ""
"""


def _first_run(config_path: str, identity_path: str) -> list[str]:
    """Create whatever is missing. Returns the paths that were written."""
    created: list[str] = []

    if not os.path.exists(config_path):
        ensure_parent_dir(config_path)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(_default_config_text(identity_path))
        created.append(config_path)

    if not os.path.exists(identity_path):
        ensure_parent_dir(identity_path)
        RNS.Identity().to_file(identity_path)
        try:
            os.chmod(identity_path, 0o600)
        except OSError:
            pass
        created.append(identity_path)

    return created


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ghostroomd",
        description="Ephemeral password-gated group chat hub over Reticulum",
    )

    files = p.add_argument_group("files")
    files.add_argument(
        "--config",
        default=str(default_config_path()),
        help="TOML config file (written on first run)",
    )
    files.add_argument(
        "--identity",
        default=str(default_identity_path()),
        help="Hub identity file (written on first run)",
    )
    files.add_argument("--configdir", default=None, help="Reticulum config directory")

    net = p.add_argument_group("network")
    net.add_argument("--dest-name", default=None, help="Destination name, e.g. ghostroom.hub")
    net.add_argument("--hub-name", default=None, help="Name carried in announces")
    net.add_argument("--no-announce", action="store_true", help="Skip the announce at start")
    net.add_argument(
        "--announce-period", type=float, default=None, help="Re-announce every N seconds"
    )
    net.add_argument(
        "--rate-limit-msgs-per-minute", type=int, default=None, help="Per-link packet budget"
    )

    rooms = p.add_argument_group("rooms")
    rooms.add_argument("--max-rooms", type=int, default=None)
    rooms.add_argument("--min-key-len", type=int, default=None)
    rooms.add_argument("--max-key-len", type=int, default=None)
    rooms.add_argument(
        "--max-room-age", type=float, default=None, help="Room lifetime in seconds (0: forever)"
    )
    rooms.add_argument(
        "--cleanup-interval", type=float, default=None, help="Seconds between expiry sweeps"
    )
    rooms.add_argument("--max-msg-body-bytes", type=int, default=None)
    rooms.add_argument(
        "--enforce-message-authors",
        action="store_true",
        help="Refuse edits and deletes from anyone but the author",
    )

    logs = p.add_argument_group("logging")
    logs.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    logs.add_argument("--log-file", default=None, help="Log file (empty string disables)")

    return p


# CLI attribute -> config field, for the plain value flags.
_FLAG_FIELDS = (
    ("configdir", "configdir"),
    ("dest_name", "dest_name"),
    ("hub_name", "hub_name"),
    ("announce_period", "announce_period_s"),
    ("rate_limit_msgs_per_minute", "rate_limit_msgs_per_minute"),
    ("max_rooms", "max_rooms"),
    ("min_key_len", "min_key_len"),
    ("max_key_len", "max_key_len"),
    ("max_room_age", "max_room_age_s"),
    ("cleanup_interval", "cleanup_interval_s"),
    ("max_msg_body_bytes", "max_msg_body_bytes"),
    ("log_level", "log_level"),
)


def build_config(args: argparse.Namespace, environ=None) -> HubRuntimeConfig:
    """Defaults, then the config file, then the environment, then flags."""
    cfg = HubRuntimeConfig(config_path=str(args.config))
    if os.path.exists(args.config):
        cfg = apply_config_data(cfg, load_toml(str(args.config)))

    cfg = apply_env_overrides(cfg, environ)

    updates: dict[str, object] = {"identity_path": str(args.identity)}
    for attr, field in _FLAG_FIELDS:
        value = getattr(args, attr)
        if value is not None:
            updates[field] = value
    if args.no_announce:
        updates["announce_on_start"] = False
    if args.enforce_message_authors:
        updates["enforce_message_authors"] = True
    if args.log_file is not None:
        updates["log_file"] = str(args.log_file) or None

    return replace(cfg, **updates)


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(argv)

    created = _first_run(str(args.config), str(args.identity))
    if created:
        lines = "\n".join(f"  {p}" for p in created)
        print(f"ghostroomd created:\n{lines}\nReview the config, then start it again.", file=sys.stderr)
        raise SystemExit(0)

    cfg = build_config(args)
    if cfg.min_key_len > cfg.max_key_len:
        raise SystemExit(f"min_key_len {cfg.min_key_len} exceeds max_key_len {cfg.max_key_len}")

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = HubService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
