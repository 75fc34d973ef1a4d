from ghostroom.cli import _build_arg_parser, build_config
from ghostroom.config import HubRuntimeConfig, apply_config_data, apply_env_overrides


def test_apply_config_data_reads_hub_and_logging_tables() -> None:
    cfg = apply_config_data(
        HubRuntimeConfig(config_path="/etc/ghostroomd.toml"),
        {
            "hub": {"max_rooms": 10, "min_key_len": 8, "configdir": "", "config_path": "/nope"},
            "logging": {"level": "DEBUG", "file": ""},
        },
    )
    assert cfg.max_rooms == 10
    assert cfg.min_key_len == 8
    assert cfg.configdir is None
    assert cfg.config_path == "/etc/ghostroomd.toml"
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None


def test_env_overrides_convert_milliseconds() -> None:
    cfg = apply_env_overrides(
        HubRuntimeConfig(),
        {
            "MAX_ROOMS": "3",
            "MIN_ENCRYPTION_KEY_LENGTH": "10",
            "MAX_KEY_LEN": "20",
            "MAX_ROOM_AGE_MS": "60000",
            "CLEANUP_INTERVAL_MS": "1500",
        },
    )
    assert cfg.max_rooms == 3
    assert cfg.min_key_len == 10
    assert cfg.max_key_len == 20
    assert cfg.max_room_age_s == 60.0
    assert cfg.cleanup_interval_s == 1.5


def test_env_overrides_ignore_garbage() -> None:
    base = HubRuntimeConfig()
    cfg = apply_env_overrides(base, {"MAX_ROOMS": "lots", "MIN_KEY_LEN": "0", "MAX_KEY_LEN": " "})
    assert cfg == base


def test_cli_flags_beat_environment(tmp_path) -> None:
    cfg_file = tmp_path / "ghostroomd.toml"
    cfg_file.write_text('[hub]\nmax_rooms = 7\nhub_name = "file"\n', encoding="utf-8")
    args = _build_arg_parser().parse_args(
        [
            "--config",
            str(cfg_file),
            "--identity",
            str(tmp_path / "id"),
            "--max-rooms",
            "2",
            "--enforce-message-authors",
            "--no-announce",
        ]
    )

    cfg = build_config(args, environ={"MAX_ROOMS": "5", "MAX_ROOM_AGE_MS": "2000"})

    assert cfg.max_rooms == 2
    assert cfg.hub_name == "file"
    assert cfg.max_room_age_s == 2.0
    assert cfg.enforce_message_authors is True
    assert cfg.announce_on_start is False
    assert cfg.identity_path == str(tmp_path / "id")


def test_environment_beats_file(tmp_path) -> None:
    cfg_file = tmp_path / "ghostroomd.toml"
    cfg_file.write_text("[hub]\nmax_rooms = 7\n", encoding="utf-8")
    args = _build_arg_parser().parse_args(["--config", str(cfg_file)])

    assert build_config(args, environ={"MAX_ROOMS": "5"}).max_rooms == 5
    assert build_config(args, environ={}).max_rooms == 7
