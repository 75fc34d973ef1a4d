from __future__ import annotations

import os
from pathlib import Path

HOME_ENV = "GHOSTROOMD_HOME"
CONFIG_NAME = "ghostroomd.toml"
IDENTITY_NAME = "hub_identity"


def hub_home() -> Path:
    """State directory: ``$GHOSTROOMD_HOME`` if set, else ``~/.ghostroomd``."""
    return Path(os.environ.get(HOME_ENV) or Path.home() / ".ghostroomd")


def default_config_path() -> Path:
    return hub_home() / CONFIG_NAME


def default_identity_path() -> Path:
    return hub_home() / IDENTITY_NAME


def ensure_parent_dir(file_path: str | os.PathLike) -> None:
    """Create the directory holding ``file_path`` with owner-only access."""
    parent = Path(file_path).expanduser().parent
    if str(parent) in ("", "."):
        return
    parent.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(parent, 0o700)
    except OSError:
        pass
