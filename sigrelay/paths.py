from __future__ import annotations

import os
from pathlib import Path


def default_sigrelay_dir() -> Path:
    override = os.environ.get("SIGRELAY_HOME")
    if override:
        return Path(override)
    return Path.home() / ".sigrelay"


def default_config_path() -> Path:
    return default_sigrelay_dir() / "sigrelay.toml"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        pass
