from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Any

from .constants import (
    DEFAULT_HEALTH_TEXT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_FRAME_BYTES,
    MAX_MSG_BYTES,
    PING_INTERVAL_S,
    RATE_LIMIT_MSGS,
    RATE_LIMIT_WINDOW_S,
    SEND_QUEUE_MAX,
)


@dataclass(frozen=True)
class RelayRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    ws_path: str | None = None
    health_text: str = DEFAULT_HEALTH_TEXT
    max_msg_bytes: int = MAX_MSG_BYTES
    max_frame_bytes: int = MAX_FRAME_BYTES
    rate_limit_msgs: int = RATE_LIMIT_MSGS
    rate_limit_window_s: float = RATE_LIMIT_WINDOW_S
    ping_interval_s: float = PING_INTERVAL_S
    send_queue_max: int = SEND_QUEUE_MAX
    stats_interval_s: float = 0.0
    log_level: str = "INFO"
    log_websockets_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_INT_KEYS = (
    "port",
    "max_msg_bytes",
    "max_frame_bytes",
    "rate_limit_msgs",
    "send_queue_max",
)
_FLOAT_KEYS = ("rate_limit_window_s", "ping_interval_s", "stats_interval_s")
_OPTIONAL_STR_KEYS = ("ws_path", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def apply_config_data(cfg: RelayRuntimeConfig, data: dict[str, Any]) -> RelayRuntimeConfig:
    """Overlay a parsed TOML document onto ``cfg``.

    Keys may sit at top level or under ``[relay]``; the ``[logging]`` table maps
    onto the ``log_*`` fields. Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        raise ValueError("config must be a TOML table")

    relay = data.get("relay")
    if isinstance(relay, dict):
        data = {**data, **relay}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for src, dst in (
            ("level", "log_level"),
            ("websockets_level", "log_websockets_level"),
            ("console", "log_console"),
            ("file", "log_file"),
            ("format", "log_format"),
            ("datefmt", "log_datefmt"),
        ):
            if src in log_table:
                mapped[dst] = log_table.get(src)
        data = {**data, **mapped}

    allowed = set(asdict(cfg).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    try:
        for key in _INT_KEYS:
            if key in updates:
                updates[key] = int(updates[key])
        for key in _FLOAT_KEYS:
            if key in updates:
                updates[key] = float(updates[key])
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid config value: {e}") from e

    if "log_console" in updates:
        updates["log_console"] = bool(updates["log_console"])

    for key in _OPTIONAL_STR_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(cfg, **updates) if updates else cfg


def validate_config(cfg: RelayRuntimeConfig) -> None:
    if not (0 < int(cfg.port) < 65536):
        raise ValueError(f"port out of range: {cfg.port}")
    if cfg.max_msg_bytes <= 0:
        raise ValueError("max_msg_bytes must be positive")
    if cfg.max_frame_bytes < cfg.max_msg_bytes:
        raise ValueError("max_frame_bytes must be >= max_msg_bytes")
    if cfg.rate_limit_msgs <= 0:
        raise ValueError("rate_limit_msgs must be positive")
    if cfg.rate_limit_window_s <= 0:
        raise ValueError("rate_limit_window_s must be positive")
    if cfg.ping_interval_s < 0:
        raise ValueError("ping_interval_s must not be negative")
    if cfg.send_queue_max <= 0:
        raise ValueError("send_queue_max must be positive")
    if cfg.ws_path is not None and not cfg.ws_path.startswith("/"):
        raise ValueError("ws_path must start with '/'")
