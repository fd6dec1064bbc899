from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path

from .config import RelayRuntimeConfig, apply_config_data, load_toml, validate_config
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
from .logging_config import configure_logging
from .paths import default_config_path, ensure_private_dir
from .service import RelayService
from .util import expand_path


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = f"""# sigrelay configuration (TOML)
#
# This file was created on first run. Edit it and restart sigrelay.
# The PORT and SIGRELAY_HOST environment variables override host/port here,
# and command line flags override both.

[relay]

host = {DEFAULT_HOST!r}
port = {DEFAULT_PORT}

# Only upgrade requests on this path (e.g. "/ws"). Leave empty to accept
# WebSocket upgrades on any path. Every other request gets the health text.
ws_path = ""
health_text = {DEFAULT_HEALTH_TEXT!r}

# Limits.
#
# Messages larger than max_msg_bytes are dropped without notice; frames
# larger than max_frame_bytes close the connection at the WebSocket layer.
max_msg_bytes = {MAX_MSG_BYTES}
max_frame_bytes = {MAX_FRAME_BYTES}

# Per-connection fixed-window rate limit: at most rate_limit_msgs messages
# every rate_limit_window_s seconds. Excess messages are dropped.
rate_limit_msgs = {RATE_LIMIT_MSGS}
rate_limit_window_s = {RATE_LIMIT_WINDOW_S}

# Heartbeat probe interval (0 disables). A peer that misses one probe is
# terminated at the next one.
ping_interval_s = {PING_INTERVAL_S}

# Outbound frames buffered per connection before sends to it start failing.
send_queue_max = {SEND_QUEUE_MAX}

# Log a stats line every N seconds (0 disables; stats are always logged on
# shutdown).
stats_interval_s = 0.0

[logging]

level = "INFO"

# Level for the websockets library logger.
websockets_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass


def _apply_env(cfg: RelayRuntimeConfig, env: Mapping[str, str]) -> RelayRuntimeConfig:
    host = env.get("SIGRELAY_HOST")
    if host:
        cfg = replace(cfg, host=host)
    port = env.get("PORT")
    if port:
        try:
            cfg = replace(cfg, port=int(port))
        except ValueError as e:
            raise ValueError(f"invalid PORT {port!r}") from e
    return cfg


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="sigrelay", description="Run a WebSocket signaling relay"
    )

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--no-config",
        action="store_true",
        help="Ignore the config file and run with defaults plus flags",
    )

    p.add_argument("--host", default=None, help="Listen address")
    p.add_argument("--port", type=int, default=None, help="Listen port")
    p.add_argument(
        "--ws-path",
        default=None,
        help="Only accept WebSocket upgrades on this path (empty accepts any)",
    )

    p.add_argument(
        "--max-msg-bytes", type=int, default=None, help="Maximum message size in bytes"
    )
    p.add_argument(
        "--rate-limit-msgs",
        type=int,
        default=None,
        help="Messages allowed per connection per rate limit window",
    )
    p.add_argument(
        "--rate-limit-window",
        type=float,
        default=None,
        help="Rate limit window length in seconds",
    )
    p.add_argument(
        "--ping-interval",
        type=float,
        default=None,
        help="Heartbeat probe interval seconds (0 disables)",
    )
    p.add_argument(
        "--stats-interval",
        type=float,
        default=None,
        help="Log stats every N seconds (0 disables)",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(
    args: argparse.Namespace, env: Mapping[str, str] | None = None
) -> RelayRuntimeConfig:
    """Defaults, then the config file, then environment, then flags."""
    cfg = RelayRuntimeConfig()

    if not args.no_config:
        config_path = expand_path(str(args.config))
        cfg = replace(cfg, config_path=config_path)
        if not os.path.exists(config_path):
            _write_default_config(config_path)
            print(f"Created default sigrelay config at {config_path}", file=sys.stderr)
        cfg = apply_config_data(cfg, load_toml(config_path))

    cfg = _apply_env(cfg, os.environ if env is None else env)

    if args.host is not None:
        cfg = replace(cfg, host=args.host)
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.ws_path is not None:
        cfg = replace(cfg, ws_path=args.ws_path or None)

    if args.max_msg_bytes is not None:
        cfg = replace(cfg, max_msg_bytes=int(args.max_msg_bytes))
    if args.rate_limit_msgs is not None:
        cfg = replace(cfg, rate_limit_msgs=int(args.rate_limit_msgs))
    if args.rate_limit_window is not None:
        cfg = replace(cfg, rate_limit_window_s=float(args.rate_limit_window))
    if args.ping_interval is not None:
        cfg = replace(cfg, ping_interval_s=float(args.ping_interval))
    if args.stats_interval is not None:
        cfg = replace(cfg, stats_interval_s=float(args.stats_interval))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    validate_config(cfg)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    try:
        cfg = build_config(args)
    except (OSError, ValueError) as e:
        print(f"sigrelay: {e}", file=sys.stderr)
        raise SystemExit(2) from e

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = RelayService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
