from __future__ import annotations

import os


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def payload_size(data: bytes | str) -> int:
    """Size of an inbound frame in bytes (text frames are measured as UTF-8)."""
    if isinstance(data, str):
        return len(data.encode("utf-8"))
    return len(data)


def normalize_room(value) -> str | None:
    # Room ids are opaque: no trimming or case folding, only shape checks.
    if not isinstance(value, str):
        return None
    if not value:
        return None
    return value
