from __future__ import annotations

from .constants import K_ROOM, K_TYPE


def make_message(msg_type: str, *, room: str | None = None) -> dict:
    msg: dict[str, object] = {K_TYPE: str(msg_type)}
    if room is not None:
        msg[K_ROOM] = room
    return msg


def validate_message(msg) -> None:
    """Structural check applied to every inbound message.

    Only the top-level JSON shape is checked; fields, ``type`` included, are
    forwarded untouched.
    """
    if not isinstance(msg, dict):
        raise TypeError("message must be a JSON object")
