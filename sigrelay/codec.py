from __future__ import annotations

import json


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def encode(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def decode(b: bytes | str):
    if isinstance(b, (bytes, bytearray)):
        b = bytes(b).decode("utf-8")
    return json.loads(b, parse_constant=_reject_constant)
