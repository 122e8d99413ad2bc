"""CBOR encoding of the Reticulum announce app data."""

from __future__ import annotations

from typing import Any

import cbor2

from .constants import ANNOUNCE_PROTO, ANNOUNCE_VERSION


def encode(obj) -> bytes:
    return cbor2.dumps(obj)


def decode(b: bytes):
    return cbor2.loads(b)


def encode_announce(server_name: str) -> bytes:
    return encode({"proto": ANNOUNCE_PROTO, "v": ANNOUNCE_VERSION, "server": server_name})


def decode_announce(data: bytes) -> dict[str, Any] | None:
    """Parse announce app data; None if it is not a MiniChat announce."""
    try:
        obj = decode(data)
    except (cbor2.CBORDecodeError, ValueError, TypeError):
        return None
    if not isinstance(obj, dict) or obj.get("proto") != ANNOUNCE_PROTO:
        return None
    if obj.get("v") != ANNOUNCE_VERSION:
        return None
    if not isinstance(obj.get("server"), str):
        return None
    return obj
