from __future__ import annotations

import os


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_username(value, *, max_chars: int = 32) -> str | None:
    """Return a usable username, or None if ``value`` cannot be one.

    Usernames are addressed as a single token by ``/sendUser``, so any
    whitespace inside the name is rejected rather than stripped.
    """
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars > 0 and len(s) > int(max_chars):
        return None

    if any(ch.isspace() for ch in s) or "\x00" in s:
        return None

    return s


def split_args(line: str, maxsplit: int) -> list[str]:
    """Split on single spaces, keeping empty tokens like the wire grammar does."""
    return line.split(" ", maxsplit)
