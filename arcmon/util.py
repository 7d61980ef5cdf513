from __future__ import annotations

import time
from typing import Optional, Union


def now_s() -> float:
    """Monotonic clock in seconds."""
    return time.monotonic()


def wall_s() -> float:
    """Wall-clock time in seconds since the epoch."""
    return time.time()


def format_wall(ts: Optional[float], fmt: str = "%Y-%m-%d %H:%M:%S") -> Optional[str]:
    if ts is None:
        return None
    return time.strftime(fmt, time.localtime(ts))


def sanitize_line(raw: Union[bytes, bytearray, str]) -> str:
    """Keep TAB and characters >= 0x20, then trim surrounding whitespace.

    Bytes are mapped one-to-one to characters (Latin-1). Multi-byte encodings
    are not decoded; a str is assumed to already hold one char per byte.
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("latin-1")
    return "".join(ch for ch in raw if ch == "\t" or ord(ch) >= 0x20).strip()
