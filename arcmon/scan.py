from __future__ import annotations

from typing import Optional

# Keyword/number mini-grammar used by the device status lines:
#
#   <anything> KEYWORD <filler>* LITERAL <anything>
#
# - KEYWORD is matched at its first occurrence (plain substring, case-sensitive).
# - filler is any run of characters that cannot start a literal.
# - an int literal starts at a digit or a single leading sign; a float literal
#   may also start at '.'.
# - the literal then runs over digits (float: digits and '.') and stops at the
#   first other character. A sign is never accepted after the first character.
#
# The captured text is parsed as-is. A lone sign, "1.2.3" or an out-of-range int
# is "not found", the same as a missing keyword.

DIGITS = "0123456789"
SIGNS = "+-"

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1


def _capture_after(src: str, key: str, start_chars: str, body_chars: str) -> Optional[str]:
    idx = src.find(key)
    if idx < 0:
        return None
    captured = []
    for ch in src[idx + len(key):]:
        if not captured:
            if ch in start_chars:
                captured.append(ch)
            continue
        if ch in body_chars:
            captured.append(ch)
        else:
            break
    if not captured:
        return None
    return "".join(captured)


def find_int_after(src: str, key: str) -> Optional[int]:
    """Return the first integer literal following ``key`` in ``src``.

    >>> find_int_after("[Live] Stage: 3 Total: 120", "Total:")
    120
    >>> find_int_after("Stage: n/a", "Stage:") is None
    True
    """
    text = _capture_after(src, key, DIGITS + SIGNS, DIGITS)
    if text is None:
        return None
    try:
        value = int(text)
    except ValueError:
        return None
    if value < INT32_MIN or value > INT32_MAX:
        return None
    return value


def find_float_after(src: str, key: str) -> Optional[float]:
    """Return the first decimal literal following ``key`` in ``src``.

    >>> find_float_after("Active Time: 12.345 s", "Active Time")
    12.345
    """
    text = _capture_after(src, key, DIGITS + SIGNS + ".", DIGITS + ".")
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None
