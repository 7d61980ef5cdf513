from __future__ import annotations

from typing import Union

from .constants import (
    KEY_ACTIVE_TIME,
    KEY_DURATION,
    KEY_GRAND_TOTAL,
    KEY_STAGE,
    KEY_TOTAL,
    LIVE_MARKERS,
    RESET_ACK_MARKER,
)
from .scan import find_float_after, find_int_after
from .state import ActiveTimeSource, ChangeSummary, SessionState
from .util import sanitize_line, wall_s


def is_live_line(line: str) -> bool:
    return any(marker in line for marker in LIVE_MARKERS)


def decode_line(state: SessionState, raw: Union[bytes, str]) -> ChangeSummary:
    """Classify one device line and apply it to ``state``.

    Rules, first match wins:
      1. empty after sanitizing      -> nothing
      2. reset acknowledgement       -> full reset (system_reset + session_reset)
      3. live line                   -> Stage:, then Total:
      4. any other line              -> Duration (ms, added) or else Active Time
                                        (s, overwrite); then Grand Total

    Negative values are ignored. Never raises on malformed input.
    """
    change = ChangeSummary()

    line = sanitize_line(raw)
    if not line:
        return change

    if RESET_ACK_MARKER in line:
        state.reset()
        change.system_reset = True
        change.session_reset = True
        return change

    if is_live_line(line):
        stage = find_int_after(line, KEY_STAGE)
        if stage is not None and stage >= 0 and stage != state.stage:
            state.stage = stage
            change.stage_changed = True

        # Applied after the stage: a rollback here resets the stage just set.
        total = find_int_after(line, KEY_TOTAL)
        if total is not None:
            update_total(state, total, change)
        return change

    # A Duration literal, even an ignored negative one, rules out Active Time.
    duration_ms = find_float_after(line, KEY_DURATION)
    if duration_ms is not None:
        if duration_ms >= 0:
            state.active_time_seconds += duration_ms / 1000.0
            state.active_time_source = ActiveTimeSource.DERIVED
            change.active_changed = True
    else:
        active_s = find_float_after(line, KEY_ACTIVE_TIME)
        if active_s is not None and active_s >= 0:
            state.active_time_seconds = active_s
            state.active_time_source = ActiveTimeSource.DEVICE_REPORTED
            change.active_changed = True

    grand_total = find_int_after(line, KEY_GRAND_TOTAL)
    if grand_total is not None:
        update_total(state, grand_total, change)

    return change


def update_total(state: SessionState, new_total: int, change: ChangeSummary):
    """Apply a device-reported pulse total.

    A total lower than the recorded one means the device started a new session:
    the whole state is reset and reseeded with the new total (no timestamp).
    """
    if new_total < 0:
        return
    if new_total < state.cumulative_total:
        state.reset()
        state.cumulative_total = new_total
        change.session_reset = True
        change.total_changed = True
    elif new_total > state.cumulative_total:
        state.cumulative_total = new_total
        state.last_update_timestamp = wall_s()
        change.total_changed = True
