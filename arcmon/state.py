from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import Optional

from .util import format_wall


class ActiveTimeSource(str, enum.Enum):
    """Where the current active time value came from."""
    DERIVED = "derived"                  # summed from per-stage Duration lines
    DEVICE_REPORTED = "device_reported"  # overwritten by an Active Time line


@dataclass
class SessionState:
    """Running model of the device session.

    Owned and mutated by a single actor (the monitor loop) through
    ``decoder.decode_line``. Other threads only ever see copies made by
    ``snapshot()``."""
    stage: int = 0
    cumulative_total: int = 0
    active_time_seconds: float = 0.0
    active_time_source: ActiveTimeSource = ActiveTimeSource.DERIVED
    last_update_timestamp: Optional[float] = None

    def reset(self):
        """Restore every field to its initial value."""
        self.stage = 0
        self.cumulative_total = 0
        self.active_time_seconds = 0.0
        self.active_time_source = ActiveTimeSource.DERIVED
        self.last_update_timestamp = None

    def snapshot(self) -> "SessionState":
        return SessionState(
            stage=self.stage,
            cumulative_total=self.cumulative_total,
            active_time_seconds=self.active_time_seconds,
            active_time_source=self.active_time_source,
            last_update_timestamp=self.last_update_timestamp,
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        d["active_time_source"] = self.active_time_source.value
        d["last_update"] = format_wall(self.last_update_timestamp)
        return d


@dataclass
class ChangeSummary:
    """Per-line flags describing what a decoded line changed."""
    system_reset: bool = False
    stage_changed: bool = False
    active_changed: bool = False
    total_changed: bool = False
    session_reset: bool = False

    def any(self) -> bool:
        return (
            self.system_reset
            or self.stage_changed
            or self.active_changed
            or self.total_changed
            or self.session_reset
        )
