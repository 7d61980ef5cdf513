"""arcmon package for arc-monitor."""

from .state import ActiveTimeSource, ChangeSummary, SessionState
from .decoder import decode_line
from .monitor import ArcMonitor

__all__ = ["ActiveTimeSource", "ChangeSummary", "SessionState", "decode_line", "ArcMonitor"]
