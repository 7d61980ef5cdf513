from __future__ import annotations

import collections
import json
import os
import queue
import socket
import threading
from typing import Optional, Tuple

from .constants import RESET_COMMAND, RESET_SEPARATOR, VERSION
from .decoder import decode_line, is_live_line
from .logging import JsonLogger
from .serialio import ITEM_ERROR, ITEM_LINE, ITEM_RESET, LinkReaderThread
from .state import ChangeSummary, SessionState
from .timeline import TotalTimeline, WaitRateTracker
from .util import now_s, sanitize_line


class ArcMonitor:
    """Session monitor for the arc controller MCU.

    Single owner of the SessionState: every line from the link reader is
    decoded on the monitor loop thread, and explicit resets requested from
    other threads are queued to that same loop. Other threads read copies
    taken under ``_lock``."""
    def __init__(
        self,
        state: SessionState,
        logger: JsonLogger,
        log_writer=None,
        verbose: bool = False,
        max_log_lines: int = 1000,
        max_plot_points: int = 2000,
        gap_threshold_s: float = 5.0,
        queue_size: int = 10000,
    ):
        """
        Initialize the monitor.

        Threads are started by start()/start_reader(); construction is side-effect free.
        """
        self.state = state
        self.logger = logger
        self.log_writer = log_writer
        self.verbose = bool(verbose)

        self.timeline = TotalTimeline(max_points=max_plot_points, gap_threshold_s=gap_threshold_s)
        self.rate = WaitRateTracker()
        self.log_lines = collections.deque(maxlen=int(max_log_lines))
        self.last_live_line: Optional[str] = None
        self.last_error: Optional[str] = None
        self._t0 = now_s()

        self._link = None
        self._link_lock = threading.Lock()
        self._lock = threading.Lock()
        self._stop_evt = threading.Event()
        self._q = queue.Queue(maxsize=int(queue_size))
        self._reader_thread = None
        self._loop_thread = None

        self._control_thread = None
        self._control_stop_evt = threading.Event()
        self._control_sock_path: Optional[str] = None

    # ---------------- Link ----------------

    def attach_link(self, link):
        """Attach an already-open SerialLink/TcpLink."""
        self._link = link

    def start_reader(self):
        """Start the background reader thread for the attached link."""
        t = LinkReaderThread(self._link, self._q, self._stop_evt, self.logger)
        t.start()
        self._reader_thread = t

    def send_command(self, cmd: str) -> bool:
        """Write a raw command string to the device. Failures are advisory."""
        if self._link is None:
            self.last_error = "not connected"
            return False
        try:
            # Reset requests may arrive from the control thread and the loop.
            with self._link_lock:
                self._link.write(cmd.encode("latin-1", errors="replace"))
        except Exception as e:
            self.last_error = f"write failed: {e}"
            self.logger.emit("link_write_error", error=str(e))
            return False
        self.logger.emit("command_sent", command=cmd.strip())
        return True

    # ---------------- Line handling ----------------

    def _elapsed(self) -> float:
        return now_s() - self._t0

    def _record_report_line(self, line: str):
        self.log_lines.append(line)
        if self.log_writer is not None:
            self.log_writer.write_line(line)

    def handle_line(self, raw) -> Tuple[SessionState, ChangeSummary]:
        """Decode one line and update every collaborator.

        Returns a snapshot of the state after the line together with the change
        flags, so callers never hold the live state object."""
        line = sanitize_line(raw)
        if self.verbose and line:
            self.logger.emit("line", line=line)

        with self._lock:
            if is_live_line(line):
                self.last_live_line = line
                self.rate.feed_line(line)
            elif line:
                self._record_report_line(line)

            prev_total = self.state.cumulative_total
            prev_stage = self.state.stage
            change = decode_line(self.state, line)

            if change.session_reset:
                self.timeline.rebase()
            if change.total_changed and self.state.cumulative_total > prev_total:
                self.timeline.record(self._elapsed(), self.state.cumulative_total)
            snap = self.state.snapshot()

        self._emit_change(change, snap, prev_stage, prev_total)
        return snap, change

    def _emit_change(self, change: ChangeSummary, snap: SessionState, prev_stage: int, prev_total: int):
        if change.system_reset:
            self.logger.emit("system_reset")
        elif change.session_reset:
            self.logger.emit("session_reset", reason="rollback", prev_total=prev_total, total=snap.cumulative_total)
        if change.stage_changed and not change.session_reset:
            self.logger.emit("stage_changed", prev=prev_stage, stage=snap.stage)
        if self.verbose:
            if change.total_changed:
                self.logger.emit("total_changed", total=snap.cumulative_total)
            if change.active_changed:
                self.logger.emit(
                    "active_changed",
                    active_time_s=round(snap.active_time_seconds, 3),
                    source=snap.active_time_source.value,
                )

    def _handle_error(self, message: str):
        # Transport problems are advisory; they never reach the decoder.
        self.last_error = message

    def reset_session(self):
        """Explicit operator reset.

        Starts a fresh session locally, then asks the device to reset. State,
        timeline and rate are cleared; report lines already logged are kept and
        a separator is added. Must run on the monitor loop (see request_reset)."""
        with self._lock:
            self.state.reset()
            self.timeline.clear()
            self.rate.clear()
            self.last_live_line = None
            self.last_error = None
            self._t0 = now_s()
            self._record_report_line(RESET_SEPARATOR)
        self.logger.emit("reset")
        self.send_command(RESET_COMMAND)

    def request_reset(self):
        """Queue an explicit reset for the monitor loop (safe from any thread)."""
        self._q.put((ITEM_RESET, None))

    def _dispatch(self, item):
        kind, payload = item
        if kind == ITEM_LINE:
            self.handle_line(payload)
        elif kind == ITEM_ERROR:
            self._handle_error(payload)
        elif kind == ITEM_RESET:
            self.reset_session()

    # ---------------- Snapshots ----------------

    def snapshot(self) -> SessionState:
        with self._lock:
            return self.state.snapshot()

    def status(self) -> dict:
        with self._lock:
            return {
                "state": self.state.to_dict(),
                "rate_hz": round(self.rate.rate_hz(), 3),
                "last_live_line": self.last_live_line,
                "last_error": self.last_error,
                "recent_lines": list(self.log_lines)[-20:],
                "plot_points": len(self.timeline),
                "link": getattr(self._link, "name", None),
            }

    # ---------------- Local control socket ----------------
    # The monitor holds the device link, so another console cannot open it at
    # the same time. A local UNIX socket lets operators query status or reset.

    def start_control_socket(self, sock_path: str):
        """Start a local control socket.

        Accepts single-line commands and returns a single-line JSON response.
        Supported commands: status, reset.
        """
        if not sock_path:
            return
        self._control_sock_path = sock_path
        t = threading.Thread(target=self._control_loop, daemon=True)
        t.start()
        self._control_thread = t
        self.logger.emit("control_socket_started", path=sock_path)

    def _control_loop(self):
        path = self._control_sock_path
        if not path:
            return

        srv = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            # Stale socket from a previous run.
            if os.path.exists(path):
                os.remove(path)
            srv.bind(path)
            os.chmod(path, 0o660)
            srv.listen(4)
            srv.settimeout(0.5)
        except OSError as e:
            self.logger.emit("control_socket_error", error=str(e), path=path)
            srv.close()
            return

        while not self._stop_evt.is_set() and not self._control_stop_evt.is_set():
            try:
                conn, _ = srv.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            try:
                conn.settimeout(2.0)
                data = b""
                while b"\n" not in data and len(data) < 4096:
                    chunk = conn.recv(4096)
                    if not chunk:
                        break
                    data += chunk
                cmd = data.decode("utf-8", errors="replace").strip()
                resp = self._handle_control_command(cmd)
                conn.sendall((json.dumps(resp, sort_keys=True) + "\n").encode("utf-8"))
            except OSError as e:
                self.logger.emit("control_socket_error", error=str(e), path=path)
            finally:
                conn.close()

        srv.close()
        if os.path.exists(path):
            os.remove(path)

    def _handle_control_command(self, cmd: str) -> dict:
        cmd = (cmd or "").strip().lower()
        if not cmd:
            return {"ok": False, "error": "empty command"}

        if cmd in ("status", "state"):
            return {"ok": True, "version": VERSION, **self.status()}

        if cmd == "reset":
            self.request_reset()
            return {"ok": True}

        return {"ok": False, "error": f"unknown command: {cmd}"}

    # ---------------- Lifecycle ----------------

    def start(self):
        """Start the monitor loop thread."""
        t = threading.Thread(target=self._loop, daemon=True)
        t.start()
        self._loop_thread = t

    def stop(self):
        """Stop threads; the caller closes the link."""
        self._stop_evt.set()
        self._control_stop_evt.set()

    def _loop(self):
        """Main loop. Drains the link queue in order."""
        while not self._stop_evt.is_set():
            try:
                item = self._q.get(timeout=0.2)
            except queue.Empty:
                continue
            self._dispatch(item)
