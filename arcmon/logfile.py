from __future__ import annotations

import os
import time
from typing import Optional


class LogWriter:
    """Daily text log of device report lines.

    Writes ``<folder>/<YYYY-MM-DD>.txt`` in append mode and switches files when
    the local date changes. Lines are written as Latin-1 so device bytes land in
    the file unchanged. I/O errors are reported through the logger and the line
    is dropped; logging never stops the monitor."""
    def __init__(self, folder: str, logger=None):
        self.folder = folder
        self.logger = logger
        self.current_date = ""
        self._fh = None
        self.path: Optional[str] = None
        self._open_for_date(self._today())

    @staticmethod
    def _today() -> str:
        return time.strftime("%Y-%m-%d", time.localtime(time.time()))

    def _emit(self, event: str, **fields):
        if self.logger is not None:
            self.logger.emit(event, **fields)

    def _open_for_date(self, date_str: str):
        self.close()
        self.current_date = date_str
        try:
            os.makedirs(self.folder, exist_ok=True)
            path = os.path.join(self.folder, f"{date_str}.txt")
            self._fh = open(path, "a", encoding="latin-1", errors="replace", newline="")
            self.path = path
            self._emit("log_file_opened", path=path)
        except OSError as e:
            self._fh = None
            self.path = None
            self._emit("log_file_error", error=str(e), folder=self.folder)

    def rotate_if_needed(self):
        today = self._today()
        if today != self.current_date:
            self._open_for_date(today)

    @staticmethod
    def needs_timestamp(content: str) -> bool:
        """Title and separator lines are written verbatim."""
        if not content:
            return False
        if content[0] in "*-=":
            return False
        if "SYSTEM" in content:
            return False
        return True

    def write_line(self, content: str):
        self.rotate_if_needed()
        if self._fh is None:
            return
        if self.needs_timestamp(content):
            ts = time.strftime("%H:%M:%S", time.localtime(time.time()))
            text = f"[{ts}] {content}\r\n"
        else:
            text = f"{content}\r\n"
        try:
            self._fh.write(text)
            self._fh.flush()
        except (OSError, ValueError) as e:
            self._emit("log_write_error", error=str(e), path=self.path)

    def close(self):
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None
