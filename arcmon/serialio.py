from __future__ import annotations

import queue
import socket
import threading
from typing import List

try:
    import serial  # pyserial
except ImportError:  # pragma: no cover
    serial = None

READ_TIMEOUT_S = 0.1
CHUNK_SIZE = 1024

# Queue item kinds delivered to the monitor loop.
ITEM_LINE = "line"
ITEM_ERROR = "error"
ITEM_RESET = "reset"


class LineFramer:
    """Split a byte stream into lines on CR or LF.

    Each byte becomes one character (Latin-1). Trailing whitespace is trimmed
    and empty lines are dropped."""
    def __init__(self):
        self._buf: List[str] = []

    def feed(self, data: bytes) -> List[str]:
        lines = []
        for ch in data.decode("latin-1"):
            if ch in "\r\n":
                line = "".join(self._buf).rstrip()
                self._buf.clear()
                if line:
                    lines.append(line)
            else:
                self._buf.append(ch)
        return lines


class SerialLink:
    """Device link over a serial port."""
    kind = "serial"

    def __init__(self, port: str, baud: int, timeout_s: float = READ_TIMEOUT_S):
        if serial is None:  # pragma: no cover
            raise RuntimeError("pyserial is not installed. Install it with: pip install pyserial")
        self.name = port
        self.ser = serial.Serial(port, baud, timeout=timeout_s)

    def read_chunk(self) -> bytes:
        # Blocks for at most the port timeout; b"" means nothing arrived.
        return self.ser.read(self.ser.in_waiting or 1)

    def write(self, data: bytes):
        self.ser.write(data)
        self.ser.flush()

    def close(self):
        self.ser.close()


class TcpLink:
    """Device link over TCP (serial-to-network bridge)."""
    kind = "tcp"

    def __init__(self, host: str, port: int, timeout_s: float = READ_TIMEOUT_S, connect_timeout_s: float = 5.0):
        self.name = f"{host}:{port}"
        self.sock = socket.create_connection((host, port), timeout=connect_timeout_s)
        self.sock.settimeout(timeout_s)

    def read_chunk(self) -> bytes:
        try:
            data = self.sock.recv(CHUNK_SIZE)
        except socket.timeout:
            return b""
        if not data:
            raise ConnectionError(f"connection closed by {self.name}")
        return data

    def write(self, data: bytes):
        self.sock.sendall(data)

    def close(self):
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()


def open_link(args):
    """Open the link selected by the resolved CLI/config arguments."""
    if getattr(args, "tcp", False):
        return TcpLink(args.tcp_host, int(args.tcp_port))
    return SerialLink(args.port, int(args.baud))


class LinkReaderThread(threading.Thread):
    """Background link reader.

    Frames incoming bytes into lines and forwards them to the monitor queue.
    Read errors are logged, forwarded as an advisory item, and end the thread."""
    def __init__(self, link, out_q: queue.Queue, stop_evt: threading.Event, logger, put_timeout_s: float = 0.2):
        """Create the reader thread.

        Args:
            link: An open SerialLink/TcpLink (anything with read_chunk()).
            out_q: Queue receiving (kind, payload) items.
            stop_evt: Set to stop the thread.
            logger: JsonLogger for link-related events.
        """
        super().__init__(daemon=True)
        self.link = link
        self.out_q = out_q
        self.stop_evt = stop_evt
        self.logger = logger
        self.put_timeout_s = put_timeout_s
        self.framer = LineFramer()

    def _put(self, item) -> bool:
        # Bounded queue: wait for the consumer rather than grow without limit.
        while not self.stop_evt.is_set():
            try:
                self.out_q.put(item, timeout=self.put_timeout_s)
                return True
            except queue.Full:
                continue
        return False

    def run(self):
        """Thread entry point. Reads until stopped or the link fails."""
        while not self.stop_evt.is_set():
            try:
                data = self.link.read_chunk()
            except Exception as e:
                if self.stop_evt.is_set():
                    break
                self.logger.emit("link_read_error", link=getattr(self.link, "name", ""), error=str(e))
                self._put((ITEM_ERROR, f"read failed: {e}"))
                break
            if not data:
                continue
            for line in self.framer.feed(data):
                if not self._put((ITEM_LINE, line)):
                    return
