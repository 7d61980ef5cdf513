import sys
from pathlib import Path

import pytest

# Make the package importable without installing it.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CapturingLogger:
    """Minimal logger that matches the monitor's .emit(event, **fields) contract."""
    def __init__(self):
        self.events = []

    def emit(self, event: str, **fields):
        self.events.append((event, fields))

    def names(self):
        return [e for e, _ in self.events]


class DummyLink:
    """Link stub capturing writes from the monitor."""
    kind = "dummy"
    name = "dummy"

    def __init__(self, chunks=()):
        self.writes = []
        self.chunks = list(chunks)
        self.closed = False

    def read_chunk(self) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        return b""

    def write(self, data: bytes):
        self.writes.append(data.decode("latin-1"))

    def close(self):
        self.closed = True


@pytest.fixture
def logger():
    return CapturingLogger()


@pytest.fixture
def dummy_link():
    return DummyLink()
