import queue
import threading
import time

from arcmon.serialio import ITEM_ERROR, ITEM_LINE, LineFramer, LinkReaderThread

from conftest import CapturingLogger, DummyLink


def test_framer_splits_on_cr_and_lf():
    f = LineFramer()
    assert f.feed(b"a\rb\nc\r\n") == ["a", "b", "c"]


def test_framer_keeps_partial_lines():
    f = LineFramer()
    assert f.feed(b"[Live] Sta") == []
    assert f.feed(b"ge: 3\n") == ["[Live] Stage: 3"]


def test_framer_drops_blank_lines_and_trims_right():
    f = LineFramer()
    assert f.feed(b"\n\n   \r\n  x  \n") == ["  x"]


def test_framer_maps_bytes_one_to_one():
    f = LineFramer()
    assert f.feed(b"\xe2\x82\xac\n") == ["\xe2\x82\xac"]


class FailingLink(DummyLink):
    def read_chunk(self) -> bytes:
        if self.chunks:
            return self.chunks.pop(0)
        raise OSError("device unplugged")


def test_reader_forwards_lines_then_reports_error():
    link = FailingLink(chunks=[b"one\ntw", b"o\n"])
    q = queue.Queue(maxsize=10)
    stop = threading.Event()
    logger = CapturingLogger()

    t = LinkReaderThread(link, q, stop, logger)
    t.start()
    t.join(timeout=2.0)
    assert not t.is_alive()

    items = []
    while not q.empty():
        items.append(q.get_nowait())
    assert items[:2] == [(ITEM_LINE, "one"), (ITEM_LINE, "two")]
    assert items[2][0] == ITEM_ERROR
    assert "device unplugged" in items[2][1]
    assert logger.names() == ["link_read_error"]


def test_reader_stops_when_queue_full_and_stopped():
    link = DummyLink(chunks=[b"a\nb\nc\n"])
    q = queue.Queue(maxsize=1)
    stop = threading.Event()
    t = LinkReaderThread(link, q, stop, CapturingLogger(), put_timeout_s=0.05)
    t.start()
    time.sleep(0.2)
    assert t.is_alive()  # blocked on the full queue
    stop.set()
    t.join(timeout=2.0)
    assert not t.is_alive()
    assert q.get_nowait() == (ITEM_LINE, "a")
