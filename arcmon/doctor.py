from __future__ import annotations

import time

from .decoder import decode_line, is_live_line
from .serialio import LineFramer, open_link, serial
from .state import ChangeSummary, SessionState
from .util import sanitize_line


def describe_change(change: ChangeSummary) -> str:
    """Short text listing the flags set by a decoded line."""
    if not change.any():
        return "-"
    names = [
        name
        for name in ("system_reset", "session_reset", "stage_changed", "total_changed", "active_changed")
        if getattr(change, name)
    ]
    return ",".join(names)


def classify(line: str) -> str:
    line = sanitize_line(line)
    if not line:
        return "empty"
    if is_live_line(line):
        return "live"
    return "report"


def list_serial_ports():
    if serial is None:
        return []
    from serial.tools import list_ports
    return sorted(list_ports.comports(), key=lambda p: p.device)


def run_doctor(args):
    """Check the host side of the link and show how incoming lines decode.

    Safe: nothing is written to the device. Uses a scratch SessionState, so it
    can run next to nothing else holding the port."""
    print("Doctor Mode (safe):")
    print("  - Nothing is sent to the device.")
    print("  - Lines are decoded into a scratch session.")
    print()

    if serial is None:
        print("  WARN: pyserial is not installed; serial ports unavailable.")
    else:
        ports = list_serial_ports()
        if not ports:
            print("  Serial ports: none found")
        for p in ports:
            print(f"  Serial port: {p.device}  {p.description}")
    print()

    target = f"tcp {args.tcp_host}:{args.tcp_port}" if args.tcp else f"serial {args.port} @ {args.baud}"
    if not args.tcp and not args.port:
        print("  Link: skipped (no -p/--port given)")
        return 0
    try:
        link = open_link(args)
    except Exception as e:
        print(f"  FAIL: cannot open {target}: {e}")
        return 2
    print(f"  OK: opened {target}")

    state = SessionState()
    framer = LineFramer()
    counts = {"live": 0, "report": 0}
    deadline = time.monotonic() + float(args.doctor_seconds)
    try:
        while time.monotonic() < deadline:
            try:
                data = link.read_chunk()
            except Exception as e:
                print(f"  FAIL: read error: {e}")
                return 2
            for line in framer.feed(data):
                kind = classify(line)
                if kind in counts:
                    counts[kind] += 1
                change = decode_line(state, line)
                print(f"  [{kind:6}] {describe_change(change):40} {line}")
    except KeyboardInterrupt:
        pass
    finally:
        link.close()

    print()
    print(f"  Lines: live={counts['live']} report={counts['report']}")
    print(
        f"  Session: stage={state.stage} total={state.cumulative_total} "
        f"active_time_s={state.active_time_seconds:.3f} ({state.active_time_source.value})"
    )
    if counts["live"] == 0 and counts["report"] == 0:
        print("  WARN: no lines received (check port, baud rate and device output).")
    return 0
