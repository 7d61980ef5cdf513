#!/usr/bin/env python3
"""Local control client for arc-monitor.

The monitor holds the device link, so another console cannot open the port at
the same time. arcmonctl talks to the monitor over a local UNIX socket.

Commands:
  status | reset

Socket path:
  - default: /run/arcmon/arcmon.sock
  - override: --socket PATH or ARCMON_SOCKET env var
"""

from __future__ import annotations

import argparse
import json
import os
import socket
import sys

DEFAULT_SOCK = "/run/arcmon/arcmon.sock"


def _send(sock_path: str, cmd: str, timeout_s: float = 2.0) -> dict:
    s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    s.settimeout(timeout_s)
    try:
        s.connect(sock_path)
        s.sendall((cmd.strip() + "\n").encode("utf-8"))
        data = b""
        while b"\n" not in data and len(data) < 65536:
            chunk = s.recv(4096)
            if not chunk:
                break
            data += chunk
        line = data.decode("utf-8", errors="replace").strip()
        if not line:
            return {"ok": False, "error": "empty response"}
        try:
            return json.loads(line)
        except json.JSONDecodeError:
            return {"ok": False, "error": "non-json response", "raw": line}
    finally:
        s.close()


def format_status(resp: dict) -> str:
    state = resp.get("state", {})
    ver = resp.get("version", "")
    return (
        f"ok  version={ver} stage={state.get('stage')} total={state.get('cumulative_total')} "
        f"active_time_s={state.get('active_time_seconds')} ({state.get('active_time_source')}) "
        f"last_update={state.get('last_update') or 'N/A'} rate_hz={resp.get('rate_hz')}"
    )


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Control arc-monitor via its local UNIX socket")
    ap.add_argument("command", choices=["status", "reset"], help="Command to send to the monitor")
    ap.add_argument("--socket", default=os.environ.get("ARCMON_SOCKET", DEFAULT_SOCK),
                    help=f"Control socket path (default: {DEFAULT_SOCK})")
    ap.add_argument("--json", action="store_true", help="Print raw JSON response")
    args = ap.parse_args(argv)

    try:
        resp = _send(args.socket, args.command)
    except OSError as e:
        print(f"error: cannot reach monitor at {args.socket}: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(resp, indent=2, sort_keys=True))
        return 0 if resp.get("ok") else 2

    if not resp.get("ok"):
        print(f"error: {resp.get('error', 'unknown error')}", file=sys.stderr)
        raw = resp.get("raw")
        if raw:
            print(raw, file=sys.stderr)
        return 2

    if args.command == "status":
        print(format_status(resp))
        if resp.get("last_error"):
            print(f"last_error: {resp['last_error']}")
    else:
        print("ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
