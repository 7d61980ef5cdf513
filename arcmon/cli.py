from __future__ import annotations

import json
import signal
import sys
import threading
import time

from .config import (
    apply_config_file,
    apply_transport_guardrails,
    build_arg_parser,
    resolved_config_dict,
    write_sample_config,
)
from .constants import VERSION
from .doctor import run_doctor
from .logfile import LogWriter
from .logging import JsonLogger
from .monitor import ArcMonitor
from .serialio import open_link
from .state import SessionState


def main(argv=None):
    """CLI entry point. Parses args, opens the link and runs the monitor."""
    if argv is None:
        argv = sys.argv[1:]
    ap = build_arg_parser()
    if not argv:
        ap.print_help()
        return 0

    args = ap.parse_args(argv)

    # TOML values fill whatever the CLI left unset.
    apply_config_file(args, argv)

    if args.version:
        print(VERSION)
        return 0

    if args.write_config:
        try:
            write_sample_config(args.write_config)
        except FileExistsError:
            print(f"ERROR: {args.write_config} already exists", file=sys.stderr)
            return 2
        print(f"wrote {args.write_config}")
        return 0

    ignored = apply_transport_guardrails(args)
    if ignored:
        print("WARNING: TCP mode selected; ignoring: " + ", ".join(ignored))

    if args.print_config:
        print(json.dumps(resolved_config_dict(args), indent=2, sort_keys=True))
        return 0

    if args.doctor:
        return run_doctor(args)

    if not args.tcp and not args.port:
        raise SystemExit("Serial mode requires -p/--port (or use --tcp)")

    logger = JsonLogger(enable_json=bool(args.json))

    try:
        link = open_link(args)
    except Exception as e:
        logger.emit("connect_failed", mode=("tcp" if args.tcp else "serial"), error=str(e))
        return 2

    log_writer = LogWriter(args.log_folder, logger) if args.log_folder else None
    mon = ArcMonitor(
        state=SessionState(),
        logger=logger,
        log_writer=log_writer,
        verbose=args.verbose,
        max_log_lines=args.max_log_lines,
        max_plot_points=args.max_plot_points,
        gap_threshold_s=args.gap_threshold,
        queue_size=args.queue_size,
    )

    if not args.no_banner:
        print(f"arc-monitor {VERSION}")
        logger.emit(
            "startup",
            version=VERSION,
            mode=link.kind,
            link=link.name,
            log_folder=args.log_folder or None,
            verbose=args.verbose,
            control_socket=args.control_socket or None,
        )

    mon.attach_link(link)
    mon.start_reader()
    if args.control_socket:
        mon.start_control_socket(args.control_socket)
    mon.start()

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    exit_code = 0
    while not stop.is_set():
        t = mon._reader_thread
        if t is not None and not t.is_alive():
            logger.emit("link_thread_dead", last_error=mon.last_error)
            exit_code = 3
            break
        time.sleep(0.2)

    mon.stop()
    link.close()
    if mon._reader_thread is not None:
        mon._reader_thread.join(timeout=1.0)
    # The loop may still be writing a report line.
    if mon._loop_thread is not None:
        mon._loop_thread.join(timeout=1.0)
    if log_writer is not None:
        log_writer.close()
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
