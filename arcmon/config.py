from __future__ import annotations

import argparse
from argparse import RawDescriptionHelpFormatter

try:
    import tomllib  # py3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from .constants import USAGE_EXAMPLES

DEFAULT_CONTROL_SOCKET = "/run/arcmon/arcmon.sock"

SAMPLE_CONFIG = """\
# arc-monitor configuration

# Serial mode
[serial]
port = "/dev/ttyUSB0"
baud = 115200

# TCP mode
[tcp]
enabled = false
host = "127.0.0.1"
port = 5000

[logging]
folder = "logs"
json = false
verbose = false

[control]
socket = "/run/arcmon/arcmon.sock"
"""


def load_toml_config(path: str) -> dict:
    """Load TOML configuration from path."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except OSError as e:
        raise SystemExit(f"Cannot read config {path}: {e}")
    except tomllib.TOMLDecodeError as e:
        raise SystemExit(f"Invalid TOML in {path}: {e}")


def write_sample_config(path: str):
    with open(path, "x", encoding="utf-8") as f:
        f.write(SAMPLE_CONFIG)


def _get_cfg(cfg: dict, section: str, key: str, default=None):
    sec = cfg.get(section, {})
    if not isinstance(sec, dict):
        return default
    return sec.get(key, default)


def config_defaults_from(cfg: dict) -> dict:
    """Map TOML config into argparse defaults."""
    return {
        "port": _get_cfg(cfg, "serial", "port", None),
        "baud": _get_cfg(cfg, "serial", "baud", 115200),
        "tcp": _get_cfg(cfg, "tcp", "enabled", False),
        "tcp_host": _get_cfg(cfg, "tcp", "host", "127.0.0.1"),
        "tcp_port": _get_cfg(cfg, "tcp", "port", 5000),
        "log_folder": _get_cfg(cfg, "logging", "folder", "logs"),
        "json": _get_cfg(cfg, "logging", "json", False),
        "verbose": _get_cfg(cfg, "logging", "verbose", False),
        "no_banner": _get_cfg(cfg, "logging", "no_banner", False),
        "control_socket": _get_cfg(cfg, "control", "socket", DEFAULT_CONTROL_SOCKET),
        "max_log_lines": _get_cfg(cfg, "monitor", "max_log_lines", 1000),
        "max_plot_points": _get_cfg(cfg, "monitor", "max_plot_points", 2000),
        "gap_threshold": _get_cfg(cfg, "monitor", "gap_threshold", 5.0),
        "queue_size": _get_cfg(cfg, "monitor", "queue_size", 10000),
    }


def resolved_config_dict(args) -> dict:
    return {
        "serial": {"port": args.port, "baud": args.baud},
        "tcp": {"enabled": bool(args.tcp), "host": args.tcp_host, "port": args.tcp_port},
        "logging": {
            "folder": args.log_folder,
            "json": bool(args.json),
            "verbose": args.verbose,
            "no_banner": args.no_banner,
        },
        "control": {"socket": getattr(args, "control_socket", None)},
        "monitor": {
            "max_log_lines": args.max_log_lines,
            "max_plot_points": args.max_plot_points,
            "gap_threshold": args.gap_threshold,
            "queue_size": args.queue_size,
        },
    }


def build_arg_parser(defaults=None):
    """Construct the CLI argument parser."""
    ap = argparse.ArgumentParser(
        prog="arc-monitor",
        description="Monitor an arc controller MCU over serial or TCP.",
        epilog=USAGE_EXAMPLES,
        formatter_class=RawDescriptionHelpFormatter,
    )
    # Defaults come from the built-in table; TOML values are backfilled after parsing.
    if defaults is None:
        defaults = config_defaults_from({})
    ap.set_defaults(**defaults)
    ap.add_argument("-p", "--port", help="Serial device (e.g. /dev/ttyUSB0 or COM3).")
    ap.add_argument("--baud", type=int, help="Serial baud rate.")
    tcp_group = ap.add_mutually_exclusive_group()
    tcp_group.add_argument("--tcp", dest="tcp", action="store_true", help="Connect over TCP instead of serial.")
    tcp_group.add_argument("--serial", dest="tcp", action="store_false", help="Connect over serial (default).")
    ap.add_argument("--tcp-host", help="TCP host of the device bridge.")
    ap.add_argument("--tcp-port", type=int, help="TCP port of the device bridge.")
    ap.add_argument("--log-folder", help="Folder for daily report logs. Empty string disables file logging.")
    ap.add_argument("--verbose", dest="verbose", action="store_true", help="Log every received line and value change.")
    ap.add_argument("--no-verbose", dest="verbose", action="store_false", help="Disable verbose logging.")
    json_group = ap.add_mutually_exclusive_group()
    json_group.add_argument("--json", dest="json", action="store_true", help="Emit JSON log events.")
    json_group.add_argument("--no-json", dest="json", action="store_false", help="Disable JSON log output.")
    ap.add_argument("--no-banner", dest="no_banner", action="store_true", help="Disable the startup banner.")
    ap.add_argument("--banner", dest="no_banner", action="store_false", help="Enable the startup banner.")
    ap.add_argument("--max-log-lines", type=int, help="Report lines kept in memory for status queries.")
    ap.add_argument("--max-plot-points", type=int, help="Points kept in the total timeline.")
    ap.add_argument("--gap-threshold", type=float, help="Seconds between samples after which the timeline is broken.")
    ap.add_argument("--queue-size", type=int, help="Maximum lines buffered between the reader and the decoder.")
    sock_group = ap.add_mutually_exclusive_group()
    sock_group.add_argument("--control-socket", dest="control_socket",
                            help="Path to a local UNIX control socket used by arcmonctl.")
    sock_group.add_argument("--no-control-socket", dest="control_socket", action="store_const", const="",
                            help="Disable the local control socket.")
    ap.add_argument("--doctor", action="store_true", help="List ports, open the link and show how lines decode, then exit.")
    ap.add_argument("--doctor-seconds", type=float, default=10.0, help="How long --doctor listens (default: 10).")
    ap.add_argument("--config", help="Path to a TOML config file. CLI args override config values.")
    ap.add_argument("--write-config", metavar="PATH", help="Write a sample TOML config to PATH and exit.")
    ap.add_argument("--print-config", action="store_true", help="Print the resolved configuration and exit.")
    ap.add_argument("--version", action="store_true", help="Print version and exit.")
    return ap


def apply_config_file(args, argv) -> None:
    """Backfill args from ``--config``. Options given on the command line win."""
    if not getattr(args, "config", None):
        return
    cfg = load_toml_config(args.config)
    file_defaults = config_defaults_from(cfg)
    # Re-parse with every default set to None: whatever is still set came from the CLI.
    explicit = vars(build_arg_parser(defaults={k: None for k in file_defaults}).parse_args(argv))
    for k, v in file_defaults.items():
        if explicit.get(k) is None:
            setattr(args, k, v)


def apply_transport_guardrails(args):
    """Drop settings that do not apply to the selected transport.

    In TCP mode the serial port is ignored; in serial mode the TCP endpoint is
    cleared. Returns the sorted list of ignored flags worth warning about.
    """
    ignored = []
    if getattr(args, "tcp", False):
        if getattr(args, "port", None):
            ignored.append("--port")
        args.port = None
    else:
        args.tcp_host = None
        args.tcp_port = None
    return sorted(set(ignored))
