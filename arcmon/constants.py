from __future__ import annotations

VERSION = "1.0.0"

# Device protocol markers
RESET_ACK_MARKER = "SYSTEM RESET OK"
LIVE_MARKERS = ("[Live]", "[LIVE]")

KEY_STAGE = "Stage:"
KEY_TOTAL = "Total:"
KEY_DURATION = "Duration"
KEY_ACTIVE_TIME = "Active Time"
KEY_GRAND_TOTAL = "Grand Total"
KEY_WAIT = "Wait:"

# Outbound command understood by the MCU firmware.
RESET_COMMAND = "R\n"

RESET_SEPARATOR = "===== SYSTEM RESET ====="


USAGE_EXAMPLES = """\
Usage examples:
  # Serial connection
  arc-monitor -p /dev/ttyUSB0 --baud 115200

  # TCP bridge (e.g. serial-to-ethernet adapter)
  arc-monitor --tcp --tcp-host 192.168.1.50 --tcp-port 5000

  # Structured logs, verbose line tracing, daily logs under ./logs
  arc-monitor -p /dev/ttyUSB0 --json --verbose --log-folder logs

  # Load settings from TOML (CLI args override)
  arc-monitor --config arcmon.toml

  # Watch the link and print how each line decodes (sends nothing)
  arc-monitor --doctor -p /dev/ttyUSB0
"""
