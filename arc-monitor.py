#!/usr/bin/env python3
#
# Arc controller MCU monitor
#
# Reads the status lines an arc controller MCU prints over serial (or a TCP
# bridge), tracks stage, pulse total and active time, and keeps a daily log of
# the device's stage and summary reports.
#
# The device is reset by sending `R`; it answers with `SYSTEM RESET OK`.
#

from __future__ import annotations

from arcmon.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
