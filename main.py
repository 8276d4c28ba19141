#!/usr/bin/env python3
"""
APRS Weather Relay - Entry Point

Relays local weather sensor readings to the APRS-IS network.
"""

import os
import sys
from datetime import datetime

MAX_LOG_SIZE = 10 * 1024 * 1024  # 10MB


def open_log_file(path):
    """Open the console log in append mode, rotating it when too large."""
    log_path = os.path.expanduser(path)
    if os.path.exists(log_path) and os.path.getsize(log_path) > MAX_LOG_SIZE:
        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S')
        backup_path = f"{log_path}.{timestamp}"
        os.rename(log_path, backup_path)
        print(f"Rotated log: {backup_path}", file=sys.stderr)
    return open(log_path, 'a', buffering=1)


if __name__ == "__main__":
    import argparse
    from aprswx.console import run

    parser = argparse.ArgumentParser(description="APRS Weather Relay")
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        help="Station config file (default: ~/.aprswx_config.json)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        nargs="?",
        type=int,
        const=2,
        default=0,
        metavar="LEVEL",
        help="Enable debug output at startup (optional level 0-6, default: 2)",
    )
    parser.add_argument(
        "-l",
        "--log",
        nargs="?",
        const="~/.aprswx.log",
        metavar="FILE",
        help="Log all console output to file (default: ~/.aprswx.log)",
    )
    parser.add_argument(
        "--burst",
        action="store_true",
        help="Connect only to send each report (overrides MODE)",
    )
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the loaded settings before starting",
    )

    args = parser.parse_args()

    if args.debug is not None and not 0 <= args.debug <= 6:
        parser.error("Debug level must be between 0 and 6")

    log_file = None
    if args.log:
        from aprswx.utils import set_console_log_file

        log_file = open_log_file(args.log)
        set_console_log_file(log_file)
        print(f"Logging enabled to: {log_file.name}", file=sys.stderr)

    try:
        run(
            config_file=os.path.expanduser(args.config) if args.config else None,
            auto_debug=args.debug,
            burst=args.burst,
            show_config=args.show_config,
        )
    finally:
        if log_file:
            log_file.close()
