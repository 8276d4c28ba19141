"""Console output helpers for the weather relay."""

import html
from datetime import datetime

from prompt_toolkit import print_formatted_text as _print_pt_original
from prompt_toolkit.formatted_text import HTML, to_plain_text

from . import constants


# Console log file handle (for -l option)
_console_log_file = None


def set_console_log_file(file_handle):
    """Set the console log file handle for print_pt output."""
    global _console_log_file
    _console_log_file = file_handle


def print_pt(*args, **kwargs):
    """Wrapper for print_formatted_text that also logs to file if enabled."""
    _print_pt_original(*args, **kwargs)

    if _console_log_file:
        try:
            if args:
                text = to_plain_text(args[0])
                timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
                _console_log_file.write(f"[{timestamp}] {text}\n")
                _console_log_file.flush()
        except (OSError, ValueError):
            # Log file closed or unwritable; terminal output already done
            pass


def timestamp():
    """Get formatted timestamp."""
    return datetime.now().strftime("%H:%M:%S")


def _sanitize_for_html(text):
    """Remove control characters and escape HTML entities."""
    text_str = str(text)
    filtered = "".join(
        (
            c
            if (c >= " " and c != "\x7f") or c in "\n\r\t"
            else f"\\x{ord(c):02x}"
        )
        for c in text_str
    )
    return html.escape(filtered, quote=False)


def print_header(text):
    """Print a colored header."""
    print_pt(HTML(f"\n<b><cyan>{'='*70}</cyan></b>"))
    print_pt(HTML(f"<b><cyan>{_sanitize_for_html(text)}</cyan></b>"))
    print_pt(HTML(f"<b><cyan>{'='*70}</cyan></b>"))


def print_info(text):
    """Print info message."""
    safe_text = _sanitize_for_html(text)
    print_pt(HTML(f"<green>[INFO]</green> {safe_text}"))


def print_error(text):
    """Print error message."""
    safe_text = _sanitize_for_html(text)
    print_pt(HTML(f"<red>[ERROR]</red> {safe_text}"))


def print_status(text):
    """Print status message."""
    safe_text = _sanitize_for_html(text)
    print_pt(HTML(f"<blue>[STATUS]</blue> {safe_text}"))


def print_warning(text):
    """Print warning message."""
    safe_text = _sanitize_for_html(text)
    print_pt(HTML(f"<orange>[WARNING]</orange> {safe_text}"))


def print_debug(text, level=2):
    """Print debug message if the global debug level allows it.

    Args:
        text: The message to print
        level: Debug level (default=2 for general debugging)
               1 = Raw APRS-IS traffic
               2 = General debugging
               Higher levels add protocol and storage detail
    """
    if constants.DEBUG_LEVEL < level:
        return

    safe_text = _sanitize_for_html(text)
    ts = datetime.now().strftime("%H:%M:%S.%f")[:-3]  # milliseconds
    print_pt(HTML(f"<gray>[DEBUG {ts}]</gray> {safe_text}"))


def print_aprs(text, direction="RX"):
    """Print a raw APRS-IS line (debug level 1 and up).

    Args:
        text: Line as sent or received, without line terminator
        direction: 'RX' for inbound, 'TX' for outbound
    """
    if constants.DEBUG_LEVEL < 1:
        return

    safe_text = _sanitize_for_html(str(text).rstrip())
    color = "yellow" if direction == "RX" else "cyan"
    print_pt(HTML(f"<{color}>[{direction} {timestamp()}]</{color}> {safe_text}"))


def set_debug_level(level):
    """Set the global debug level (0-6)."""
    constants.DEBUG_LEVEL = max(0, min(6, int(level)))
