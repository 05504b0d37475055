"""Logging and output utilities for multi-time-tracker."""

import json
import logging
import sys
from datetime import UTC, datetime

from termcolor import cprint

# Structured fields callers may pass through ``extra={...}``
CUSTOM_FIELDS = ["task_id", "tag_id", "now_ms", "tags", "event_data"]


class StructuredFormatter(logging.Formatter):
    """Render a record with its tracker context (task, tag, tracker time).

    One JSON object per line for the log file, a short line for the console.
    """

    def __init__(self, use_json: bool = False, run_mode: dict = None) -> None:
        super().__init__()
        self.use_json = use_json
        self.run_mode = run_mode or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if self.run_mode:
            log_data["run_mode"] = self.run_mode

        for key in CUSTOM_FIELDS:
            if hasattr(record, key):
                val = getattr(record, key)
                if isinstance(val, (set, frozenset)):
                    log_data[key] = sorted(val)
                elif isinstance(val, (int, dict, list)) and self.use_json:
                    log_data[key] = val
                else:
                    log_data[key] = str(val)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.use_json:
            return json.dumps(log_data, default=str)
        else:
            return self._format_human(log_data)

    def _format_human(self, log_data: dict) -> str:
        """Format log data in a human-readable way."""
        now = datetime.now().strftime("%H:%M:%S")
        if "now_ms" in log_data:
            # The tracker time can differ from the wall clock (--at, tests)
            tracker_time = datetime.fromtimestamp(int(log_data["now_ms"]) / 1000).strftime("%H:%M:%S")
            ts_prefix = f"{now} / {tracker_time}"
        else:
            ts_prefix = now

        msg = log_data["message"]
        ids = [f"{key}={log_data[key]}" for key in ("task_id", "tag_id") if key in log_data]
        if ids:
            msg = f"{msg} [{' '.join(ids)}]"
        if "tags" in log_data:
            msg = f"{msg} (tags: {log_data['tags']})"
        if "event_data" in log_data:
            msg = f"{msg} (data: {log_data['event_data']})"
        if "exception" in log_data:
            msg = f"{msg}\n{log_data['exception']}"

        return f"{ts_prefix}: {msg}"


class ColoredConsoleHandler(logging.StreamHandler):
    """Stream handler that styles each line by level via termcolor."""

    # Lowest level first; a record gets the style of the highest threshold it reaches
    STYLES = (
        (logging.INFO, "yellow", []),
        (logging.WARNING, None, ["bold"]),
        (logging.ERROR, "red", ["bold"]),
        (logging.CRITICAL, "red", ["bold", "blink"]),
    )

    @classmethod
    def style_for(cls, levelno: int) -> tuple[str | None, list[str]]:
        color, attrs = None, []
        for threshold, level_color, level_attrs in cls.STYLES:
            if levelno >= threshold:
                color, attrs = level_color, level_attrs
        return color, attrs

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            color, attrs = self.style_for(record.levelno)
            if color or attrs:
                cprint(msg, color=color, attrs=attrs, file=self.stream)
            else:
                self.stream.write(msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    json_format: bool = False,
    log_level: int = logging.DEBUG,
    console_log_level: int = logging.ERROR,
    log_file: str = None,
    run_mode: dict = None,
) -> None:
    """
    Replace the root logger handlers.

    Args:
        json_format: Write the log file as JSON lines
        log_level: Root level; 0 disables logging completely
        console_log_level: Threshold for stderr; 0 disables the console handler
        log_file: File receiving every record; no file handler when None
        run_mode: Subcommand and clock info attached to every record
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level or logging.CRITICAL + 1)

    root_logger.handlers.clear()

    if log_file and log_level:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter(use_json=json_format, run_mode=run_mode))
        root_logger.addHandler(file_handler)
    if console_log_level:
        # stderr, so that report output on stdout stays machine readable
        console_handler = ColoredConsoleHandler(sys.stderr)
        console_handler.setLevel(console_log_level)
        console_handler.setFormatter(StructuredFormatter(run_mode=run_mode))
        root_logger.addHandler(console_handler)


def user_output(msg: str, color: str = None, attrs: list = None) -> None:
    """Print command output on stdout, optionally styled with termcolor."""
    if color or attrs:
        cprint(msg, color=color, attrs=attrs)
    else:
        print(msg)


# Basic console logging for direct imports and tests.
# The CLI reconfigures this with its own options.
setup_logging(log_file=None)
