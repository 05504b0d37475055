"""Shared utility functions for multi-time-tracker."""

from datetime import datetime

import dateparser


def parse_datetime(dt_string: str) -> datetime:
    """
    Parse a datetime string in various formats.

    Supports:
    - ISO format: "2025-01-01T09:00:00Z"
    - Relative dates: "yesterday", "today", "10 minutes ago"
    - Simple format: "2025-01-01 09:00" (interpreted as local time)

    Args:
        dt_string: DateTime string to parse

    Returns:
        Timezone-aware datetime object (local timezone)
    """
    dt = dateparser.parse(
        dt_string,
        settings={
            "RETURN_AS_TIMEZONE_AWARE": True,
            "TIMEZONE": "local",
        },
    )

    if dt is None:
        raise ValueError(f"Unable to parse datetime string: {dt_string}")

    return dt


def parse_timestamp_ms(value: str) -> int:
    """
    Parse a timestamp given either as epoch milliseconds or as a date string.

    Args:
        value: "1735722000000", "2025-01-01 09:00", "5 minutes ago", ...

    Returns:
        Milliseconds since epoch
    """
    value = value.strip()
    if value.isdigit():
        return int(value)
    return datetime_to_ms(parse_datetime(value))


def datetime_to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def ms2str(ts_ms: int | None, format: str = "%FT%H:%M:%S") -> str:
    """Format epoch milliseconds as a string in the local timezone."""
    if ts_ms is None:
        return "XX:XX:XX"
    return datetime.fromtimestamp(ts_ms / 1000).astimezone().strftime(format)


def format_duration(ms: int, show_seconds: bool = True, hide_hours_if_zero: bool = False) -> str:
    """
    Format a duration given in milliseconds.

    - show_seconds=True: "HH:MM:SS", or "M:SS" when hide_hours_if_zero and under an hour
    - show_seconds=False: "HH:MM", or "M" when hide_hours_if_zero and under an hour

    Minutes are not zero-padded when hours are hidden (7:05, not 07:05).
    """
    total_seconds = max(0, ms) // 1000
    seconds = total_seconds % 60
    total_minutes = total_seconds // 60
    minutes = total_minutes % 60
    hours = total_minutes // 60

    if show_seconds:
        if hide_hours_if_zero and hours == 0:
            return f"{minutes}:{seconds:02d}"
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    if hide_hours_if_zero and hours == 0:
        return f"{minutes}"
    return f"{hours:02d}:{minutes:02d}"


def format_hhmmss(ms: int) -> str:
    """Format a duration in milliseconds as H:MM:SS (hours are not padded)."""
    total_seconds = max(0, ms) // 1000
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60
    return f"{hours}:{minutes:02d}:{seconds:02d}"
