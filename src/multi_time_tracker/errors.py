"""Exception classes for multi-time-tracker."""


class TrackerError(Exception):
    """Base exception for tracker errors."""

    pass


class ValidationError(TrackerError):
    """Raised when input is rejected before any state is changed.

    Blank names, unknown ids, an empty file selection and malformed CSV
    headers or rows all end up here.
    """

    pass


class StructuralError(TrackerError):
    """Raised when an import set cannot describe the tracker structure.

    For example sessions.csv is missing and there is no dict.json to fall back on.
    """

    pass


class ImportIOError(TrackerError):
    """Raised when an import file or the backup folder cannot be read."""

    pass
