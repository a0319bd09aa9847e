"""Exceptions raised across funsync.

Only startup and file-serving failures surface as exceptions; per-tick
hardware and discovery failures are logged where they happen.
"""


class FunsyncError(Exception):
    """Base class for funsync errors."""


class FunscriptError(FunsyncError):
    """A funscript file is missing, unreadable or does not match the schema."""


class IntensityUnavailable(FunsyncError):
    """No intensity curve can be derived (too few actions or rejected positions)."""


class DeviceConnectionError(FunsyncError):
    """The initial connection to the device server failed."""
