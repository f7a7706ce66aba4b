"""
Exceptions raised by the filter library.

Filesystem problems (missing files, permissions, an existing file on create)
are not wrapped; the corresponding ``OSError`` subclass reaches the caller
unchanged.
"""


class FilterError(Exception):
    """Base class for all filter exceptions."""


class InvalidFileError(FilterError):
    """The data file exists but is not a recognised filter file."""


class InvalidKeyError(FilterError):
    """The value queried or added could not be interpreted as a public key."""


class FilterClosedError(FilterError):
    """An operation was attempted on a filter which has been closed."""

    def __init__(self, message: str = "filter has been closed"):
        super().__init__(message)


class LockTimeoutError(FilterError):
    """The file lock could not be acquired within the configured timeout."""


class FilterFullError(FilterError):
    """A header counter has reached the largest value the file format can store."""
