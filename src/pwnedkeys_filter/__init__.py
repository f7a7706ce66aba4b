"""
Pwnedkeys Filter - file-backed bloom filter of compromised public keys.

This package provides:
- Creation of filter files sized for a capacity and false-positive rate
- Querying and adding keys (any form: key objects, certificates, PEM or DER)
- Advisory locking so readers and a writer can share one file
- A command-line tool for building and checking filter files
"""

__version__ = "0.1.0"

from pwnedkeys_filter.errors import (
    FilterClosedError,
    FilterError,
    FilterFullError,
    InvalidFileError,
    InvalidKeyError,
    LockTimeoutError,
)
from pwnedkeys_filter.filter import Filter
from pwnedkeys_filter.keys import spki_der
from pwnedkeys_filter.parameters import FilterParameters, filter_parameters

__all__ = [
    "Filter",
    "FilterParameters",
    "filter_parameters",
    "spki_der",
    "FilterError",
    "InvalidFileError",
    "InvalidKeyError",
    "FilterClosedError",
    "FilterFullError",
    "LockTimeoutError",
]
