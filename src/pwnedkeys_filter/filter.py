"""
File-backed bloom filter of compromised public keys.

A filter file is a fixed-size header followed by a bitmap of
``2 ** hash_length`` bits. Queries take a shared ``flock`` while reading
bits; adds take an exclusive one from the first bit written until the
rewritten header has been flushed to disk, so cooperating readers never see
bits without the matching header update.

Bits are set in place, one byte at a time. If an I/O error interrupts an add
inside the locked section, some bits may be set while the header still
describes the previous state. That cannot be rolled back; the filter stays
usable (it may only report extra false positives) but its entry count will
be one short.
"""
import os
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Union

import structlog

from pwnedkeys_filter.errors import FilterClosedError, FilterFullError, InvalidFileError
from pwnedkeys_filter.header import MAX_COUNTER, Header, encode, read_header
from pwnedkeys_filter.keys import spki_der
from pwnedkeys_filter.locking import file_lock
from pwnedkeys_filter.parameters import false_positive_probability, filter_parameters
from pwnedkeys_filter.positions import bit_location, filter_positions


PathLike = Union[str, "os.PathLike[str]"]

_fdatasync = getattr(os, "fdatasync", os.fsync)


def write_at(fd: BinaryIO, offset: int, data: bytes) -> None:
    """
    Write all of ``data`` at ``offset`` in an unbuffered file.

    Raw file writes may be partial, so this keeps writing until every byte
    has gone out.

    Raises:
        OSError: If the file stops accepting data
    """
    fd.seek(offset)
    view = memoryview(data)
    while view:
        written = fd.write(view)
        if not written:
            raise OSError(f"Short write at offset {fd.tell()}")
        view = view[written:]


class Filter:
    """
    An open filter data file.

    Instances are not safe for concurrent use from several threads; separate
    instances (in this or other processes) may share a file, coordinated by
    the file lock.
    """

    def __init__(
        self,
        path: PathLike,
        lock_timeout: Optional[float] = None,
        canonicalize: Callable[[Any], bytes] = spki_der,
    ):
        """
        Open an existing filter file for querying and adding.

        Args:
            path: Filter file to open
            lock_timeout: Seconds to wait for the file lock (default: forever)
            canonicalize: Converts a key into the bytes stored in the filter

        Raises:
            InvalidFileError: If the file is not a valid filter file
            OSError: If the file cannot be opened
        """
        self._path = Path(path)
        self._lock_timeout = lock_timeout
        self._canonicalize = canonicalize
        self.logger = structlog.get_logger().bind(path=str(self._path))

        fd = open(self._path, "r+b", buffering=0)
        try:
            self._header = read_header(fd)
            self._check_geometry(fd, self._header)
        except BaseException:
            fd.close()
            raise

        self._fd: Optional[BinaryIO] = fd
        # Set by the first add that changes the file in this session.
        self._already_modified = False

        self.logger.debug(
            "filter_opened",
            revision=self._header.revision,
            entry_count=self._header.entry_count,
            hash_count=self._header.hash_count,
            hash_length=self._header.hash_length,
        )

    @staticmethod
    def _check_geometry(fd: BinaryIO, header: Header) -> None:
        if header.hash_count < 1 or header.hash_length < 1:
            raise InvalidFileError(
                f"Invalid filter geometry: hash_count={header.hash_count}, "
                f"hash_length={header.hash_length}"
            )

        actual = os.fstat(fd.fileno()).st_size
        if actual != header.file_size:
            raise InvalidFileError(
                f"File is {actual} bytes, header describes {header.file_size}"
            )

    @classmethod
    def create(
        cls,
        path: PathLike,
        hash_count: Optional[int] = None,
        hash_length: Optional[int] = None,
        *,
        entries: Optional[int] = None,
        fp_rate: Optional[float] = None,
    ) -> None:
        """
        Create a new, empty filter file.

        Either give the geometry explicitly, or give ``entries`` and
        ``fp_rate`` and let :func:`filter_parameters` derive it. The file is
        not left open.

        Args:
            path: File to create; it must not already exist
            hash_count: Number of bits set per entry
            hash_length: Base-2 logarithm of the bitmap size in bits
            entries: Expected number of entries
            fp_rate: Acceptable false-positive rate at ``entries`` entries

        Raises:
            ValueError: If the parameters are missing, mixed or out of range
            FileExistsError: If ``path`` already exists
            OSError: For any other filesystem problem
        """
        derived = entries is not None or fp_rate is not None
        explicit = hash_count is not None or hash_length is not None

        if derived and explicit:
            raise ValueError("Give either hash_count/hash_length or entries/fp_rate, not both")

        if derived:
            if entries is None or fp_rate is None:
                raise ValueError("entries and fp_rate must be given together")
            hash_count, hash_length = filter_parameters(entries, fp_rate)
        elif hash_count is None or hash_length is None:
            raise ValueError("hash_count and hash_length are required")

        if not 1 <= hash_count <= 255:
            raise ValueError("hash_count must be between 1 and 255")
        if not 1 <= hash_length <= 255:
            raise ValueError("hash_length must be between 1 and 255")

        header = Header.new(hash_count=hash_count, hash_length=hash_length)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        with os.fdopen(fd, "wb") as f:
            f.write(encode(header))
            # Extending the file fills the bitmap with zero bytes.
            f.truncate(header.file_size)

        structlog.get_logger().info(
            "filter_created",
            path=str(path),
            hash_count=hash_count,
            hash_length=hash_length,
            size=header.file_size,
        )

    @classmethod
    def open(
        cls,
        path: PathLike,
        lock_timeout: Optional[float] = None,
        canonicalize: Callable[[Any], bytes] = spki_der,
    ) -> "Filter":
        """
        Open an existing filter file.

        The returned filter is a context manager, closed when the ``with``
        block exits however it exits::

            with Filter.open("pwnedkeys.pkbf") as f:
                f.probably_includes(key)

        Args:
            path: Filter file to open
            lock_timeout: Seconds to wait for the file lock (default: forever)
            canonicalize: Converts a key into the bytes stored in the filter

        Returns:
            Open filter

        Raises:
            InvalidFileError: If the file is not a valid filter file
            OSError: If the file cannot be opened
        """
        return cls(path, lock_timeout=lock_timeout, canonicalize=canonicalize)

    def __enter__(self) -> "Filter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_open(self) -> BinaryIO:
        if self._fd is None:
            raise FilterClosedError()
        return self._fd

    def _positions(self, data: bytes) -> List[int]:
        return filter_positions(data, self._header.hash_count, self._header.bit_count)

    def _read_byte(self, offset: int) -> int:
        self._fd.seek(offset)
        return self._fd.read(1)[0]

    def _write_byte(self, offset: int, value: int) -> None:
        write_at(self._fd, offset, bytes([value]))

    def probably_includes(self, key: Any) -> bool:
        """
        Query the filter for a key.

        Args:
            key: Key to look for, in any form the canonicalizer accepts

        Returns:
            True if the key is probably in the filter, False if it
            definitely is not

        Raises:
            InvalidKeyError: If ``key`` is not recognised as a key
            FilterClosedError: If the filter has been closed
        """
        fd = self._require_open()
        data = self._canonicalize(key)

        with file_lock(fd, exclusive=False, timeout=self._lock_timeout):
            for n in self._positions(data):
                offset, mask = bit_location(n, self._header.size)
                if not self._read_byte(offset) & mask:
                    return False
        return True

    def __contains__(self, key: Any) -> bool:
        return self.probably_includes(key)

    def add(self, key: Any) -> bool:
        """
        Add a key to the filter.

        Args:
            key: Key to add, in any form the canonicalizer accepts

        Returns:
            True if the key was added, False if the filter already
            (probably) contained it. Two different keys can look identical
            to the filter, so a False for a key never added before is a hint
            that the filter is getting full.

        Raises:
            InvalidKeyError: If ``key`` is not recognised as a key
            FilterClosedError: If the filter has been closed
            FilterFullError: If the header's counters cannot go any higher
        """
        fd = self._require_open()

        if self.probably_includes(key):
            return False

        data = self._canonicalize(key)

        if self._header.entry_count >= MAX_COUNTER:
            raise FilterFullError("Entry count has reached the format's limit")
        if not self._already_modified and self._header.revision >= MAX_COUNTER:
            raise FilterFullError("Revision has reached the format's limit")

        header = replace(self._header)

        with file_lock(fd, exclusive=True, timeout=self._lock_timeout):
            for n in self._positions(data):
                offset, mask = bit_location(n, header.size)
                byte = self._read_byte(offset)
                if not byte & mask:
                    self._write_byte(offset, byte | mask)

            header.entry_added(int(time.time()))

            # The revision counts sessions which changed the file; bumping it
            # per add would just duplicate the entry count.
            if not self._already_modified:
                header.bump_revision()

            write_at(fd, 0, encode(header))
            _fdatasync(fd.fileno())

        self._header = header
        self._already_modified = True

        self.logger.debug(
            "entry_added",
            entry_count=header.entry_count,
            revision=header.revision,
        )
        return True

    def sync(self) -> None:
        """Force any pending writes to the file out to disk."""
        fd = self._require_open()
        _fdatasync(fd.fileno())

    def close(self) -> None:
        """Close the filter; further queries and adds will fail."""
        if self._fd is None:
            return

        self._fd.close()
        self._fd = None
        self.logger.debug("filter_closed", modified=self._already_modified)

    @property
    def closed(self) -> bool:
        """Whether :meth:`close` has been called."""
        return self._fd is None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def revision(self) -> int:
        self._require_open()
        return self._header.revision

    @property
    def update_time(self) -> datetime:
        """Time of the most recent add, in UTC."""
        self._require_open()
        return datetime.fromtimestamp(self._header.update_time, tz=timezone.utc)

    @property
    def entry_count(self) -> int:
        self._require_open()
        return self._header.entry_count

    @property
    def hash_count(self) -> int:
        self._require_open()
        return self._header.hash_count

    @property
    def hash_length(self) -> int:
        self._require_open()
        return self._header.hash_length

    @property
    def bit_count(self) -> int:
        self._require_open()
        return self._header.bit_count

    def false_positive_rate(self) -> float:
        """
        Estimate the probability that a query gives a false positive.

        Returns:
            Probability between 0 and 1, given the current entry count
        """
        self._require_open()
        return false_positive_probability(
            self._header.bit_count,
            self._header.hash_count,
            self._header.entry_count,
        )

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the filter.

        Returns:
            Dictionary with filter statistics
        """
        self._require_open()
        header = self._header
        return {
            'path': str(self._path),
            'signature': header.signature.decode('ascii'),
            'revision': header.revision,
            'update_time': self.update_time.isoformat(),
            'entry_count': header.entry_count,
            'hash_count': header.hash_count,
            'hash_length': header.hash_length,
            'size_bits': header.bit_count,
            'size_bytes': header.file_size,
            'false_positive_rate': self.false_positive_rate(),
        }

    def __repr__(self) -> str:
        if self._fd is None:
            return f"Filter(path={str(self._path)!r}, closed)"
        return (f"Filter(path={str(self._path)!r}, "
                f"entries={self._header.entry_count}, "
                f"hashes={self._header.hash_count}, "
                f"length={self._header.hash_length}, "
                f"fpr={self.false_positive_rate():.4f})")
