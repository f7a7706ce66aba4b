"""
Binary codec for the metadata block at the start of a filter file.

Layout of a v1 header (all integers big-endian):

    offset  size  field
    0       6     signature ("pkbfv1")
    6       4     revision
    10      8     update_time (seconds since the epoch)
    18      4     entry_count
    22      1     hash_count
    23      1     hash_length

The bitmap of ``2 ** hash_length`` bits follows immediately.
"""
import struct
from dataclasses import dataclass
from typing import BinaryIO, Dict

from pwnedkeys_filter.errors import InvalidFileError


SIGNATURE_LENGTH = 6

V1_SIGNATURE = b"pkbfv1"

# One entry per file format version, keyed by signature.
LAYOUTS: Dict[bytes, struct.Struct] = {
    V1_SIGNATURE: struct.Struct(">6sLQLBB"),
}

CURRENT_SIGNATURE = V1_SIGNATURE

# revision and entry_count are stored as unsigned 32-bit integers
MAX_COUNTER = 2 ** 32 - 1


@dataclass
class Header:
    """In-memory copy of a filter file's header."""

    signature: bytes
    revision: int
    update_time: int
    entry_count: int
    hash_count: int
    hash_length: int

    @classmethod
    def new(cls, hash_count: int, hash_length: int) -> "Header":
        """
        Build the header of a freshly created, empty filter.

        Args:
            hash_count: Number of bit positions touched per entry
            hash_length: Base-2 logarithm of the bitmap size in bits

        Returns:
            Header with zero revision, entry count and update time
        """
        return cls(
            signature=CURRENT_SIGNATURE,
            revision=0,
            update_time=0,
            entry_count=0,
            hash_count=hash_count,
            hash_length=hash_length,
        )

    @property
    def size(self) -> int:
        """Serialised length of this header in bytes."""
        return LAYOUTS[self.signature].size

    @property
    def bit_count(self) -> int:
        """Number of bits in the bitmap."""
        return 2 ** self.hash_length

    @property
    def bitmap_size(self) -> int:
        """Number of bytes occupied by the bitmap."""
        return (self.bit_count + 7) // 8

    @property
    def file_size(self) -> int:
        """Expected length of a file holding this header and its bitmap."""
        return self.size + self.bitmap_size

    def entry_added(self, now: int) -> None:
        """Record one more entry, added at ``now``."""
        self.entry_count += 1
        self.update_time = now

    def bump_revision(self) -> None:
        """Record that another session has modified the file."""
        self.revision += 1


def encode(header: Header) -> bytes:
    """
    Serialise a header to its fixed-layout byte form.

    Args:
        header: Header to encode

    Returns:
        Encoded header bytes

    Raises:
        InvalidFileError: If the header carries an unknown signature
    """
    layout = LAYOUTS.get(header.signature)
    if layout is None:
        raise InvalidFileError(f"Unknown file signature {header.signature!r}")

    return layout.pack(
        header.signature,
        header.revision,
        header.update_time,
        header.entry_count,
        header.hash_count,
        header.hash_length,
    )


def decode(data: bytes) -> Header:
    """
    Parse header bytes, dispatching on the leading signature.

    Args:
        data: Bytes from the start of a filter file; anything past the
            header is ignored

    Returns:
        Decoded header

    Raises:
        InvalidFileError: If the signature is not recognised or the data is
            too short to hold a complete header
    """
    signature = bytes(data[:SIGNATURE_LENGTH])
    layout = LAYOUTS.get(signature)
    if layout is None:
        raise InvalidFileError("No recognised file signature found")

    if len(data) < layout.size:
        raise InvalidFileError(
            f"Truncated header: expected {layout.size} bytes, got {len(data)}"
        )

    _, revision, update_time, entry_count, hash_count, hash_length = \
        layout.unpack_from(data)

    return Header(
        signature=signature,
        revision=revision,
        update_time=update_time,
        entry_count=entry_count,
        hash_count=hash_count,
        hash_length=hash_length,
    )


def read_header(fd: BinaryIO) -> Header:
    """Read and decode the header at the start of an open file."""
    fd.seek(0)
    data = fd.read(max(layout.size for layout in LAYOUTS.values()))
    return decode(data)
