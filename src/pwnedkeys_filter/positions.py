"""
Bit position generation using enhanced double hashing over xxHash64.
"""
from typing import List, Tuple

import xxhash


def filter_positions(data: bytes, hash_count: int, bit_count: int) -> List[int]:
    """
    Derive the bitmap positions for an entry.

    Two 64-bit hashes are combined as ``h1 + i*h2 + (i^3 - i)/6`` for each
    ``i`` below ``hash_count``. Positions may repeat and are returned in
    generation order.

    Args:
        data: Canonical bytes of the entry
        hash_count: Number of positions to generate
        bit_count: Size of the bitmap in bits

    Returns:
        List of ``hash_count`` positions in ``[0, bit_count)``
    """
    h1 = xxhash.xxh64_intdigest(data, seed=0)
    h2 = xxhash.xxh64_intdigest(data, seed=1)
    if h2 % 2 == 0:
        h2 += 1

    return [
        (h1 + i * h2 + (i ** 3 - i) // 6) % bit_count
        for i in range(hash_count)
    ]


def bit_location(position: int, header_size: int) -> Tuple[int, int]:
    """
    Map a bit position to its file offset and mask (most significant bit first).

    Args:
        position: Bit index within the bitmap
        header_size: Length of the header preceding the bitmap

    Returns:
        Tuple of (byte offset in file, bit mask within that byte)
    """
    return header_size + position // 8, 1 << (7 - position % 8)
