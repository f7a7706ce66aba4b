"""
Derivation of filter geometry from a target capacity and false-positive rate.
"""
import math
from typing import NamedTuple


class FilterParameters(NamedTuple):
    """Geometry of a filter: hashes per entry and log2 of the bitmap size."""

    hash_count: int
    hash_length: int


def false_positive_probability(bit_count: int, hash_count: int, entry_count: int) -> float:
    """
    Estimate the false-positive probability of a filter.

    p = (1 - (1 - 1/m)^(k*n))^k

    Args:
        bit_count: Number of bits in the bitmap (m)
        hash_count: Number of positions per entry (k)
        entry_count: Number of entries added (n)

    Returns:
        Probability between 0 and 1
    """
    return (1 - (1 - 1.0 / bit_count) ** (hash_count * entry_count)) ** hash_count


def filter_parameters(entries: int, fp_rate: float) -> FilterParameters:
    """
    Calculate hash count and length for a capacity and false-positive rate.

    The bitmap size is the optimal size rounded up to a power of two. Since
    that usually leaves spare bits, the smallest hash count which still meets
    ``fp_rate`` is chosen instead of the classical optimal count, which keeps
    the number of bits touched per query down.

    Args:
        entries: How many elements the filter should accommodate
        fp_rate: Maximum acceptable false-positive rate once full

    Returns:
        The hash count and hash length to create the filter with

    Raises:
        ValueError: If the arguments are out of range
        RuntimeError: If no hash count satisfies the target, which cannot
            happen for valid arguments
    """
    if entries < 1:
        raise ValueError("entries must be positive")
    if not 0 < fp_rate < 1:
        raise ValueError("fp_rate must be between 0 and 1")

    # m = -n * ln(p) / (ln(2)^2)
    optimal_bits = -entries * math.log(fp_rate) / (math.log(2) ** 2)
    # A file needs at least a two-bit bitmap.
    hash_length = max(1, math.ceil(math.log2(optimal_bits)))
    actual_bits = 2 ** hash_length

    # The probability formula can't be solved for k, but the range is small:
    # 1 up to the optimal k for the rounded-up bitmap.
    upper_bound = math.ceil(math.log(2) * actual_bits / entries)
    for hash_count in range(1, upper_bound + 1):
        if false_positive_probability(actual_bits, hash_count, entries) < fp_rate:
            return FilterParameters(hash_count=hash_count, hash_length=hash_length)

    raise RuntimeError(
        f"CAN'T HAPPEN: could not determine hash_count for entries={entries}, "
        f"fp_rate={fp_rate}"
    )
