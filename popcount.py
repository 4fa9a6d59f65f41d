"""
popcount.py

Counts the bytes and the set bits ("1" bits) of a file by streaming it in
fixed-size blocks. deentropize.py uses the counter to size its output, and the
counts double as a check that a rewritten file still has the Hamming
weight of the original.

Example: bytes 01 03 ff -> BitCount(one_bits=11, total_bytes=3).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO

import numpy as np

DEFAULT_CHUNK_SIZE = 2 << 16  # 128 KiB

# POPCOUNT[x] is the number of set bits in the 8-bit value x.
# Indexed with a uint8 view of each block so the sum runs inside numpy.
POPCOUNT = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)


@dataclass(frozen=True)
class BitCount:
    """Set bits and byte length of one stream."""

    one_bits: int
    total_bytes: int


def popcount_block(block: bytes) -> int:
    """Return the number of set bits in a block of bytes."""
    if not block:
        return 0
    return int(POPCOUNT[np.frombuffer(block, dtype=np.uint8)].sum(dtype=np.int64))


def bitcount_stream(fp: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> BitCount:
    """Read fp to the end and return its BitCount.

    Read errors are not caught here.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    one_bits = 0
    total_bytes = 0

    while True:
        chunk = fp.read(chunk_size)
        if not chunk:
            break
        total_bytes += len(chunk)
        one_bits += popcount_block(chunk)

    return BitCount(one_bits=one_bits, total_bytes=total_bytes)

