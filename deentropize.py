#!/usr/bin/env python3
"""
deentropize.py

Walks a file or directory tree and overwrites every regular file in place with
a low-entropy byte sequence of the same length and the same number of set bits:

  <zero_bytes x 0x00> <middle_byte> <one_bytes x 0xFF>

Example: a 3-byte file with 11 set bits becomes 00 07 FF.

This destroys the file contents. Nothing is backed up and a failed write can
leave a file half overwritten.

Usage:
  python deentropize.py some/directory

Notes:
- Files are rewritten one at a time, in walk order.
- A file that cannot be opened, read or written is reported on stderr and
  skipped; only a failure to walk the tree itself makes the exit code non-zero.
- Empty files are left as they are.
"""

from __future__ import annotations

import argparse
import errno
import io
import os
import sys
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from popcount import DEFAULT_CHUNK_SIZE, BitCount, bitcount_stream


@dataclass(frozen=True)
class LowEntropyFile:
    """Output layout: zero run, one middle byte, 0xFF run."""

    zero_bytes: int
    middle_byte: int
    one_bytes: int

    @property
    def total_length(self) -> int:
        return self.zero_bytes + 1 + self.one_bytes


def calculate_layout(bitcount: BitCount) -> LowEntropyFile:
    """Place bitcount.one_bits set bits into bitcount.total_bytes bytes.

    Full bytes of ones go at the end, the leftover bits fill the low end of
    a single middle byte and everything before it is zero. The middle byte is
    always reserved, even when it ends up as 0x00, so an empty BitCount has no
    layout. A file of nothing but 0xFF maps to itself.
    """
    if bitcount.total_bytes <= 0:
        raise ValueError("cannot lay out an empty file")
    if not 0 <= bitcount.one_bits <= bitcount.total_bytes * 8:
        raise ValueError(
            f"{bitcount.one_bits} set bits do not fit in {bitcount.total_bytes} bytes"
        )

    if bitcount.one_bits == bitcount.total_bytes * 8:
        # saturated: no room for a zero middle byte
        return LowEntropyFile(zero_bytes=0, middle_byte=0xFF, one_bytes=bitcount.total_bytes - 1)

    one_bytes = bitcount.one_bits // 8
    middle_one_bits = bitcount.one_bits % 8
    zero_bytes = bitcount.total_bytes - one_bytes - 1

    # fill the low end of the byte with ones
    middle_byte = (1 << middle_one_bits) - 1

    return LowEntropyFile(zero_bytes=zero_bytes, middle_byte=middle_byte, one_bytes=one_bytes)


def _write_run(fp: BinaryIO, value: int, count: int, chunk_size: int) -> int:
    written = 0
    if count <= 0:
        return written
    block = bytes((value,)) * min(count, chunk_size)
    while written < count:
        n = min(len(block), count - written)
        fp.write(block if n == len(block) else block[:n])
        written += n
    return written


def write_layout(layout: LowEntropyFile, fp: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """Write layout to fp from its current position and return the bytes written.

    fp is not flushed.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    total = _write_run(fp, 0x00, layout.zero_bytes, chunk_size)
    fp.write(bytes((layout.middle_byte,)))
    total += 1
    total += _write_run(fp, 0xFF, layout.one_bytes, chunk_size)
    return total


def deentropize_file(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> BitCount:
    """Rewrite one file in place and return the BitCount it measured.

    The file is never truncated: the layout is exactly as long as the content
    it replaces.
    """
    with open(path, "r+b", buffering=0) as raw:
        raw.seek(0)
        bitcount = bitcount_stream(raw, chunk_size=chunk_size)
        if bitcount.total_bytes == 0:
            return bitcount

        raw.seek(0)
        layout = calculate_layout(bitcount)

        with io.BufferedWriter(raw, buffer_size=chunk_size) as out:
            write_layout(layout, out, chunk_size=chunk_size)
            out.flush()

    return bitcount


def _raise(err: OSError) -> None:
    raise err


def iter_files(root: str) -> Iterator[str]:
    """Yield every regular file at or under root.

    Errors while listing a directory are raised, not skipped. Symlinked
    directories are not followed, and special files (FIFOs, sockets,
    devices) are left out.
    """
    if os.path.isfile(root):
        yield root
        return
    if not os.path.isdir(root):
        if os.path.lexists(root):
            return
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), root)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            if os.path.isfile(path):
                yield path


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Overwrite files with a low-entropy layout of the same length and set-bit count"
    )
    p.add_argument("path", help="File or directory to operate on")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if os.path.lexists(args.path) and not (os.path.isfile(args.path) or os.path.isdir(args.path)):
        print(f"could not deentropize {args.path}: not a regular file", file=sys.stderr)
        return 0

    try:
        for path in iter_files(args.path):
            print(f"deentropizing {path}", file=sys.stderr)
            try:
                deentropize_file(path)
            except OSError as e:
                print(f"could not deentropize {path}: {e}", file=sys.stderr)
    except OSError as e:
        print(f"could not walk {args.path}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
