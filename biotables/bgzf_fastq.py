"""Partitioned reading of BGZF-compressed FASTQ files through a GZI index."""

from __future__ import annotations

import bisect
import os
import struct
import zlib
from collections.abc import Iterator, Sequence
from itertools import chain, islice
from typing import BinaryIO

from .columnar import RecordBatch, Schema
from .compression import ensure_local
from .fastq import (
    DEFAULT_BATCH_SIZE,
    FastqRecord,
    build_fastq_batch,
    fastq_schema,
    read_fastq_records,
)

UNBOUNDED = 2**64 - 1
"""Compressed end offset of the last partition: read to the end of the file."""

_MAGIC = b"\x1f\x8b\x08"
_FEXTRA = 0x04
_TRAILER_SIZE = 8


def read_gzi(path: str | os.PathLike[str]) -> list[tuple[int, int]]:
    """Read a GZI index as ``(compressed, uncompressed)`` block offsets."""
    with open(ensure_local(path), "rb") as handle:
        data = handle.read()
    if len(data) < 8:
        raise ValueError("GZI index is truncated: missing entry count")
    (count,) = struct.unpack_from("<Q", data)
    end = 8 + 16 * count
    if len(data) < end:
        raise ValueError(f"GZI index is truncated: expected {count} entries")
    return [(int(c), int(u)) for c, u in struct.iter_unpack("<QQ", data[8:end])]


def partition_bounds(
    index: Sequence[tuple[int, int]], thread_num: int
) -> list[tuple[int, int]]:
    """Split the blocks of ``index`` into ranges of (uncompressed start, compressed end)."""
    offsets = [(0, 0), *((int(c), int(u)) for c, u in index)]
    num_blocks = len(offsets)
    num_partitions = min(thread_num, num_blocks)
    if num_partitions <= 0:
        return [(0, UNBOUNDED)]
    base, remainder = divmod(num_blocks, num_partitions)
    ranges: list[tuple[int, int]] = []
    current = 0
    for partition in range(num_partitions):
        start_uncompressed = offsets[current][1]
        following = current + base + (1 if partition < remainder else 0)
        end_compressed = UNBOUNDED if following >= num_blocks else offsets[following][0]
        ranges.append((start_uncompressed, end_compressed))
        current = following
    return ranges


def _block_size_field(extra: bytes, offset: int) -> int:
    while len(extra) >= 4:
        sub_id = extra[:2]
        (sub_len,) = struct.unpack_from("<H", extra, 2)
        if sub_id == b"BC" and sub_len == 2 and len(extra) >= 6:
            return struct.unpack_from("<H", extra, 4)[0]
        extra = extra[4 + sub_len :]
    raise ValueError(f"BGZF block at offset {offset} has no block size field")


class IndexedBgzfReader:
    """A buffered reader over BGZF blocks that can seek by uncompressed offset."""

    def __init__(self, stream: BinaryIO, index: Sequence[tuple[int, int]]) -> None:
        self._stream = stream
        self._entries = [(0, 0), *((int(c), int(u)) for c, u in index)]
        self._uncompressed = [u for _, u in self._entries]
        self._block_start = stream.tell()
        self._block_size = 0
        self._data = b""
        self._pos = 0

    def _reset(self, start: int) -> None:
        self._block_start = start
        self._block_size = 0
        self._data = b""
        self._pos = 0

    def _read_block(self) -> bool:
        """Load the next non-empty block; return False at end of input."""
        while True:
            start = self._stream.tell()
            self._reset(start)
            header = self._stream.read(12)
            if not header:
                return False
            if len(header) < 12 or not header.startswith(_MAGIC) or not header[3] & _FEXTRA:
                raise ValueError(f"invalid BGZF block header at offset {start}")
            (xlen,) = struct.unpack_from("<H", header, 10)
            extra = self._stream.read(xlen)
            if len(extra) < xlen:
                raise ValueError(f"truncated BGZF block at offset {start}")
            total = _block_size_field(extra, start) + 1
            remaining = total - 12 - xlen
            if remaining < _TRAILER_SIZE:
                raise ValueError(f"invalid BGZF block size at offset {start}")
            rest = self._stream.read(remaining)
            if len(rest) < remaining:
                raise ValueError(f"truncated BGZF block at offset {start}")
            crc, isize = struct.unpack("<II", rest[-_TRAILER_SIZE:])
            try:
                data = zlib.decompress(rest[:-_TRAILER_SIZE], -15)
            except zlib.error as exc:
                raise ValueError(f"corrupt BGZF block at offset {start}: {exc}") from exc
            if len(data) != isize or zlib.crc32(data) != crc:
                raise ValueError(f"BGZF block at offset {start} fails its integrity check")
            self._block_size = total
            self._data = data
            if data:
                return True

    def seek(self, uncompressed_offset: int) -> int:
        """Move to an uncompressed offset using the index."""
        if uncompressed_offset < 0:
            raise ValueError("offset cannot be negative")
        position = bisect.bisect_right(self._uncompressed, uncompressed_offset) - 1
        compressed, uncompressed = self._entries[position]
        self._stream.seek(compressed)
        self._reset(compressed)
        within = uncompressed_offset - uncompressed
        if within:
            if not self._read_block() or within > len(self._data):
                raise ValueError(f"offset {uncompressed_offset} lies beyond its block")
            self._pos = within
        return uncompressed_offset

    def compressed_position(self) -> int:
        """Return the compressed offset of the block holding the next unread byte."""
        if self._pos < len(self._data):
            return self._block_start
        return self._block_start + self._block_size

    def fill_buf(self) -> bytes:
        """Return the unread data of the current block, loading one if needed."""
        while self._pos >= len(self._data):
            if not self._read_block():
                return b""
        return self._data[self._pos :]

    def consume(self, amount: int) -> None:
        """Mark ``amount`` bytes of the current buffer as read."""
        self._pos = min(self._pos + amount, len(self._data))

    def readline(self) -> bytes:
        """Read one line, newline included; empty at end of input."""
        parts: list[bytes] = []
        while self.fill_buf():
            end = self._data.find(b"\n", self._pos)
            if end >= 0:
                parts.append(self._data[self._pos : end + 1])
                self._pos = end + 1
                break
            parts.append(self._data[self._pos :])
            self._pos = len(self._data)
        return b"".join(parts)


def synchronize_reader(reader: IndexedBgzfReader, end_comp: int) -> None:
    """Advance ``reader`` to the next FASTQ record start, stopping at ``end_comp``."""
    while reader.compressed_position() < end_comp:
        buf = reader.fill_buf()
        if not buf:
            return
        at = buf.find(b"@")
        if at < 0:
            reader.consume(len(buf))
            continue
        line_one_end = buf.find(b"\n", at)
        if line_one_end >= 0:
            line_two_end = buf.find(b"\n", line_one_end + 1)
            if line_two_end >= 0 and buf[line_two_end + 1 : line_two_end + 2] == b"+":
                reader.consume(at)
                return
        reader.consume(line_one_end + 1 if line_one_end >= 0 else len(buf))


class BgzfFastqTable:
    """A BGZF FASTQ file with a ``.gzi`` index, read in independent partitions."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)
        self.schema = fastq_schema()
        self._index: list[tuple[int, int]] | None = None

    def _gzi(self) -> list[tuple[int, int]]:
        if self._index is None:
            self._index = read_gzi(self.path + ".gzi")
        return self._index

    def partitions(self, target_partitions: int) -> list[tuple[int, int]]:
        """Return the partition bounds for the requested parallelism."""
        return partition_bounds(self._gzi(), target_partitions)

    def read_partition(
        self,
        bounds: tuple[int, int],
        projection: Sequence[int] | None = None,
        limit: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[RecordBatch]:
        """Return an iterator of batches for the records of one partition."""
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if limit is not None and limit < 0:
            raise ValueError("limit cannot be negative")
        projection = None if projection is None else list(projection)
        schema = self.schema if projection is None else self.schema.project(projection)
        index = self._gzi()
        return self._batches(tuple(bounds), schema, projection, limit, batch_size, index)

    def scan(
        self,
        target_partitions: int | None = None,
        projection: Sequence[int] | None = None,
        limit: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[RecordBatch]:
        """Return the batches of every partition, partition by partition."""
        if target_partitions is None:
            target_partitions = os.cpu_count() or 1
        parts = [
            self.read_partition(bounds, projection, limit, batch_size)
            for bounds in self.partitions(target_partitions)
        ]
        return chain.from_iterable(parts)

    def _batches(
        self,
        bounds: tuple[int, int],
        schema: Schema,
        projection: list[int] | None,
        limit: int | None,
        batch_size: int,
        index: list[tuple[int, int]],
    ) -> Iterator[RecordBatch]:
        start_uncompressed, end_compressed = bounds
        with open(ensure_local(self.path), "rb") as handle:
            reader = IndexedBgzfReader(handle, index)
            reader.seek(start_uncompressed)
            if start_uncompressed > 0:
                synchronize_reader(reader, end_compressed)
            records = self._records(reader, end_compressed, limit)
            if projection is not None and not projection:
                yield RecordBatch(schema, [], sum(1 for _ in records))
                return
            while chunk := list(islice(records, batch_size)):
                yield build_fastq_batch(schema, chunk, projection)

    @staticmethod
    def _records(
        reader: IndexedBgzfReader, end_compressed: int, limit: int | None
    ) -> Iterator[FastqRecord]:
        records = read_fastq_records(iter(reader.readline, b""))
        count = 0
        while limit is None or count < limit:
            if reader.compressed_position() >= end_compressed:
                return
            record = next(records, None)
            if record is None:
                return
            count += 1
            yield record