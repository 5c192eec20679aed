"""Reading VCF files into record batches."""

from __future__ import annotations

import argparse
import os
import struct
import sys
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from itertools import islice
from typing import Any

from .columnar import RecordBatch, Schema, TypeKind, project_schema, select_columns
from .compression import Compression, UnsupportedStorageError, ensure_local, open_text
from .vcf_header import (
    InfoType,
    VcfHeader,
    VcfHeaderError,
    describe_infos,
    info_to_arrow_type,
    parse_header,
    read_vcf_header,
    vcf_schema,
)

DEFAULT_BATCH_SIZE = 8192

_SIMPLE_BASES = frozenset("ACGT")


class VcfFormatError(ValueError):
    """Raised when a VCF data line is malformed."""


@dataclass(frozen=True)
class VcfRecord:
    """One VCF data line; INFO values are kept as written, flags map to None."""

    reference_sequence_name: str
    position: int
    ids: tuple[str, ...]
    reference_bases: str
    alternate_bases: tuple[str, ...]
    quality_score: float | None
    filters: tuple[str, ...]
    info: dict[str, str | None] = field(default_factory=dict)
    genotypes: tuple[str, ...] = ()


def _as_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        raise VcfFormatError(f"quality score out of range: {value!r}") from None


def _list_column(text: str, separator: str) -> tuple[str, ...]:
    if text == ".":
        return ()
    return tuple(text.split(separator))


def _parse_info(text: str) -> dict[str, str | None]:
    info: dict[str, str | None] = {}
    if text in ("", "."):
        return info
    for entry in text.split(";"):
        if not entry:
            continue
        key, sep, value = entry.partition("=")
        if not key:
            raise VcfFormatError(f"invalid INFO entry: {entry!r}")
        if key in info:
            raise VcfFormatError(f"duplicate INFO key: {key}")
        info[key] = value if sep else None
    return info


def parse_vcf_line(line: str) -> VcfRecord:
    """Parse one tab-separated VCF data line."""
    columns = line.rstrip("\r\n").split("\t")
    if len(columns) < 8:
        raise VcfFormatError(f"expected at least 8 tab-separated columns, got {len(columns)}")
    chrom, pos, ids, ref, alt, qual, filters, info = columns[:8]
    if not chrom:
        raise VcfFormatError("missing chromosome name")
    try:
        position = int(pos)
    except ValueError:
        raise VcfFormatError(f"invalid position: {pos!r}") from None
    if position < 1:
        raise VcfFormatError(f"position must be at least 1, got {position}")
    if not ref or ref == ".":
        raise VcfFormatError("missing reference bases")
    if qual == ".":
        quality = None
    else:
        try:
            quality = _as_float32(float(qual))
        except ValueError:
            raise VcfFormatError(f"invalid quality score: {qual!r}") from None
    return VcfRecord(
        reference_sequence_name=chrom,
        position=position,
        ids=_list_column(ids, ";"),
        reference_bases=ref,
        alternate_bases=_list_column(alt, ","),
        quality_score=quality,
        filters=_list_column(filters, ";"),
        info=_parse_info(info),
        genotypes=tuple(columns[8:]),
    )


def _convert(raw: str, kind: InfoType, name: str) -> Any:
    try:
        if kind is InfoType.INTEGER:
            return int(raw)
        if kind is InfoType.FLOAT:
            return float(raw)
    except ValueError:
        raise VcfFormatError(f"invalid {kind.value} value for INFO {name}: {raw!r}") from None
    return raw


def info_value(record: VcfRecord, header: VcfHeader, name: str) -> Any:
    """Return the typed value of INFO ``name``, or None when it is absent or missing."""
    if name not in record.info:
        return None
    raw = record.info[name]
    definition = header.infos.get(name)
    if definition is None:
        return True if raw is None else raw
    if definition.type is InfoType.FLAG:
        return True
    if raw is None or raw == ".":
        return None
    if definition.number.count in (0, 1):
        return _convert(raw, definition.type, name)
    return [
        None if part == "." else _convert(part, definition.type, name)
        for part in raw.split(",")
    ]


def variant_end(record: VcfRecord, header: VcfHeader) -> int:
    """Return the 1-based end of the variant.

    Single-base substitutions end where they start; otherwise INFO END is used
    when present, else the span of the reference bases.
    """
    ref = record.reference_bases
    alts = record.alternate_bases
    if (
        len(ref) == 1
        and len(alts) == 1
        and ref in _SIMPLE_BASES
        and alts[0] in _SIMPLE_BASES
    ):
        return record.position
    end = info_value(record, header, "END")
    if end is not None:
        try:
            return int(end)
        except (TypeError, ValueError):
            raise VcfFormatError(f"invalid END value: {end!r}") from None
    return record.position + len(ref) - 1


def build_vcf_batch(
    schema: Schema,
    header: VcfHeader,
    records: Sequence[VcfRecord],
    info_fields: Iterable[str] | None = None,
    projection: Sequence[int] | None = None,
) -> RecordBatch:
    """Build a batch matching ``schema`` from records, applying ``projection``.

    Absent flags read as False; FORMAT columns in the schema hold nulls.
    """
    columns: list[list[Any]] = [
        [r.reference_sequence_name for r in records],
        [r.position for r in records],
        [variant_end(r, header) for r in records],
        [";".join(r.ids) for r in records],
        [r.reference_bases for r in records],
        ["|".join(r.alternate_bases) for r in records],
        [r.quality_score for r in records],
        [";".join(r.filters) for r in records],
    ]
    for name in info_fields or ():
        dtype = info_to_arrow_type(header.infos, name)
        missing = False if dtype.kind is TypeKind.BOOLEAN else None
        column = []
        for record in records:
            value = info_value(record, header, name)
            column.append(missing if value is None else value)
        columns.append(column)
    if projection is None:
        columns.extend([None] * len(records) for _ in range(len(schema) - len(columns)))
    selected = select_columns(columns, projection, len(records))
    return RecordBatch(schema, selected, len(records))


class VcfTable:
    """A VCF file exposed as a table of record batches."""

    def __init__(
        self,
        file_path: str | os.PathLike[str],
        info_fields: Iterable[str] | None = None,
        format_fields: Iterable[str] | None = None,
        thread_num: int | None = None,
        compression: Compression | str | None = None,
    ) -> None:
        if thread_num is not None and thread_num < 1:
            raise ValueError("thread_num must be at least 1")
        self.file_path = os.fspath(file_path)
        self.info_fields = None if info_fields is None else list(info_fields)
        self.format_fields = None if format_fields is None else list(format_fields)
        self.thread_num = thread_num
        self.compression = compression
        self.header = read_vcf_header(self.file_path, compression)
        self.schema = vcf_schema(self.header, self.info_fields, self.format_fields)

    def scan(
        self,
        projection: Sequence[int] | None = None,
        limit: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> Iterator[RecordBatch]:
        """Return an iterator of batches over the file."""
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if limit is not None and limit < 0:
            raise ValueError("limit cannot be negative")
        local = ensure_local(self.file_path)
        schema = project_schema(self.schema, projection)
        projection = None if projection is None else list(projection)
        return self._batches(local, schema, projection, limit, batch_size)

    def describe(self) -> RecordBatch:
        """Return the INFO definitions of the header: name, type and description."""
        return describe_infos(self.header)

    def _batches(
        self,
        local: str,
        schema: Schema,
        projection: list[int] | None,
        limit: int | None,
        batch_size: int,
    ) -> Iterator[RecordBatch]:
        with open_text(local, self.compression) as handle:
            lines = iter(handle)
            header = parse_header(lines)
            records = islice(
                (parse_vcf_line(line) for line in lines if line.strip()), limit
            )
            while chunk := list(islice(records, batch_size)):
                yield build_vcf_batch(schema, header, chunk, self.info_fields, projection)


def _display(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return "[" + ", ".join(_display(item) for item in value) + "]"
    return str(value)


def main(argv: Sequence[str] | None = None) -> int:
    """Print the first rows of a VCF file as a tab-separated table."""
    parser = argparse.ArgumentParser(
        prog="biotables-vcf", description="Show the first rows of a VCF file."
    )
    parser.add_argument("path", help="local VCF file, plain, gzip or BGZF")
    parser.add_argument("--info", action="append", metavar="TAG", help="INFO tag to add")
    parser.add_argument(
        "--format", action="append", dest="format_fields", metavar="TAG",
        help="FORMAT tag to add",
    )
    parser.add_argument("--limit", type=int, default=10, help="rows to show")
    parser.add_argument("--threads", type=int, default=1, help="worker count")
    args = parser.parse_args(argv)
    try:
        table = VcfTable(args.path, args.info, args.format_fields, args.threads)
        print("\t".join(table.schema.names))
        for batch in table.scan(limit=args.limit):
            for row in batch.to_rows():
                print("\t".join(_display(value) for value in row.values()))
    except (VcfFormatError, VcfHeaderError, UnsupportedStorageError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0