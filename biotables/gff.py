"""Reading GFF3 files into record batches."""

from __future__ import annotations

import enum
import os
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from itertools import islice
from urllib.parse import unquote

from .columnar import DataType, RecordBatch, Schema, project_schema, select_columns
from .compression import Compression, ensure_local, open_text
from .gff_schema import attribute_names_and_types, gff_schema

DEFAULT_BATCH_SIZE = 8192

AttributeValue = str | list[str]


class Strand(enum.Enum):
    """Strand of a feature, valued by its GFF symbol."""

    FORWARD = "+"
    REVERSE = "-"
    UNKNOWN = "?"
    NONE = "."


class GffFormatError(ValueError):
    """Raised when GFF input is malformed."""


@dataclass(frozen=True)
class GffRecord:
    """One GFF3 feature line."""

    reference_sequence_name: str
    source: str
    type: str
    start: int
    end: int
    score: float | None
    strand: Strand
    phase: int | None
    attributes: dict[str, AttributeValue] = field(default_factory=dict)


def _position(text: str, what: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise GffFormatError(f"invalid {what} position: {text!r}") from None
    if value < 1:
        raise GffFormatError(f"{what} position must be at least 1, got {value}")
    return value


def _score(text: str) -> float | None:
    if text == ".":
        return None
    try:
        return float(text)
    except ValueError:
        raise GffFormatError(f"invalid score: {text!r}") from None


def _strand(text: str) -> Strand:
    try:
        return Strand(text)
    except ValueError:
        raise GffFormatError(f"invalid strand: {text!r}") from None


def _phase(text: str) -> int | None:
    if text == ".":
        return None
    if text in ("0", "1", "2"):
        return int(text)
    raise GffFormatError(f"invalid phase: {text!r}")


def _attributes(text: str) -> dict[str, AttributeValue]:
    attributes: dict[str, AttributeValue] = {}
    if text in ("", "."):
        return attributes
    for entry in text.split(";"):
        entry = entry.strip()
        if not entry:
            continue
        tag, sep, raw = entry.partition("=")
        if not sep:
            raise GffFormatError(f"invalid attribute, expected tag=value: {entry!r}")
        if "," in raw:
            attributes[unquote(tag)] = [unquote(part) for part in raw.split(",")]
        else:
            attributes[unquote(tag)] = unquote(raw)
    return attributes


def parse_gff_line(line: str) -> GffRecord:
    """Parse one tab-separated GFF3 feature line."""
    line = line.rstrip("\r\n")
    columns = line.split("\t")
    if len(columns) != 9:
        raise GffFormatError(f"expected 9 tab-separated columns, got {len(columns)}")
    seqid, source, ty, start, end, score, strand, phase, attributes = columns
    return GffRecord(
        reference_sequence_name=unquote(seqid),
        source=unquote(source),
        type=unquote(ty),
        start=_position(start, "start"),
        end=_position(end, "end"),
        score=_score(score),
        strand=_strand(strand),
        phase=_phase(phase),
        attributes=_attributes(attributes),
    )


def read_gff_records(stream: Iterable[str | bytes]) -> Iterator[GffRecord]:
    """Yield the features of a GFF3 stream, skipping comments and stopping at ##FASTA."""
    for number, raw in enumerate(stream, start=1):
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line.strip():
            continue
        if line.startswith("##FASTA"):
            return
        if line.startswith("#"):
            continue
        try:
            yield parse_gff_line(line)
        except GffFormatError as exc:
            raise GffFormatError(f"line {number}: {exc}") from None


def _nested(attributes: Mapping[str, AttributeValue]) -> list[dict[str, str]]:
    return [
        {"tag": tag, "value": ", ".join(value) if isinstance(value, list) else value}
        for tag, value in attributes.items()
    ]


def _unnested(value: AttributeValue | None, dtype: DataType) -> AttributeValue | None:
    if value is None:
        return None
    if dtype.is_list:
        return list(value) if isinstance(value, list) else [value]
    return ",".join(value) if isinstance(value, list) else value


def build_gff_batch(
    schema: Schema,
    records: Sequence[GffRecord],
    attr_fields: Iterable[str] | None = None,
    projection: Sequence[int] | None = None,
) -> RecordBatch:
    """Build a batch matching ``schema`` from features, applying ``projection``.

    Without ``attr_fields`` the attributes form one nested column of tag/value
    entries; with them, each named attribute gets its own column.
    """
    columns: list[list] = [
        [r.reference_sequence_name for r in records],
        [r.start for r in records],
        [r.end for r in records],
        [r.type for r in records],
        [r.source for r in records],
        [r.score for r in records],
        [r.strand.value for r in records],
        [r.phase for r in records],
    ]
    if attr_fields is None:
        columns.append([_nested(r.attributes) for r in records])
    else:
        names, types = attribute_names_and_types(attr_fields)
        for name, dtype in zip(names, types):
            columns.append([_unnested(r.attributes.get(name), dtype) for r in records])
    selected = select_columns(columns, projection, len(records))
    return RecordBatch(schema, selected, len(records))


class GffTable:
    """A GFF3 file exposed as a table of record batches."""

    def __init__(
        self,
        file_path: str | os.PathLike[str],
        attr_fields: Iterable[str] | None = None,
        thread_num: int | None = None,
        compression: Compression | str | None = None,
    ) -> None:
        if thread_num is not None and thread_num < 1:
            raise ValueError("thread_num must be at least 1")
        self.file_path = os.fspath(file_path)
        self.attr_fields = None if attr_fields is None else list(attr_fields)
        self.thread_num = thread_num
        self.compression = compression
        self.schema = gff_schema(self.attr_fields)

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

    def first_attributes(self) -> dict[str, AttributeValue]:
        """Return the attributes of the first feature in the file."""
        with open_text(ensure_local(self.file_path), self.compression) as handle:
            record = next(read_gff_records(handle), None)
        if record is None:
            raise GffFormatError("file holds no features")
        return dict(record.attributes)

    def _batches(
        self,
        local: str,
        schema: Schema,
        projection: list[int] | None,
        limit: int | None,
        batch_size: int,
    ) -> Iterator[RecordBatch]:
        with open_text(local, self.compression) as handle:
            records = islice(read_gff_records(handle), limit)
            while chunk := list(islice(records, batch_size)):
                yield build_gff_batch(schema, chunk, self.attr_fields, projection)