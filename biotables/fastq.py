"""Reading FASTQ files into record batches."""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass

from .columnar import UTF8, Field, RecordBatch, Schema, project_schema, select_columns
from .compression import Compression, ensure_local, open_text

DEFAULT_BATCH_SIZE = 8192


@dataclass(frozen=True)
class FastqRecord:
    """One FASTQ record; ``description`` is empty when the header has none."""

    name: str
    description: str
    sequence: str
    quality_scores: str


class FastqFormatError(ValueError):
    """Raised when FASTQ input is malformed."""


def _strip_newline(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def _lines(stream: Iterable[str | bytes]) -> Iterator[str]:
    for line in stream:
        yield line.decode("utf-8") if isinstance(line, bytes) else line


def _split_definition(definition: str) -> tuple[str, str]:
    for position, char in enumerate(definition):
        if char in " \t":
            return definition[:position], definition[position + 1 :]
    return definition, ""


def read_fastq_records(stream: Iterable[str | bytes]) -> Iterator[FastqRecord]:
    """Yield the records of a FASTQ stream, four lines at a time."""
    lines = _lines(stream)
    for number, header in enumerate(lines):
        record_index = number
        if not header.startswith("@"):
            raise FastqFormatError(
                f"record {record_index + 1}: invalid name prefix, expected '@'"
            )
        name, description = _split_definition(_strip_newline(header)[1:])
        try:
            sequence = _strip_newline(next(lines))
            separator = next(lines)
            quality = _strip_newline(next(lines))
        except StopIteration:
            raise FastqFormatError(
                f"record {record_index + 1}: unexpected end of input"
            ) from None
        if not separator.startswith("+"):
            raise FastqFormatError(
                f"record {record_index + 1}: invalid separator line, expected '+'"
            )
        yield FastqRecord(name, description, sequence, quality)


def fastq_schema() -> Schema:
    """Return the schema of a FASTQ table."""
    return Schema(
        (
            Field("name", UTF8, False),
            Field("description", UTF8, True),
            Field("sequence", UTF8, False),
            Field("quality_scores", UTF8, False),
        )
    )


def build_fastq_batch(
    schema: Schema,
    records: Sequence[FastqRecord],
    projection: Sequence[int] | None = None,
) -> RecordBatch:
    """Build a batch matching ``schema`` from records, applying ``projection``."""
    columns = [
        [record.name for record in records],
        [record.description or None for record in records],
        [record.sequence for record in records],
        [record.quality_scores for record in records],
    ]
    selected = select_columns(columns, projection, len(records))
    return RecordBatch(schema, selected, len(records))


class FastqTable:
    """A FASTQ file exposed as a table of record batches."""

    def __init__(
        self,
        file_path: str | os.PathLike[str],
        thread_num: int | None = None,
        compression: Compression | str | None = None,
    ) -> None:
        if thread_num is not None and thread_num < 1:
            raise ValueError("thread_num must be at least 1")
        self.file_path = os.fspath(file_path)
        self.thread_num = thread_num
        self.compression = compression
        self.schema = fastq_schema()

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

    def _batches(
        self,
        local: str,
        schema: Schema,
        projection: list[int] | None,
        limit: int | None,
        batch_size: int,
    ) -> Iterator[RecordBatch]:
        if limit == 0:
            return
        pending: list[FastqRecord] = []
        total = 0
        with open_text(local, self.compression) as handle:
            for record in read_fastq_records(handle):
                pending.append(record)
                total += 1
                if len(pending) == batch_size:
                    yield build_fastq_batch(schema, pending, projection)
                    pending = []
                if limit is not None and total >= limit:
                    break
        if pending:
            yield build_fastq_batch(schema, pending, projection)