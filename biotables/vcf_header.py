"""VCF headers: INFO/FORMAT definitions and the table schemas built from them."""

from __future__ import annotations

import enum
import logging
import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import ClassVar

from .columnar import (
    BOOLEAN,
    FLOAT32,
    FLOAT64,
    INT32,
    UINT32,
    UTF8,
    DataType,
    Field,
    RecordBatch,
    Schema,
)
from .compression import Compression, ensure_local, open_text

logger = logging.getLogger(__name__)

_HEADER_COLUMNS = ("#CHROM", "POS", "ID", "REF", "ALT", "QUAL", "FILTER", "INFO")
_PAIR = re.compile(r'\s*([^=,]+?)\s*=\s*("(?:[^"\\]|\\.)*"|[^,]*?)\s*(,|$)')
_ESCAPE = re.compile(r"\\(.)")


class VcfHeaderError(ValueError):
    """Raised when a VCF header is malformed or lacks a requested definition."""


class InfoType(enum.Enum):
    """Value type of an INFO field."""

    INTEGER = "Integer"
    FLOAT = "Float"
    FLAG = "Flag"
    CHARACTER = "Character"
    STRING = "String"


class FormatType(enum.Enum):
    """Value type of a FORMAT field."""

    INTEGER = "Integer"
    FLOAT = "Float"
    CHARACTER = "Character"
    STRING = "String"


@dataclass(frozen=True)
class Number:
    """How many values a field holds: a fixed count, or one of ``.``, ``A``, ``R``, ``G``."""

    symbol: str

    UNKNOWN: ClassVar[Number]
    ALTERNATE_BASES: ClassVar[Number]
    REFERENCE_ALTERNATE_BASES: ClassVar[Number]
    SAMPLES: ClassVar[Number]

    def __post_init__(self) -> None:
        if self.symbol not in (".", "A", "R", "G") and not self.symbol.isdigit():
            raise VcfHeaderError(f"invalid Number: {self.symbol!r}")

    @classmethod
    def parse(cls, text: str) -> Number:
        """Parse a Number value as written in a header line."""
        text = text.strip()
        if text.isdigit():
            return cls(str(int(text)))
        return cls(text)

    @classmethod
    def of(cls, count: int) -> Number:
        """Return a fixed-count Number."""
        if count < 0:
            raise VcfHeaderError("a Number count cannot be negative")
        return cls(str(count))

    @property
    def count(self) -> int | None:
        """The fixed count, or None for ``.``, ``A``, ``R`` and ``G``."""
        return int(self.symbol) if self.symbol.isdigit() else None

    def __str__(self) -> str:
        return self.symbol


Number.UNKNOWN = Number(".")
Number.ALTERNATE_BASES = Number("A")
Number.REFERENCE_ALTERNATE_BASES = Number("R")
Number.SAMPLES = Number("G")


@dataclass(frozen=True)
class InfoDefinition:
    """An ``##INFO`` header record."""

    id: str
    number: Number
    type: InfoType
    description: str
    other: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FormatDefinition:
    """A ``##FORMAT`` header record."""

    id: str
    number: Number
    type: FormatType
    description: str
    other: dict[str, str] = field(default_factory=dict)


@dataclass
class VcfHeader:
    """The meta-information and column header of a VCF file."""

    file_format: str
    infos: dict[str, InfoDefinition] = field(default_factory=dict)
    formats: dict[str, FormatDefinition] = field(default_factory=dict)
    filters: dict[str, str] = field(default_factory=dict)
    contigs: dict[str, dict[str, str]] = field(default_factory=dict)
    other: list[tuple[str, str]] = field(default_factory=list)
    sample_names: list[str] = field(default_factory=list)


def _parse_map(text: str) -> dict[str, str]:
    if not (text.startswith("<") and text.endswith(">")):
        raise VcfHeaderError(f"expected a structured value in angle brackets: {text!r}")
    body = text[1:-1]
    result: dict[str, str] = {}
    position = 0
    while position < len(body):
        match = _PAIR.match(body, position)
        if match is None:
            raise VcfHeaderError(f"invalid structured value: {text!r}")
        key, raw, separator = match.groups()
        if raw.startswith('"'):
            raw = _ESCAPE.sub(r"\1", raw[1:-1])
        if key in result:
            raise VcfHeaderError(f"duplicate key {key!r} in {text!r}")
        result[key] = raw
        position = match.end()
        if not separator and position < len(body):
            raise VcfHeaderError(f"invalid structured value: {text!r}")
    return result


def _take(fields: dict[str, str], key: str, record: str) -> str:
    try:
        return fields.pop(key)
    except KeyError:
        raise VcfHeaderError(f"{record} record is missing {key}") from None


def _info(value: str) -> InfoDefinition:
    fields = _parse_map(value)
    tag = _take(fields, "ID", "INFO")
    number = Number.parse(_take(fields, "Number", "INFO"))
    raw_type = _take(fields, "Type", "INFO")
    try:
        kind = InfoType(raw_type)
    except ValueError:
        raise VcfHeaderError(f"invalid INFO type for {tag}: {raw_type!r}") from None
    if kind is InfoType.FLAG and number.count != 0:
        raise VcfHeaderError(f"INFO flag {tag} must have Number=0")
    description = _take(fields, "Description", "INFO")
    return InfoDefinition(tag, number, kind, description, fields)


def _format(value: str) -> FormatDefinition:
    fields = _parse_map(value)
    tag = _take(fields, "ID", "FORMAT")
    number = Number.parse(_take(fields, "Number", "FORMAT"))
    raw_type = _take(fields, "Type", "FORMAT")
    try:
        kind = FormatType(raw_type)
    except ValueError:
        raise VcfHeaderError(f"invalid FORMAT type for {tag}: {raw_type!r}") from None
    description = _take(fields, "Description", "FORMAT")
    return FormatDefinition(tag, number, kind, description, fields)


def _add_unique(table: dict, key: str, value: object, record: str) -> None:
    if key in table:
        raise VcfHeaderError(f"duplicate {record} ID: {key}")
    table[key] = value


def _text(raw: str | bytes) -> str:
    line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    return line.rstrip("\r\n")


def parse_header(lines: Iterable[str | bytes]) -> VcfHeader:
    """Parse a header from ``lines``, consuming up to and including the ``#CHROM`` line.

    When ``lines`` is an iterator the data records remain in it afterwards.
    """
    lines = iter(lines)
    first = next(lines, None)
    if first is None:
        raise VcfHeaderError("empty input: no VCF header")
    first_text = _text(first)
    if not first_text.startswith("##fileformat="):
        raise VcfHeaderError("the first header line must be ##fileformat")
    header = VcfHeader(file_format=first_text.partition("=")[2])
    for raw in lines:
        line = _text(raw)
        if line.startswith("#CHROM"):
            columns = line.split("\t")
            if tuple(columns[:8]) != _HEADER_COLUMNS:
                raise VcfHeaderError(f"invalid column header line: {line!r}")
            if len(columns) > 8:
                if columns[8] != "FORMAT":
                    raise VcfHeaderError("expected FORMAT before sample columns")
                header.sample_names = columns[9:]
            return header
        if not line.startswith("##"):
            raise VcfHeaderError(f"expected a header line, got {line!r}")
        key, sep, value = line[2:].partition("=")
        if not sep:
            raise VcfHeaderError(f"invalid header line: {line!r}")
        if key == "INFO":
            definition = _info(value)
            _add_unique(header.infos, definition.id, definition, "INFO")
        elif key == "FORMAT":
            format_definition = _format(value)
            _add_unique(header.formats, format_definition.id, format_definition, "FORMAT")
        elif key == "FILTER":
            fields = _parse_map(value)
            tag = _take(fields, "ID", "FILTER")
            _add_unique(header.filters, tag, fields.get("Description", ""), "FILTER")
        elif key == "contig":
            fields = _parse_map(value)
            tag = _take(fields, "ID", "contig")
            _add_unique(header.contigs, tag, fields, "contig")
        else:
            header.other.append((key, value))
    raise VcfHeaderError("missing #CHROM header line")


def read_vcf_header(
    path: str | os.PathLike[str], compression: Compression | str | None = None
) -> VcfHeader:
    """Read the header of a local VCF file, plain or compressed."""
    with open_text(ensure_local(path), compression) as handle:
        return parse_header(handle)


def info_to_arrow_type(infos: dict[str, InfoDefinition], field: str) -> DataType:
    """Return the column type for an INFO tag; unknown tags become strings."""
    definition = infos.get(field)
    if definition is None:
        logger.warning("VCF tag '%s' not found in header; defaulting to Utf8", field)
        return UTF8
    inner = {
        InfoType.INTEGER: INT32,
        InfoType.STRING: UTF8,
        InfoType.CHARACTER: UTF8,
        InfoType.FLOAT: FLOAT32,
        InfoType.FLAG: BOOLEAN,
    }[definition.type]
    if definition.number.count in (0, 1):
        return inner
    return DataType.list_of(Field("item", inner, True))


def format_to_arrow_type(formats: dict[str, FormatDefinition], field: str) -> DataType:
    """Return the column type for a FORMAT tag, which must be defined."""
    definition = formats.get(field)
    if definition is None:
        raise VcfHeaderError(f"FORMAT tag {field!r} not found in header")
    return {
        FormatType.INTEGER: INT32,
        FormatType.FLOAT: FLOAT32,
        FormatType.CHARACTER: UTF8,
        FormatType.STRING: UTF8,
    }[definition.type]


def vcf_schema(
    header: VcfHeader,
    info_fields: Sequence[str] | None = None,
    format_fields: Sequence[str] | None = None,
) -> Schema:
    """Return the table schema for ``header`` with the chosen INFO and FORMAT columns."""
    fields = [
        Field("chrom", UTF8, False),
        Field("start", UINT32, False),
        Field("end", UINT32, False),
        Field("id", UTF8, True),
        Field("ref", UTF8, False),
        Field("alt", UTF8, False),
        Field("qual", FLOAT64, True),
        Field("filter", UTF8, True),
    ]
    for tag in info_fields or ():
        definition = header.infos.get(tag)
        if definition is None:
            raise VcfHeaderError(f"INFO tag {tag!r} not found in header")
        dtype = info_to_arrow_type(header.infos, tag)
        fields.append(Field(tag.lower(), dtype, definition.type is not InfoType.FLAG))
    for tag in format_fields or ():
        dtype = format_to_arrow_type(header.formats, tag)
        fields.append(Field(f"format_{tag.lower()}", dtype, True))
    return Schema(tuple(fields))


def describe_infos(header: VcfHeader) -> RecordBatch:
    """Return one row per INFO definition: its name, type and description."""
    schema = Schema(
        (
            Field("name", UTF8, False),
            Field("type", UTF8, False),
            Field("description", UTF8, False),
        )
    )
    definitions = list(header.infos.values())
    return RecordBatch(
        schema,
        [
            [d.id for d in definitions],
            [d.type.value for d in definitions],
            [d.description for d in definitions],
        ],
        len(definitions),
    )