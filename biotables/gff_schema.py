"""Schemas for GFF tables."""

from __future__ import annotations

from collections.abc import Iterable

from .columnar import FLOAT32, UINT32, UTF8, DataType, Field, Schema


def attribute_names_and_types(
    attributes: Iterable[str],
) -> tuple[list[str], list[DataType]]:
    """Split ``name[:type]`` specs into names and column types.

    The type is ``string`` or ``array`` (any case); anything else, or no type,
    gives a string column.
    """
    names: list[str] = []
    types: list[DataType] = []
    for spec in attributes:
        name, sep, kind = spec.partition(":")
        if sep and kind.lower() == "array":
            types.append(DataType.list_of(Field(name, UTF8, True)))
        else:
            types.append(UTF8)
        names.append(name if sep else spec)
    return names, types


def gff_schema(attr_fields: Iterable[str] | None = None) -> Schema:
    """Return the GFF schema, with nested attributes or one column per attribute."""
    fields = [
        Field("chrom", UTF8, False),
        Field("start", UINT32, False),
        Field("end", UINT32, False),
        Field("type", UTF8, False),
        Field("source", UTF8, False),
        Field("score", FLOAT32, True),
        Field("strand", UTF8, False),
        Field("phase", UINT32, True),
    ]
    if attr_fields is None:
        entry = DataType.struct_of(
            (Field("tag", UTF8, False), Field("value", UTF8, True))
        )
        fields.append(Field("attributes", DataType.list_of(Field("item", entry, True)), True))
    else:
        names, types = attribute_names_and_types(attr_fields)
        fields.extend(Field(name, dtype, True) for name, dtype in zip(names, types))
    return Schema(tuple(fields))