"""A small columnar model: typed fields, schemas and record batches."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any


class TypeKind(enum.Enum):
    """Kinds of values a column can hold."""

    NULL = "null"
    BOOLEAN = "boolean"
    INT32 = "int32"
    UINT32 = "uint32"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    UTF8 = "utf8"
    LIST = "list"
    STRUCT = "struct"


@dataclass(frozen=True)
class DataType:
    """A column type; lists carry an item field, structs carry child fields."""

    kind: TypeKind
    item: Field | None = None
    fields: tuple[Field, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        if self.kind is TypeKind.LIST and self.item is None:
            raise ValueError("a list type needs an item field")
        if self.kind is not TypeKind.LIST and self.item is not None:
            raise ValueError("only list types carry an item field")
        if self.kind is not TypeKind.STRUCT and self.fields:
            raise ValueError("only struct types carry child fields")

    @classmethod
    def list_of(cls, item: Field) -> DataType:
        """Return a list type whose elements are described by ``item``."""
        return cls(TypeKind.LIST, item=item)

    @classmethod
    def struct_of(cls, fields: Iterable[Field]) -> DataType:
        """Return a struct type with the given child fields."""
        return cls(TypeKind.STRUCT, fields=tuple(fields))

    @property
    def is_list(self) -> bool:
        return self.kind is TypeKind.LIST


@dataclass(frozen=True)
class Field:
    """A named, typed column description."""

    name: str
    data_type: DataType
    nullable: bool = True


NULL = DataType(TypeKind.NULL)
BOOLEAN = DataType(TypeKind.BOOLEAN)
INT32 = DataType(TypeKind.INT32)
UINT32 = DataType(TypeKind.UINT32)
FLOAT32 = DataType(TypeKind.FLOAT32)
FLOAT64 = DataType(TypeKind.FLOAT64)
UTF8 = DataType(TypeKind.UTF8)


@dataclass(frozen=True)
class Schema:
    """An ordered collection of fields."""

    fields: tuple[Field, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    def __getitem__(self, index: int) -> Field:
        return self.fields[index]

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    def project(self, indices: Iterable[int]) -> Schema:
        """Return a schema holding the fields at ``indices``, in that order."""
        return Schema(tuple(self.fields[i] for i in indices))

    def index_of(self, name: str) -> int:
        """Return the position of the field called ``name``."""
        for position, candidate in enumerate(self.fields):
            if candidate.name == name:
                return position
        raise KeyError(f"no field named {name!r}")


class RecordBatch:
    """Equal-length columns that match a schema."""

    def __init__(
        self,
        schema: Schema,
        columns: Sequence[Sequence[Any]],
        num_rows: int | None = None,
    ) -> None:
        columns = [list(column) for column in columns]
        if len(columns) != len(schema):
            raise ValueError(
                f"schema has {len(schema)} fields but {len(columns)} columns were given"
            )
        if columns:
            lengths = {len(column) for column in columns}
            if len(lengths) != 1:
                raise ValueError("all columns must have the same length")
            (length,) = lengths
            if num_rows is not None and num_rows != length:
                raise ValueError(f"row count {num_rows} does not match column length {length}")
            num_rows = length
        elif num_rows is None:
            num_rows = 0
        if num_rows < 0:
            raise ValueError("row count cannot be negative")
        for spec, column in zip(schema.fields, columns):
            if spec.data_type.kind is TypeKind.NULL:
                if any(value is not None for value in column):
                    raise ValueError(f"null column {spec.name!r} holds values")
            elif not spec.nullable and any(value is None for value in column):
                raise ValueError(f"column {spec.name!r} is not nullable but holds nulls")
        self.schema = schema
        self.columns = columns
        self.num_rows = num_rows

    def __len__(self) -> int:
        return self.num_rows

    def __repr__(self) -> str:
        return f"RecordBatch(columns={self.schema.names}, num_rows={self.num_rows})"

    def column(self, name: str) -> list[Any]:
        """Return the values of the column called ``name``."""
        return self.columns[self.schema.index_of(name)]

    def to_rows(self) -> list[dict[str, Any]]:
        """Return the batch as one dictionary per row."""
        if not self.columns:
            return [{} for _ in range(self.num_rows)]
        names = self.schema.names
        return [dict(zip(names, row)) for row in zip(*self.columns)]


def project_schema(schema: Schema, projection: Sequence[int] | None) -> Schema:
    """Apply a projection; an empty one yields a single nullable dummy column."""
    if projection is None:
        return schema
    if len(projection) == 0:
        return Schema((Field("dummy", NULL, True),))
    return schema.project(projection)


def select_columns(
    columns: Sequence[Sequence[Any]],
    projection: Sequence[int] | None,
    num_rows: int,
) -> list[list[Any]]:
    """Pick the projected columns; unknown indices and empty projections give nulls."""
    if projection is None:
        return [list(column) for column in columns]
    if len(projection) == 0:
        return [[None] * num_rows]
    return [
        list(columns[i]) if 0 <= i < len(columns) else [None] * num_rows
        for i in projection
    ]