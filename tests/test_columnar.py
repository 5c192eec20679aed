import pytest

from biotables.columnar import (
    NULL,
    UINT32,
    UTF8,
    DataType,
    Field,
    RecordBatch,
    Schema,
    TypeKind,
    project_schema,
    select_columns,
)


def _schema():
    return Schema(
        [
            Field("name", UTF8, False),
            Field("description", UTF8, True),
            Field("start", UINT32, False),
        ]
    )


def test_project_keeps_requested_order():
    projected = _schema().project([2, 0])
    assert projected.names == ["start", "name"]


def test_project_out_of_range():
    with pytest.raises(IndexError):
        _schema().project([5])


def test_index_of():
    schema = _schema()
    assert schema.index_of("description") == 1
    with pytest.raises(KeyError):
        schema.index_of("missing")


def test_project_schema_none_returns_same():
    schema = _schema()
    assert project_schema(schema, None) is schema


def test_project_schema_empty_gives_dummy():
    projected = project_schema(_schema(), [])
    assert projected.names == ["dummy"]
    assert projected[0].data_type.kind is TypeKind.NULL
    assert projected[0].nullable


def test_project_schema_indices():
    assert project_schema(_schema(), [1]).names == ["description"]


def test_list_type_requires_item():
    with pytest.raises(ValueError):
        DataType(TypeKind.LIST)
    listed = DataType.list_of(Field("item", UTF8))
    assert listed.is_list and listed.item.data_type == UTF8


def test_struct_type_fields():
    struct = DataType.struct_of([Field("tag", UTF8, False), Field("value", UTF8)])
    assert [f.name for f in struct.fields] == ["tag", "value"]


def test_batch_columns_and_rows():
    batch = RecordBatch(_schema(), [["a", "b"], [None, "d"], [1, 2]])
    assert batch.num_rows == 2
    assert batch.column("name") == ["a", "b"]
    assert batch.to_rows()[1] == {"name": "b", "description": "d", "start": 2}


def test_batch_rejects_null_in_required_column():
    with pytest.raises(ValueError):
        RecordBatch(_schema(), [[None], ["x"], [1]])


def test_batch_rejects_column_count_mismatch():
    with pytest.raises(ValueError):
        RecordBatch(_schema(), [["a"], ["b"]])


def test_batch_rejects_uneven_columns():
    with pytest.raises(ValueError):
        RecordBatch(_schema(), [["a", "b"], ["c"], [1, 2]])


def test_batch_without_columns_keeps_row_count():
    batch = RecordBatch(Schema(), [], num_rows=3)
    assert len(batch) == 3
    assert batch.to_rows() == [{}, {}, {}]


def test_null_column_must_be_empty():
    schema = Schema([Field("dummy", NULL)])
    assert RecordBatch(schema, [[None, None]]).num_rows == 2
    with pytest.raises(ValueError):
        RecordBatch(schema, [[1]])


def test_select_columns_projection():
    columns = [["a"], ["b"], ["c"]]
    assert select_columns(columns, [2, 0], 1) == [["c"], ["a"]]
    assert select_columns(columns, None, 1) == columns


def test_select_columns_empty_and_unknown():
    columns = [["a", "b"]]
    assert select_columns(columns, [], 2) == [[None, None]]
    assert select_columns(columns, [7], 2) == [[None, None]]