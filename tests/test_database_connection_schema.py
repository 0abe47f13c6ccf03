from dbgateway.utils.database_connection_schema import (
    ColumnInfo, IndexType, TableStructure, fold_index_rows
)


def test_fold_groups_rows_by_index_name_in_first_seen_order():
    rows = [
        {"name": "PRIMARY", "column": "id", "unique": True},
        {"name": "idx_name_age", "column": "last_name", "unique": False},
        {"name": "uq_email", "column": "email", "unique": True},
        {"name": "idx_name_age", "column": "first_name", "unique": False},
        {"name": "idx_name_age", "column": "age", "unique": False},
    ]

    indexes = fold_index_rows(rows)

    assert [index.name for index in indexes] == ["PRIMARY", "idx_name_age", "uq_email"]
    assert indexes[1].columns == ["last_name", "first_name", "age"]
    assert [index.type for index in indexes] == [
        IndexType.PRIMARY, IndexType.INDEX, IndexType.UNIQUE
    ]


def test_primary_flag_wins_over_name():
    indexes = fold_index_rows([
        {"name": "users_pkey", "column": "id", "unique": True, "primary": True},
    ])
    assert indexes[0].type == IndexType.PRIMARY
    assert indexes[0].unique is True


def test_structure_serializes_index_type_as_string():
    structure = TableStructure(
        table_name="users",
        columns=[ColumnInfo(name="id", type="INTEGER", nullable=False, primary_key=True)],
        indexes=fold_index_rows([{"name": "PRIMARY", "column": "id", "unique": True}]),
    )

    data = structure.to_dict()

    assert data["indexes"] == [
        {"name": "PRIMARY", "columns": ["id"], "unique": True, "type": "PRIMARY"}
    ]
    # auto_increment is omitted when unknown
    assert "auto_increment" not in data["columns"][0]
