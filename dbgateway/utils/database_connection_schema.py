from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, List, Any, Iterable


class DatabaseType(Enum):
    MYSQL = "mysql"
    POSTGRES = "postgres"
    SQLITE = "sqlite"
    MSSQL = "mssql"
    MONGODB = "mongodb"


class IndexType(Enum):
    PRIMARY = "PRIMARY"
    UNIQUE = "UNIQUE"
    INDEX = "INDEX"


@dataclass
class ColumnInfo:
    name: str
    type: str
    nullable: bool
    default: Optional[Any] = None
    primary_key: bool = False
    auto_increment: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.auto_increment is None:
            data.pop("auto_increment")
        return data


@dataclass
class IndexInfo:
    name: str
    columns: List[str]
    unique: bool
    type: IndexType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "columns": list(self.columns),
            "unique": self.unique,
            "type": self.type.value,
        }


@dataclass
class TableStructure:
    table_name: str
    columns: List[ColumnInfo] = field(default_factory=list)
    indexes: List[IndexInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "columns": [column.to_dict() for column in self.columns],
            "indexes": [index.to_dict() for index in self.indexes],
        }


def index_type_for(name: str, unique: bool, primary: bool = False) -> IndexType:
    """Normalize a catalog index description to PRIMARY / UNIQUE / INDEX."""
    if primary or name == "PRIMARY":
        return IndexType.PRIMARY
    if unique:
        return IndexType.UNIQUE
    return IndexType.INDEX


def fold_index_rows(rows: Iterable[Dict[str, Any]]) -> List[IndexInfo]:
    """
    Group per-column index rows into one entry per index.

    Catalog queries return one row per (index, column). Rows are folded by
    index name; index order and the column order inside each index follow
    the order rows were first seen.

    Args:
        rows: Dicts with name, column, unique and optionally primary keys

    Returns:
        List of IndexInfo, one per distinct index name
    """
    folded: Dict[str, IndexInfo] = {}
    for row in rows:
        name = row["name"]
        index = folded.get(name)
        if index is None:
            index = IndexInfo(
                name=name,
                columns=[],
                unique=bool(row.get("unique")),
                type=index_type_for(name, bool(row.get("unique")), bool(row.get("primary"))),
            )
            folded[name] = index
        column = row.get("column")
        if column is not None and column not in index.columns:
            index.columns.append(column)
    return list(folded.values())
