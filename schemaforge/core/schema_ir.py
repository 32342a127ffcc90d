"""
Schema model shared by readers, writers and the migration engine.

Every type here is a frozen value object: readers build them once and
nothing downstream mutates them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple


def table_key(schema_name: str, table_name: str) -> Tuple[str, str]:
    """Case-insensitive identity of a table"""
    return ((schema_name or "").lower(), (table_name or "").lower())


@dataclass(frozen=True)
class ColumnSchema:
    """Column definition; max_length == -1 means unbounded (MAX)"""
    name: str
    data_type: str
    max_length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_nullable: bool = True
    default_value: Optional[str] = None
    is_identity: bool = False


@dataclass(frozen=True)
class ForeignKeySchema:
    name: str
    column_name: str
    referenced_schema: str
    referenced_table: str
    referenced_column: str


@dataclass(frozen=True)
class IndexSchema:
    name: str
    table_name: str
    schema_name: str
    columns: List[str] = field(default_factory=list)
    included_columns: List[str] = field(default_factory=list)
    filter_expression: Optional[str] = None
    is_unique: bool = False
    is_primary_key: bool = False
    is_clustered: bool = False


class ConstraintType(Enum):
    CHECK = "CHECK"
    UNIQUE = "UNIQUE"
    DEFAULT = "DEFAULT"


@dataclass(frozen=True)
class ConstraintSchema:
    name: str
    table_name: str
    schema_name: str
    type: ConstraintType
    columns: List[str] = field(default_factory=list)
    check_expression: Optional[str] = None
    default_expression: Optional[str] = None
    column_data_type: Optional[str] = None


@dataclass(frozen=True)
class TableSchema:
    """Table definition as read from the source catalogue"""
    schema_name: str
    table_name: str
    columns: List[ColumnSchema] = field(default_factory=list)
    primary_keys: List[str] = field(default_factory=list)
    foreign_keys: List[ForeignKeySchema] = field(default_factory=list)
    indexes: List[IndexSchema] = field(default_factory=list)
    constraints: List[ConstraintSchema] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return table_key(self.schema_name, self.table_name)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


@dataclass(frozen=True)
class ViewSchema:
    schema_name: str
    name: str
    definition: str
    columns: List[str] = field(default_factory=list)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}"


class SqlCategory(Enum):
    """Buckets used to section the dry-run script and count the summary"""
    SCHEMA = "Schema"
    TABLES = "Tables"
    FOREIGN_KEYS = "ForeignKeys"
    DATA = "Data"
    INDEXES = "Indexes"
    CONSTRAINTS = "Constraints"
    VIEWS = "Views"
    COMMENT = "Comment"


@dataclass(frozen=True)
class SqlStatement:
    sql: str
    category: SqlCategory
    object_name: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
