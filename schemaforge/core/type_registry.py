"""
Cross-engine column type mapping.

Each target engine has a table keyed by the normalized (lower-case) source
type name. A table value is either a fixed target type or a rule that
derives the target type from the column's length/precision/scale.
"""

import logging
import re
from dataclasses import replace
from typing import Callable, Dict, Optional, Set, Tuple, Union

from schemaforge.core.dialects import DatabaseTypes
from schemaforge.core.schema_ir import ColumnSchema

logger = logging.getLogger(__name__)

Rule = Union[str, Callable[[ColumnSchema], str]]

UNBOUNDED = -1
DEFAULT_PRECISION = 18
DEFAULT_SCALE = 0

_TYPE_PATTERN = re.compile(
    r'^\s*([a-zA-Z0-9_ ]+?)\s*\(\s*(\d+|max)\s*(?:,\s*(\d+)\s*)?\)\s*(.*)$',
    re.IGNORECASE)

_CHARACTER_TYPES = {'char', 'character', 'nchar', 'varchar', 'nvarchar', 'varchar2',
                    'nvarchar2', 'character varying', 'varbinary', 'binary', 'raw'}


def _fixed_length(fmt: str, default: int = 1) -> Callable[[ColumnSchema], str]:
    def rule(column: ColumnSchema) -> str:
        length = column.max_length if column.max_length and column.max_length > 0 else default
        return fmt.format(length)
    return rule


def _variable_length(fmt: str, unbounded: str, default: Optional[int] = None) -> Callable[[ColumnSchema], str]:
    def rule(column: ColumnSchema) -> str:
        if column.max_length == UNBOUNDED:
            return unbounded
        length = column.max_length if column.max_length is not None else default
        if length is None:
            return unbounded
        return fmt.format(length)
    return rule


def _decimal(fmt: str) -> Callable[[ColumnSchema], str]:
    def rule(column: ColumnSchema) -> str:
        precision = column.precision if column.precision is not None else DEFAULT_PRECISION
        scale = column.scale if column.scale is not None else DEFAULT_SCALE
        return fmt.format(precision, scale)
    return rule


def _number(fmt: str, integer_type: str) -> Callable[[ColumnSchema], str]:
    """Oracle NUMBER: fractional when a positive scale is present, integer otherwise"""
    def rule(column: ColumnSchema) -> str:
        if column.scale is not None and column.scale > 0:
            precision = column.precision if column.precision is not None else DEFAULT_PRECISION
            return fmt.format(precision, column.scale)
        return integer_type
    return rule


POSTGRES_TYPES: Dict[str, Rule] = {
    'int': 'integer',
    'integer': 'integer',
    'bigint': 'bigint',
    'smallint': 'smallint',
    'tinyint': 'smallint',
    'bit': 'boolean',
    'boolean': 'boolean',
    'bool': 'boolean',
    'decimal': _decimal('numeric({},{})'),
    'numeric': _decimal('numeric({},{})'),
    'money': 'numeric(19,4)',
    'smallmoney': 'numeric(19,4)',
    'float': 'double precision',
    'double': 'double precision',
    'double precision': 'double precision',
    'binary_double': 'double precision',
    'real': 'real',
    'binary_float': 'real',
    'datetime': 'timestamp without time zone',
    'datetime2': 'timestamp without time zone',
    'smalldatetime': 'timestamp without time zone',
    'timestamp': 'timestamp without time zone',
    'timestamp without time zone': 'timestamp without time zone',
    'datetimeoffset': 'timestamp with time zone',
    'timestamp with time zone': 'timestamp with time zone',
    'date': 'date',
    'time': 'time without time zone',
    'time without time zone': 'time without time zone',
    'char': _fixed_length('character({})'),
    'character': _fixed_length('character({})'),
    'nchar': _fixed_length('character({})'),
    'varchar': _variable_length('character varying({})', 'text'),
    'character varying': _variable_length('character varying({})', 'text'),
    'nvarchar': _variable_length('character varying({})', 'text'),
    'varchar2': _variable_length('character varying({})', 'text'),
    'nvarchar2': _variable_length('character varying({})', 'text'),
    'text': 'text',
    'ntext': 'text',
    'clob': 'text',
    'nclob': 'text',
    'uniqueidentifier': 'uuid',
    'uuid': 'uuid',
    'varbinary': 'bytea',
    'binary': 'bytea',
    'image': 'bytea',
    'blob': 'bytea',
    'raw': 'bytea',
    'bytea': 'bytea',
    'xml': 'xml',
    'xmltype': 'xml',
    'number': _number('numeric({},{})', 'integer'),
    'json': 'json',
    'jsonb': 'jsonb',
    'geography': 'text',
    'geometry': 'text',
    'hierarchyid': 'text',
    'sql_variant': 'text',
    'sysname': 'character varying(128)',
}

MYSQL_TYPES: Dict[str, Rule] = {
    'int': 'INT',
    'integer': 'INT',
    'bigint': 'BIGINT',
    'smallint': 'SMALLINT',
    'tinyint': 'TINYINT(1)',
    'bit': 'TINYINT(1)',
    'boolean': 'TINYINT(1)',
    'bool': 'TINYINT(1)',
    'decimal': _decimal('DECIMAL({},{})'),
    'numeric': _decimal('DECIMAL({},{})'),
    'money': 'DECIMAL(19,4)',
    'smallmoney': 'DECIMAL(19,4)',
    'float': 'DOUBLE',
    'double': 'DOUBLE',
    'double precision': 'DOUBLE',
    'binary_double': 'DOUBLE',
    'real': 'FLOAT',
    'binary_float': 'FLOAT',
    'datetime': 'DATETIME',
    'datetime2': 'DATETIME',
    'smalldatetime': 'DATETIME',
    'timestamp': 'DATETIME',
    'timestamp without time zone': 'DATETIME',
    'datetimeoffset': 'DATETIME',
    'timestamp with time zone': 'DATETIME',
    'date': 'DATE',
    'time': 'TIME',
    'time without time zone': 'TIME',
    'char': _fixed_length('CHAR({})'),
    'character': _fixed_length('CHAR({})'),
    'nchar': _fixed_length('CHAR({})'),
    'varchar': _variable_length('VARCHAR({})', 'TEXT', 255),
    'character varying': _variable_length('VARCHAR({})', 'TEXT', 255),
    'nvarchar': _variable_length('VARCHAR({})', 'TEXT', 255),
    'varchar2': _variable_length('VARCHAR({})', 'TEXT', 255),
    'nvarchar2': _variable_length('VARCHAR({})', 'TEXT', 255),
    'text': 'TEXT',
    'ntext': 'TEXT',
    'clob': 'TEXT',
    'nclob': 'TEXT',
    'uuid': 'CHAR(36)',
    'uniqueidentifier': 'CHAR(36)',
    'bytea': 'BLOB',
    'varbinary': 'BLOB',
    'binary': 'BLOB',
    'image': 'BLOB',
    'blob': 'BLOB',
    'raw': 'BLOB',
    'xml': 'TEXT',
    'xmltype': 'TEXT',
    'number': _number('DECIMAL({},{})', 'INT'),
    'json': 'JSON',
    'jsonb': 'JSON',
    'geography': 'TEXT',
    'geometry': 'TEXT',
    'hierarchyid': 'VARCHAR(4000)',
    'sql_variant': 'TEXT',
    'sysname': 'VARCHAR(128)',
}

ORACLE_TYPES: Dict[str, Rule] = {
    'int': 'NUMBER(10)',
    'integer': 'NUMBER(10)',
    'bigint': 'NUMBER(19)',
    'smallint': 'NUMBER(5)',
    'tinyint': 'NUMBER(3)',
    'bit': 'NUMBER(3)',
    'boolean': 'NUMBER(3)',
    'bool': 'NUMBER(3)',
    'decimal': _decimal('NUMBER({},{})'),
    'numeric': _decimal('NUMBER({},{})'),
    'money': 'NUMBER(19,4)',
    'smallmoney': 'NUMBER(19,4)',
    'float': 'BINARY_DOUBLE',
    'double': 'BINARY_DOUBLE',
    'double precision': 'BINARY_DOUBLE',
    'real': 'BINARY_DOUBLE',
    'binary_double': 'BINARY_DOUBLE',
    'binary_float': 'BINARY_DOUBLE',
    'datetime': 'TIMESTAMP',
    'datetime2': 'TIMESTAMP',
    'smalldatetime': 'TIMESTAMP',
    'timestamp': 'TIMESTAMP',
    'timestamp without time zone': 'TIMESTAMP',
    'datetimeoffset': 'TIMESTAMP WITH TIME ZONE',
    'timestamp with time zone': 'TIMESTAMP WITH TIME ZONE',
    'date': 'DATE',
    'time': 'TIMESTAMP',
    'time without time zone': 'TIMESTAMP',
    'char': _fixed_length('CHAR({})'),
    'character': _fixed_length('CHAR({})'),
    'nchar': _fixed_length('CHAR({})'),
    'varchar': _variable_length('VARCHAR2({})', 'CLOB', 4000),
    'character varying': _variable_length('VARCHAR2({})', 'CLOB', 4000),
    'nvarchar': _variable_length('VARCHAR2({})', 'CLOB', 4000),
    'varchar2': _variable_length('VARCHAR2({})', 'CLOB', 4000),
    'nvarchar2': _variable_length('VARCHAR2({})', 'CLOB', 4000),
    'text': 'CLOB',
    'ntext': 'CLOB',
    'clob': 'CLOB',
    'nclob': 'CLOB',
    'uuid': 'RAW(16)',
    'uniqueidentifier': 'RAW(16)',
    'bytea': 'BLOB',
    'varbinary': 'BLOB',
    'binary': 'BLOB',
    'image': 'BLOB',
    'blob': 'BLOB',
    'raw': _variable_length('RAW({})', 'BLOB', 2000),
    'xml': 'XMLTYPE',
    'xmltype': 'XMLTYPE',
    'number': _number('NUMBER({},{})', 'NUMBER(10)'),
    'json': 'CLOB',
    'jsonb': 'CLOB',
    'geography': 'CLOB',
    'geometry': 'CLOB',
    'hierarchyid': 'VARCHAR2(4000)',
    'sql_variant': 'CLOB',
    'sysname': 'VARCHAR2(128)',
}

SQLSERVER_TYPES: Dict[str, Rule] = {
    'int': 'INT',
    'integer': 'INT',
    'bigint': 'BIGINT',
    'smallint': 'SMALLINT',
    'tinyint': 'TINYINT',
    'bit': 'BIT',
    'boolean': 'BIT',
    'bool': 'BIT',
    'decimal': _decimal('DECIMAL({},{})'),
    'numeric': _decimal('DECIMAL({},{})'),
    'money': 'MONEY',
    'smallmoney': 'SMALLMONEY',
    'float': 'FLOAT',
    'double': 'FLOAT',
    'double precision': 'FLOAT',
    'binary_double': 'FLOAT',
    'real': 'REAL',
    'binary_float': 'REAL',
    'datetime': 'DATETIME2',
    'datetime2': 'DATETIME2',
    'smalldatetime': 'DATETIME2',
    'timestamp': 'DATETIME2',
    'timestamp without time zone': 'DATETIME2',
    'timestamp with time zone': 'DATETIMEOFFSET',
    'datetimeoffset': 'DATETIMEOFFSET',
    'date': 'DATE',
    'time': 'TIME',
    'time without time zone': 'TIME',
    'char': _fixed_length('CHAR({})'),
    'character': _fixed_length('CHAR({})'),
    'nchar': _fixed_length('NCHAR({})'),
    'varchar': _variable_length('VARCHAR({})', 'VARCHAR(MAX)'),
    'character varying': _variable_length('VARCHAR({})', 'VARCHAR(MAX)'),
    'varchar2': _variable_length('VARCHAR({})', 'VARCHAR(MAX)'),
    'nvarchar': _variable_length('NVARCHAR({})', 'NVARCHAR(MAX)'),
    'nvarchar2': _variable_length('NVARCHAR({})', 'NVARCHAR(MAX)'),
    'text': 'VARCHAR(MAX)',
    'clob': 'VARCHAR(MAX)',
    'ntext': 'NVARCHAR(MAX)',
    'nclob': 'NVARCHAR(MAX)',
    'uuid': 'UNIQUEIDENTIFIER',
    'uniqueidentifier': 'UNIQUEIDENTIFIER',
    'bytea': 'VARBINARY(MAX)',
    'varbinary': 'VARBINARY(MAX)',
    'binary': 'VARBINARY(MAX)',
    'blob': 'VARBINARY(MAX)',
    'raw': 'VARBINARY(MAX)',
    'image': 'IMAGE',
    'xml': 'XML',
    'xmltype': 'XML',
    'number': _number('DECIMAL({},{})', 'INT'),
    'json': 'NVARCHAR(MAX)',
    'jsonb': 'NVARCHAR(MAX)',
    'geography': 'GEOGRAPHY',
    'geometry': 'GEOMETRY',
    'hierarchyid': 'HIERARCHYID',
    'sql_variant': 'SQL_VARIANT',
    'sysname': 'SYSNAME',
}

# target key -> (display name, type table, fallback type)
TARGET_TABLES: Dict[str, Tuple[str, Dict[str, Rule], str]] = {
    DatabaseTypes.POSTGRES: ("PostgreSQL", POSTGRES_TYPES, "text"),
    DatabaseTypes.MYSQL: ("MySQL", MYSQL_TYPES, "TEXT"),
    DatabaseTypes.ORACLE: ("Oracle", ORACLE_TYPES, "CLOB"),
    DatabaseTypes.SQLSERVER: ("SQL Server", SQLSERVER_TYPES, "VARCHAR(MAX)"),
}


def normalize_column(column: ColumnSchema) -> ColumnSchema:
    """
    Collapse engine-specific spellings to the canonical keys of the type tables.

    TIMESTAMP(n) [WITH [LOCAL] TIME ZONE] becomes timestamp / timestamp with time
    zone, INTERVAL types become varchar, and inline size arguments such as
    VARCHAR(50) or NUMBER(10,2) are lifted into the column's length/precision/scale
    when the reader did not already supply them.
    """
    data_type = (column.data_type or "").strip()
    upper = data_type.upper()

    if upper.startswith("TIMESTAMP"):
        if "WITH LOCAL TIME ZONE" in upper or "WITH TIME ZONE" in upper:
            return replace(column, data_type="timestamp with time zone")
        return replace(column, data_type="timestamp")

    if upper.startswith("INTERVAL"):
        return replace(column, data_type="varchar")

    match = _TYPE_PATTERN.match(data_type)
    if not match:
        return replace(column, data_type=data_type.lower())

    base, first, second, rest = match.groups()
    base = base.strip().lower()
    if rest:
        base = f"{base} {rest.strip().lower()}"
    changes = {'data_type': base}
    if first.lower() == 'max':
        if column.max_length is None:
            changes['max_length'] = UNBOUNDED
    elif base in _CHARACTER_TYPES:
        if column.max_length is None:
            changes['max_length'] = int(first)
    else:
        if column.precision is None:
            changes['precision'] = int(first)
        if second is not None and column.scale is None:
            changes['scale'] = int(second)
    return replace(column, **changes)


class TypeMapper:
    """Maps source column types onto a target engine's type names"""

    def __init__(self):
        self._warned: Set[str] = set()

    def map_data_type(self, column: ColumnSchema, target: str) -> str:
        key = (target or "").strip().lower()
        # Unknown targets fall back to the PostgreSQL table
        display, table, fallback = TARGET_TABLES.get(key, TARGET_TABLES[DatabaseTypes.POSTGRES])

        normalized = normalize_column(column)
        rule = table.get(normalized.data_type)
        if rule is None:
            self._warn_unmapped(column.data_type, display, fallback)
            return fallback
        return rule(normalized) if callable(rule) else rule

    def _warn_unmapped(self, source_type: str, target: str, fallback: str) -> None:
        warn_key = f"{source_type}:{target}".lower()
        if warn_key in self._warned:
            return
        self._warned.add(warn_key)
        logger.warning(f"Unmapped data type '{source_type}' for target '{target}', using fallback '{fallback}'")
