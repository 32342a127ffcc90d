#!/usr/bin/env python3
"""
SchemaForge SQL Server Adapter

Reads from sys.* catalogue views and INFORMATION_SCHEMA, writes T-SQL DDL.

Column defaults live in named default constraints on SQL Server, so they are
read as DEFAULT constraints (with the column's type attached) instead of as
inline column defaults. Unique constraints are backed by indexes; those
indexes are reported once, as constraints.

As a target, foreign keys are switched to NOCHECK for the data load and
re-validated afterwards, and identity columns are written with
IDENTITY_INSERT on.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import pymssql

from schemaforge.core.schema_ir import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    ForeignKeySchema,
    IndexSchema,
    TableSchema,
    ViewSchema,
)
from schemaforge.extensions.plugins.base import DatabaseAdapter, build_bundle, fetch_dicts

logger = logging.getLogger(__name__)


class SqlServerAdapter(DatabaseAdapter):
    key = "sqlserver"
    display_name = "SQL Server"
    default_schema = "dbo"
    default_port = 1433
    supports_index_include = True
    supports_filtered_index = True

    def _open(self, params: Dict[str, Any]):
        options = params['options']
        return pymssql.connect(
            server=params['host'],
            port=str(params['port']),
            user=params['user'],
            password=params['password'],
            database=params['database'] or 'master',
            login_timeout=int(options.get('login_timeout', 30)),
            charset=options.get('charset', 'UTF-8'),
            autocommit=False,
        )

    # ----- catalogue -----

    def list_tables(self, cursor, schema: str) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT TABLE_NAME
            FROM INFORMATION_SCHEMA.TABLES
            WHERE TABLE_SCHEMA = %s
            AND TABLE_TYPE = 'BASE TABLE'
            ORDER BY TABLE_NAME
        """, (schema,))
        return [row['table_name'] for row in rows]

    def list_columns(self, cursor, schema: str, table: str) -> List[ColumnSchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                c.COLUMN_NAME,
                c.DATA_TYPE,
                c.CHARACTER_MAXIMUM_LENGTH,
                c.NUMERIC_PRECISION,
                c.NUMERIC_SCALE,
                c.IS_NULLABLE,
                COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)),
                               c.COLUMN_NAME, 'IsIdentity') AS is_identity
            FROM INFORMATION_SCHEMA.COLUMNS c
            WHERE c.TABLE_SCHEMA = %s
            AND c.TABLE_NAME = %s
            ORDER BY c.ORDINAL_POSITION
        """, (schema, table))

        columns = []
        for row in rows:
            data_type = row['data_type'].lower()
            is_decimal = data_type in ('decimal', 'numeric')
            columns.append(ColumnSchema(
                name=row['column_name'],
                data_type=data_type,
                max_length=row['character_maximum_length'],
                precision=row['numeric_precision'] if is_decimal else None,
                scale=row['numeric_scale'] if is_decimal else None,
                is_nullable=row['is_nullable'] == 'YES',
                is_identity=row['is_identity'] == 1,
            ))
        return columns

    def list_primary_keys(self, cursor, schema: str, table: str) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT kcu.COLUMN_NAME
            FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
            JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
                ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
                AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA
            WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
            AND tc.TABLE_SCHEMA = %s
            AND tc.TABLE_NAME = %s
            ORDER BY kcu.ORDINAL_POSITION
        """, (schema, table))
        return [row['column_name'] for row in rows]

    def list_foreign_keys(self, cursor, schema: str, table: str) -> List[ForeignKeySchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                fk.name AS constraint_name,
                pc.name AS column_name,
                rs.name AS referenced_schema,
                rt.name AS referenced_table,
                rc.name AS referenced_column
            FROM sys.foreign_keys fk
            JOIN sys.foreign_key_columns fkc ON fkc.constraint_object_id = fk.object_id
            JOIN sys.tables pt ON pt.object_id = fk.parent_object_id
            JOIN sys.schemas ps ON ps.schema_id = pt.schema_id
            JOIN sys.columns pc ON pc.object_id = fkc.parent_object_id AND pc.column_id = fkc.parent_column_id
            JOIN sys.tables rt ON rt.object_id = fk.referenced_object_id
            JOIN sys.schemas rs ON rs.schema_id = rt.schema_id
            JOIN sys.columns rc ON rc.object_id = fkc.referenced_object_id AND rc.column_id = fkc.referenced_column_id
            WHERE ps.name = %s
            AND pt.name = %s
            ORDER BY fk.name, fkc.constraint_column_id
        """, (schema, table))
        return [ForeignKeySchema(
            name=row['constraint_name'],
            column_name=row['column_name'],
            referenced_schema=row['referenced_schema'],
            referenced_table=row['referenced_table'],
            referenced_column=row['referenced_column'],
        ) for row in rows]

    def list_indexes(self, cursor, schema: str, table: str) -> List[IndexSchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                i.name AS index_name,
                i.is_unique,
                i.is_primary_key,
                i.type_desc,
                i.filter_definition,
                c.name AS column_name,
                ic.is_included_column
            FROM sys.indexes i
            JOIN sys.index_columns ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id
            JOIN sys.columns c ON c.object_id = ic.object_id AND c.column_id = ic.column_id
            JOIN sys.tables t ON t.object_id = i.object_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
            WHERE s.name = %s
            AND t.name = %s
            AND i.name IS NOT NULL
            AND i.is_unique_constraint = 0
            ORDER BY i.name, ic.is_included_column, ic.key_ordinal, ic.index_column_id
        """, (schema, table))

        grouped: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for row in rows:
            entry = grouped.setdefault(row['index_name'], {'row': row, 'columns': [], 'included': []})
            (entry['included'] if row['is_included_column'] else entry['columns']).append(row['column_name'])

        return [IndexSchema(
            name=name,
            table_name=table,
            schema_name=schema,
            columns=entry['columns'],
            included_columns=entry['included'],
            filter_expression=entry['row']['filter_definition'],
            is_unique=bool(entry['row']['is_unique']),
            is_primary_key=bool(entry['row']['is_primary_key']),
            is_clustered=entry['row']['type_desc'] == 'CLUSTERED',
        ) for name, entry in grouped.items()]

    def list_constraints(self, cursor, schema: str, table: str) -> List[ConstraintSchema]:
        constraints = []

        rows = fetch_dicts(cursor, """
            SELECT kc.name AS constraint_name, c.name AS column_name
            FROM sys.key_constraints kc
            JOIN sys.index_columns ic ON ic.object_id = kc.parent_object_id AND ic.index_id = kc.unique_index_id
            JOIN sys.columns c ON c.object_id = ic.object_id AND c.column_id = ic.column_id
            JOIN sys.tables t ON t.object_id = kc.parent_object_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
            WHERE kc.type = 'UQ'
            AND s.name = %s
            AND t.name = %s
            ORDER BY kc.name, ic.key_ordinal
        """, (schema, table))
        unique: "OrderedDict[str, List[str]]" = OrderedDict()
        for row in rows:
            unique.setdefault(row['constraint_name'], []).append(row['column_name'])
        for name, columns in unique.items():
            constraints.append(ConstraintSchema(name=name, table_name=table, schema_name=schema,
                                                type=ConstraintType.UNIQUE, columns=columns))

        rows = fetch_dicts(cursor, """
            SELECT cc.name AS constraint_name, cc.definition
            FROM sys.check_constraints cc
            JOIN sys.tables t ON t.object_id = cc.parent_object_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
            WHERE s.name = %s
            AND t.name = %s
            ORDER BY cc.name
        """, (schema, table))
        for row in rows:
            constraints.append(ConstraintSchema(name=row['constraint_name'], table_name=table,
                                                schema_name=schema, type=ConstraintType.CHECK,
                                                check_expression=row['definition']))

        rows = fetch_dicts(cursor, """
            SELECT dc.name AS constraint_name, dc.definition, c.name AS column_name, ty.name AS type_name
            FROM sys.default_constraints dc
            JOIN sys.columns c ON c.object_id = dc.parent_object_id AND c.column_id = dc.parent_column_id
            JOIN sys.types ty ON ty.user_type_id = c.user_type_id
            JOIN sys.tables t ON t.object_id = dc.parent_object_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
            WHERE s.name = %s
            AND t.name = %s
            ORDER BY dc.name
        """, (schema, table))
        for row in rows:
            constraints.append(ConstraintSchema(name=row['constraint_name'], table_name=table,
                                                schema_name=schema, type=ConstraintType.DEFAULT,
                                                columns=[row['column_name']],
                                                default_expression=row['definition'],
                                                column_data_type=row['type_name']))
        return constraints

    def list_views(self, cursor, schema: str) -> List[ViewSchema]:
        rows = fetch_dicts(cursor, """
            SELECT v.name AS view_name, m.definition
            FROM sys.views v
            JOIN sys.schemas s ON s.schema_id = v.schema_id
            JOIN sys.sql_modules m ON m.object_id = v.object_id
            WHERE s.name = %s
            ORDER BY v.name
        """, (schema,))
        return [ViewSchema(schema_name=schema, name=row['view_name'], definition=row['definition'] or '')
                for row in rows]

    # ----- DDL -----

    def create_schema_sql(self, schema: str) -> Optional[str]:
        if schema.lower() == 'dbo':
            return None
        literal = schema.replace("'", "''")
        quoted = self.quote(schema).replace("'", "''")
        return (f"IF NOT EXISTS (SELECT 1 FROM sys.schemas WHERE name = N'{literal}') "
                f"EXEC('CREATE SCHEMA {quoted}')")

    def create_table_sql(self, qualified_name: str, body: str) -> str:
        literal = qualified_name.replace("'", "''")
        return f"IF OBJECT_ID(N'{literal}', N'U') IS NULL\nCREATE TABLE {qualified_name} (\n{body}\n)"

    def identity_clause(self, column: ColumnSchema) -> str:
        return "IDENTITY(1,1)"

    def create_view_sql(self, qualified_name: str, body: str) -> str:
        return f"CREATE OR ALTER VIEW {qualified_name} AS {body}"

    def set_default_sql(self, qualified_table: str, constraint_name: str, column: str, expression: str) -> str:
        return (f"ALTER TABLE {qualified_table} ADD CONSTRAINT {self.quote(constraint_name)} "
                f"DEFAULT {expression} FOR {self.quote(column)}")

    # ----- data -----

    def select_batch_sql(self, qualified_table: str, columns: List[str], order_by: List[str],
                         offset: int, limit: int) -> str:
        column_list = ", ".join(self.quote(c) for c in columns) or "*"
        # OFFSET/FETCH needs an ORDER BY
        order = ", ".join(self.quote(c) for c in order_by) or "(SELECT NULL)"
        return f"SELECT {column_list} FROM {qualified_table} ORDER BY {order} {self.dialect.paginate(offset, limit)}"

    def _foreign_key_tables(self, cursor) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT DISTINCT s.name AS schema_name, t.name AS table_name
            FROM sys.foreign_keys fk
            JOIN sys.tables t ON t.object_id = fk.parent_object_id
            JOIN sys.schemas s ON s.schema_id = t.schema_id
        """)
        return [self.qualify(row['schema_name'], row['table_name']) for row in rows]

    def disable_constraints(self, cursor) -> List[str]:
        tables = self._foreign_key_tables(cursor)
        for table in tables:
            cursor.execute(f"ALTER TABLE {table} NOCHECK CONSTRAINT ALL")
        logger.debug(f"NOCHECK applied to {len(tables)} tables")
        return tables

    def enable_constraints(self, cursor, disabled: Optional[List[str]]) -> None:
        for table in disabled or []:
            cursor.execute(f"ALTER TABLE {table} WITH CHECK CHECK CONSTRAINT ALL")

    def before_insert(self, cursor, qualified_table: str, table: TableSchema) -> None:
        if any(c.is_identity for c in table.columns):
            cursor.execute(f"SET IDENTITY_INSERT {qualified_table} ON")

    def after_insert(self, cursor, qualified_table: str, table: TableSchema) -> None:
        if any(c.is_identity for c in table.columns):
            cursor.execute(f"SET IDENTITY_INSERT {qualified_table} OFF")

    def reset_sequences(self, cursor, schema: str, table: str, identity_columns: List[str]) -> None:
        literal = self.qualify(schema, table).replace("'", "''")
        cursor.execute(f"DBCC CHECKIDENT (N'{literal}', RESEED)")
        logger.debug(f"Reseeded identity for {schema}.{table}")


def create_bundle():
    return build_bundle(SqlServerAdapter())
