#!/usr/bin/env python3
"""
SchemaForge MySQL Adapter

MySQL has no schemas inside a database, so the "schema" of a migration is
the database itself: reading defaults to DATABASE() and writing to a target
schema creates the database when it does not exist.

Constraint checking is switched off with FOREIGN_KEY_CHECKS, which only
lasts for the session that sets it; the data writer re-applies it on every
insert connection.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import pymysql

from schemaforge.core.schema_ir import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    ForeignKeySchema,
    IndexSchema,
    ViewSchema,
)
from schemaforge.extensions.plugins.base import DatabaseAdapter, build_bundle, fetch_dicts, split_list

logger = logging.getLogger(__name__)

_DEFINER = re.compile(r'\s*DEFINER\s*=\s*[`\']?[\w%]+[`\']?\s*@\s*[`\']?[\w%.]+[`\']?\s*', re.IGNORECASE)


def strip_definer(sql: str) -> str:
    """Remove DEFINER=`user`@`host` so a view can be recreated by another account"""
    return _DEFINER.sub(' ', sql).strip()


class MySQLAdapter(DatabaseAdapter):
    key = "mysql"
    display_name = "MySQL"
    default_schema = ""
    default_port = 3306
    session_scoped_constraints = True

    def _open(self, params: Dict[str, Any]):
        options = params['options']
        return pymysql.connect(
            host=params['host'],
            port=params['port'],
            user=params['user'],
            password=params['password'] or '',
            database=params['database'],
            charset=options.get('charset', 'utf8mb4'),
            connect_timeout=int(options.get('connect_timeout', 10)),
            autocommit=False,
        )

    def resolve_schema(self, cursor, requested: Optional[str]) -> str:
        if requested:
            return requested
        cursor.execute("SELECT DATABASE()")
        return cursor.fetchone()[0]

    # ----- catalogue -----

    def list_tables(self, cursor, schema: str) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT TABLE_NAME
            FROM information_schema.tables
            WHERE table_schema = %s
            AND table_type = 'BASE TABLE'
            ORDER BY TABLE_NAME
        """, (schema,))
        return [row['table_name'] for row in rows]

    def list_columns(self, cursor, schema: str, table: str) -> List[ColumnSchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                COLUMN_NAME,
                DATA_TYPE,
                COLUMN_TYPE,
                CHARACTER_MAXIMUM_LENGTH,
                NUMERIC_PRECISION,
                NUMERIC_SCALE,
                IS_NULLABLE,
                COLUMN_DEFAULT,
                EXTRA
            FROM information_schema.columns
            WHERE table_schema = %s
            AND table_name = %s
            ORDER BY ORDINAL_POSITION
        """, (schema, table))

        columns = []
        for row in rows:
            data_type = row['data_type'].lower()
            if row['column_type'].lower().startswith('tinyint(1)'):
                data_type = 'boolean'
            identity = 'auto_increment' in (row['extra'] or '').lower()
            default = row['column_default']
            if default is not None and data_type in ('char', 'varchar', 'text', 'enum', 'set') \
                    and not default.startswith("'"):
                default = "'" + default.replace("'", "''") + "'"
            is_decimal = data_type in ('decimal', 'numeric')
            columns.append(ColumnSchema(
                name=row['column_name'],
                data_type=data_type,
                max_length=row['character_maximum_length'] if data_type not in ('text', 'longtext', 'mediumtext') else None,
                precision=row['numeric_precision'] if is_decimal else None,
                scale=row['numeric_scale'] if is_decimal else None,
                is_nullable=row['is_nullable'] == 'YES',
                default_value=None if identity else default,
                is_identity=identity,
            ))
        return columns

    def list_primary_keys(self, cursor, schema: str, table: str) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT COLUMN_NAME
            FROM information_schema.key_column_usage
            WHERE table_schema = %s
            AND table_name = %s
            AND CONSTRAINT_NAME = 'PRIMARY'
            ORDER BY ORDINAL_POSITION
        """, (schema, table))
        return [row['column_name'] for row in rows]

    def list_foreign_keys(self, cursor, schema: str, table: str) -> List[ForeignKeySchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                kcu.CONSTRAINT_NAME,
                kcu.COLUMN_NAME,
                kcu.REFERENCED_TABLE_SCHEMA AS ref_schema,
                kcu.REFERENCED_TABLE_NAME AS ref_table,
                kcu.REFERENCED_COLUMN_NAME AS ref_column
            FROM information_schema.key_column_usage kcu
            WHERE kcu.table_schema = %s
            AND kcu.table_name = %s
            AND kcu.REFERENCED_TABLE_NAME IS NOT NULL
            ORDER BY kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
        """, (schema, table))
        return [ForeignKeySchema(
            name=row['constraint_name'],
            column_name=row['column_name'],
            referenced_schema=row['ref_schema'],
            referenced_table=row['ref_table'],
            referenced_column=row['ref_column'],
        ) for row in rows]

    def list_indexes(self, cursor, schema: str, table: str) -> List[IndexSchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                INDEX_NAME,
                GROUP_CONCAT(COLUMN_NAME ORDER BY SEQ_IN_INDEX) AS columns,
                NOT NON_UNIQUE AS is_unique
            FROM information_schema.statistics
            WHERE table_schema = %s
            AND table_name = %s
            -- Indexes backing UNIQUE constraints are migrated as constraints
            AND INDEX_NAME NOT IN (
                SELECT CONSTRAINT_NAME
                FROM information_schema.table_constraints
                WHERE table_schema = %s
                AND table_name = %s
                AND CONSTRAINT_TYPE = 'UNIQUE'
            )
            GROUP BY INDEX_NAME, NON_UNIQUE
            ORDER BY INDEX_NAME
        """, (schema, table, schema, table))
        return [IndexSchema(
            name=row['index_name'],
            table_name=table,
            schema_name=schema,
            columns=split_list(row['columns']),
            is_unique=bool(row['is_unique']),
            is_primary_key=row['index_name'] == 'PRIMARY',
        ) for row in rows]

    def list_constraints(self, cursor, schema: str, table: str) -> List[ConstraintSchema]:
        constraints = []
        rows = fetch_dicts(cursor, """
            SELECT
                tc.CONSTRAINT_NAME,
                GROUP_CONCAT(kcu.COLUMN_NAME ORDER BY kcu.ORDINAL_POSITION) AS columns
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
                AND tc.table_schema = kcu.table_schema
                AND tc.table_name = kcu.table_name
            WHERE tc.CONSTRAINT_TYPE = 'UNIQUE'
            AND tc.table_schema = %s
            AND tc.table_name = %s
            GROUP BY tc.CONSTRAINT_NAME
        """, (schema, table))
        for row in rows:
            constraints.append(ConstraintSchema(
                name=row['constraint_name'], table_name=table, schema_name=schema,
                type=ConstraintType.UNIQUE, columns=split_list(row['columns'])))

        rows = fetch_dicts(cursor, """
            SELECT cc.CONSTRAINT_NAME, cc.CHECK_CLAUSE
            FROM information_schema.check_constraints cc
            JOIN information_schema.table_constraints tc
                ON tc.CONSTRAINT_SCHEMA = cc.CONSTRAINT_SCHEMA
                AND tc.CONSTRAINT_NAME = cc.CONSTRAINT_NAME
            WHERE tc.CONSTRAINT_TYPE = 'CHECK'
            AND tc.table_schema = %s
            AND tc.table_name = %s
            ORDER BY cc.CONSTRAINT_NAME
        """, (schema, table))
        for row in rows:
            constraints.append(ConstraintSchema(
                name=row['constraint_name'], table_name=table, schema_name=schema,
                type=ConstraintType.CHECK, check_expression=row['check_clause']))
        return constraints

    def list_views(self, cursor, schema: str) -> List[ViewSchema]:
        rows = fetch_dicts(cursor, """
            SELECT TABLE_NAME AS view_name, VIEW_DEFINITION AS definition
            FROM information_schema.VIEWS
            WHERE TABLE_SCHEMA = %s
            ORDER BY TABLE_NAME
        """, (schema,))
        return [ViewSchema(schema_name=schema, name=row['view_name'],
                           definition=strip_definer(row['definition'] or ''))
                for row in rows]

    # ----- DDL -----

    def create_schema_sql(self, schema: str) -> Optional[str]:
        return f"CREATE DATABASE IF NOT EXISTS {self.quote(schema)}" if schema else None

    def identity_clause(self, column: ColumnSchema) -> str:
        return "AUTO_INCREMENT"

    def set_default_sql(self, qualified_table: str, constraint_name: str, column: str, expression: str) -> str:
        # Expression defaults must be parenthesised in MySQL 8
        if not re.match(r"^('.*'|-?[\d.]+|NULL|TRUE|FALSE)$", expression, re.IGNORECASE | re.DOTALL):
            expression = f"({expression})"
        return f"ALTER TABLE {qualified_table} ALTER COLUMN {self.quote(column)} SET DEFAULT {expression}"

    # ----- data -----

    def session_disable_sql(self) -> List[str]:
        return ["SET FOREIGN_KEY_CHECKS = 0"]

    def reset_sequences(self, cursor, schema: str, table: str, identity_columns: List[str]) -> None:
        qualified = self.qualify(schema, table)
        column = identity_columns[0]
        cursor.execute(f"SELECT COALESCE(MAX({self.quote(column)}), 0) + 1 FROM {qualified}")
        next_value = int(cursor.fetchone()[0])
        cursor.execute(f"ALTER TABLE {qualified} AUTO_INCREMENT = {next_value}")
        logger.debug(f"Reset AUTO_INCREMENT for {schema}.{table} to {next_value}")


def create_bundle():
    return build_bundle(MySQLAdapter())
