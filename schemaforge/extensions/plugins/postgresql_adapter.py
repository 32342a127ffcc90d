#!/usr/bin/env python3
"""
SchemaForge PostgreSQL Adapter

Catalogue queries and DDL/DML specifics for PostgreSQL, used both as a
migration source and as a target:

- Tables, columns, keys and unique constraints from information_schema
- Indexes (with INCLUDE columns and partial-index predicates) from pg_catalog
- Views from pg_views
- Identity columns as GENERATED BY DEFAULT AS IDENTITY
- Constraint checking switched off per session via session_replication_role

Usage:
    bundle = create_bundle()
    registry.register(bundle)
"""

import logging
import re
from typing import Any, Dict, List, Optional

import psycopg2
import psycopg2.extras

from schemaforge.core.schema_ir import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    ForeignKeySchema,
    IndexSchema,
    ViewSchema,
)
from schemaforge.extensions.plugins.base import (
    DatabaseAdapter,
    build_bundle,
    fetch_dicts,
    split_list,
    validate_identifier,
)

logger = logging.getLogger(__name__)

MAX_IDENTIFIER_LENGTH = 63

_INDEX_COLUMNS = re.compile(r'\((.*?)\)(?:\s+INCLUDE\s+\((.*?)\))?(?:\s+WHERE\s+(.*))?$',
                            re.IGNORECASE | re.DOTALL)


class PostgreSQLAdapter(DatabaseAdapter):
    key = "postgres"
    display_name = "PostgreSQL"
    default_schema = "public"
    default_port = 5432
    supports_index_include = True
    supports_filtered_index = True
    session_scoped_constraints = True

    def _open(self, params: Dict[str, Any]):
        options = params['options']
        connection = psycopg2.connect(
            host=params['host'],
            port=params['port'],
            dbname=params['database'],
            user=params['user'],
            password=params['password'],
            sslmode=options.get('sslmode', 'prefer'),
            connect_timeout=int(options.get('connect_timeout', 30)),
            application_name='schemaforge',
        )
        psycopg2.extras.register_uuid(conn_or_curs=connection)
        return connection

    # ----- catalogue -----

    def list_tables(self, cursor, schema: str) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
            AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """, (schema,))
        return [row['table_name'] for row in rows]

    def list_columns(self, cursor, schema: str, table: str) -> List[ColumnSchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                column_name,
                data_type,
                udt_name,
                character_maximum_length,
                numeric_precision,
                numeric_scale,
                is_nullable,
                column_default,
                is_identity
            FROM information_schema.columns
            WHERE table_schema = %s
            AND table_name = %s
            ORDER BY ordinal_position
        """, (schema, table))

        columns = []
        for row in rows:
            default = row['column_default']
            # serial columns show up as a nextval() default
            identity = row['is_identity'] == 'YES' or bool(default and default.startswith('nextval('))
            data_type = row['data_type']
            if data_type in ('USER-DEFINED', 'ARRAY'):
                data_type = row['udt_name']
            max_length = row['character_maximum_length']
            if max_length is None and data_type == 'character varying':
                max_length = -1
            columns.append(ColumnSchema(
                name=row['column_name'],
                data_type=data_type,
                max_length=max_length,
                precision=row['numeric_precision'] if data_type in ('numeric', 'decimal') else None,
                scale=row['numeric_scale'] if data_type in ('numeric', 'decimal') else None,
                is_nullable=row['is_nullable'] == 'YES',
                default_value=None if identity else _strip_cast(default),
                is_identity=identity,
            ))
        return columns

    def list_primary_keys(self, cursor, schema: str, table: str) -> List[str]:
        rows = fetch_dicts(cursor, """
            SELECT kcu.column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            WHERE tc.constraint_type = 'PRIMARY KEY'
            AND tc.table_schema = %s
            AND tc.table_name = %s
            ORDER BY kcu.ordinal_position
        """, (schema, table))
        return [row['column_name'] for row in rows]

    def list_foreign_keys(self, cursor, schema: str, table: str) -> List[ForeignKeySchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                tc.constraint_name,
                kcu.column_name,
                ccu.table_schema AS foreign_table_schema,
                ccu.table_name AS foreign_table_name,
                ccu.column_name AS foreign_column_name
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            JOIN information_schema.constraint_column_usage ccu
                ON ccu.constraint_name = tc.constraint_name
                AND ccu.table_schema = tc.table_schema
            WHERE tc.constraint_type = 'FOREIGN KEY'
            AND tc.table_schema = %s
            AND tc.table_name = %s
            ORDER BY tc.constraint_name, kcu.ordinal_position
        """, (schema, table))
        return [ForeignKeySchema(
            name=row['constraint_name'],
            column_name=row['column_name'],
            referenced_schema=row['foreign_table_schema'],
            referenced_table=row['foreign_table_name'],
            referenced_column=row['foreign_column_name'],
        ) for row in rows]

    def list_indexes(self, cursor, schema: str, table: str) -> List[IndexSchema]:
        rows = fetch_dicts(cursor, """
            SELECT
                i.relname AS index_name,
                ix.indisunique AS is_unique,
                ix.indisprimary AS is_primary,
                pg_get_indexdef(ix.indexrelid) AS definition
            FROM pg_class t
            JOIN pg_index ix ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE t.relkind = 'r'
            AND n.nspname = %s
            AND t.relname = %s
            -- Indexes backing UNIQUE constraints are migrated as constraints
            AND NOT EXISTS (
                SELECT 1 FROM pg_constraint con
                WHERE con.conindid = ix.indexrelid
                AND con.contype = 'u'
            )
            ORDER BY i.relname
        """, (schema, table))

        indexes = []
        for row in rows:
            columns, included, predicate = _parse_index_definition(row['definition'])
            indexes.append(IndexSchema(
                name=row['index_name'],
                table_name=table,
                schema_name=schema,
                columns=columns,
                included_columns=included,
                filter_expression=predicate,
                is_unique=bool(row['is_unique']),
                is_primary_key=bool(row['is_primary']),
            ))
        return indexes

    def list_constraints(self, cursor, schema: str, table: str) -> List[ConstraintSchema]:
        constraints = []
        rows = fetch_dicts(cursor, """
            SELECT
                tc.constraint_name,
                array_agg(kcu.column_name ORDER BY kcu.ordinal_position) AS columns
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
                ON tc.constraint_name = kcu.constraint_name
                AND tc.table_schema = kcu.table_schema
            WHERE tc.constraint_type = 'UNIQUE'
            AND tc.table_schema = %s
            AND tc.table_name = %s
            GROUP BY tc.constraint_name
        """, (schema, table))
        for row in rows:
            constraints.append(ConstraintSchema(
                name=row['constraint_name'], table_name=table, schema_name=schema,
                type=ConstraintType.UNIQUE, columns=split_list(row['columns'])))

        rows = fetch_dicts(cursor, """
            SELECT con.conname AS constraint_name,
                   pg_get_constraintdef(con.oid) AS definition
            FROM pg_constraint con
            JOIN pg_class t ON t.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE con.contype = 'c'
            AND n.nspname = %s
            AND t.relname = %s
            ORDER BY con.conname
        """, (schema, table))
        for row in rows:
            constraints.append(ConstraintSchema(
                name=row['constraint_name'], table_name=table, schema_name=schema,
                type=ConstraintType.CHECK, check_expression=row['definition']))
        return constraints

    def list_views(self, cursor, schema: str) -> List[ViewSchema]:
        rows = fetch_dicts(cursor, """
            SELECT viewname, definition
            FROM pg_views
            WHERE schemaname = %s
            ORDER BY viewname
        """, (schema,))
        return [ViewSchema(schema_name=schema, name=row['viewname'],
                           definition=(row['definition'] or '').strip().rstrip(';'))
                for row in rows]

    # ----- DDL -----

    def create_schema_sql(self, schema: str) -> Optional[str]:
        if schema.lower() == 'public':
            return None
        validate_identifier(schema, MAX_IDENTIFIER_LENGTH)
        return f"CREATE SCHEMA IF NOT EXISTS {self.quote(schema)}"

    def identity_clause(self, column: ColumnSchema) -> str:
        return "GENERATED BY DEFAULT AS IDENTITY"

    # ----- data -----

    def adapt_value(self, value: Any, column: ColumnSchema) -> Any:
        if isinstance(value, (dict, list)):
            return psycopg2.extras.Json(value)
        return value

    def session_disable_sql(self) -> List[str]:
        return ["SET session_replication_role = 'replica'"]

    def reset_sequences(self, cursor, schema: str, table: str, identity_columns: List[str]) -> None:
        qualified = self.qualify(schema, table)
        for column in identity_columns:
            cursor.execute(
                f"SELECT setval(pg_get_serial_sequence(%s, %s), "
                f"COALESCE((SELECT MAX({self.quote(column)}) FROM {qualified}), 0) + 1, false)",
                (qualified, column))
            logger.debug(f"Reset sequence for {schema}.{table}.{column}")


def _strip_cast(default: Optional[str]) -> Optional[str]:
    """'abc'::character varying -> 'abc'"""
    if not default:
        return default
    return re.sub(r"::[\w\s]+(\[\])?$", "", default).strip()


def _parse_index_definition(definition: str):
    match = _INDEX_COLUMNS.search(definition or '')
    if not match:
        return [], [], None
    columns = [c.strip().strip('"') for c in match.group(1).split(',') if c.strip()]
    included = [c.strip().strip('"') for c in (match.group(2) or '').split(',') if c.strip()]
    predicate = match.group(3).strip() if match.group(3) else None
    return columns, included, predicate


def create_bundle():
    return build_bundle(PostgreSQLAdapter())
