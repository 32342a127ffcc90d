#!/usr/bin/env python3
"""
SchemaForge Bulk Data Migrator
==============================

Copies table rows from the source engine to the target engine in
offset-based batches.

Live mode brackets the whole table set with the target writer's
disable/enable constraint calls; the enable call sits in a ``finally`` so
it runs after failures and after cancellation as well. A failing table is
logged and skipped, and once constraints are back on a single
DataMigrationError names every table that failed.

When the sink is a collecting SqlCollector the migrator runs in capture
mode instead: nothing is written, and a handful of sample rows per table
are rendered as INSERT statements for the dry-run script. A table whose
samples cannot be read gets a comment in the script instead.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from schemaforge.core.dialects import get_dialect
from schemaforge.core.errors import (
    DataMigrationError,
    MigrationCancelled,
    MigrationInputError,
    check_cancelled,
)
from schemaforge.core.registry import ProviderContext, ProviderRegistry
from schemaforge.core.schema_ir import ColumnSchema, SqlCategory, TableSchema
from schemaforge.core.sql_sink import SqlSink
from schemaforge.core.type_registry import normalize_column

logger = logging.getLogger(__name__)

NUMERIC_TYPES = {
    'int', 'integer', 'bigint', 'smallint', 'tinyint', 'mediumint', 'decimal', 'numeric',
    'float', 'double', 'double precision', 'real', 'money', 'smallmoney', 'number',
    'binary_float', 'binary_double', 'serial', 'bigserial',
}
BOOLEAN_TYPES = {'bit', 'boolean', 'bool'}
GUID_TYPES = {'uniqueidentifier', 'uuid'}


def _base_type(column: ColumnSchema) -> str:
    return normalize_column(column).data_type


def format_value(value: Any, column: ColumnSchema) -> str:
    """Render a Python value as a SQL literal for the column's type family"""
    if value is None:
        return "NULL"

    data_type = _base_type(column)

    if data_type in NUMERIC_TYPES:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        return str(value).strip()

    if data_type in BOOLEAN_TYPES:
        if isinstance(value, str):
            truthy = value.strip().lower() in ('1', 'true', 't', 'y', 'yes')
        else:
            truthy = bool(value)
        return "TRUE" if truthy else "FALSE"

    if 'date' in data_type or 'time' in data_type:
        if isinstance(value, datetime):
            return f"'{value.strftime('%Y-%m-%d %H:%M:%S')}'"
        if isinstance(value, date):
            return f"'{datetime.combine(value, time()).strftime('%Y-%m-%d %H:%M:%S')}'"
        if isinstance(value, time):
            return f"'{value.strftime('%H:%M:%S')}'"

    if 'binary' in data_type or 'blob' in data_type or data_type in ('bytea', 'raw', 'image', 'varbinary'):
        if isinstance(value, (bytes, bytearray, memoryview)):
            return f"0x{bytes(value).hex().upper()}"

    if data_type in GUID_TYPES:
        return f"'{value}'"

    text = str(value).replace("'", "''")
    return f"'{text}'"


def row_value(row: Dict[str, Any], column_name: str) -> Any:
    if column_name in row:
        return row[column_name]
    lowered = column_name.lower()
    for key, value in row.items():
        if key.lower() == lowered:
            return value
    return None


class BulkDataMigrator:
    """Batched row transfer between two registered engines"""

    def __init__(self, registry: ProviderRegistry, context: ProviderContext,
                 sink: Optional[SqlSink] = None, cancel_event=None):
        self.registry = registry
        self.context = context
        self.sink = sink
        self.cancel_event = cancel_event

    @property
    def capturing(self) -> bool:
        return self.sink is not None and self.sink.is_collecting

    async def migrate_data(self, source_type: str, target_type: str,
                           source_connection: str, target_connection: str,
                           target_schema: str, tables: List[TableSchema], batch_size: int) -> None:
        """
        Transfer rows for ``tables`` in the given (dependency) order.

        In capture mode ``batch_size`` is the number of sample rows rendered
        per table.
        """
        if not source_type or not source_type.strip():
            raise MigrationInputError("Source database type must not be empty")
        if not target_type or not target_type.strip():
            raise MigrationInputError("Target database type must not be empty")
        if not isinstance(batch_size, int) or isinstance(batch_size, bool) or batch_size < 1:
            raise MigrationInputError(f"Batch size must be a positive integer, got {batch_size!r}")

        logger.info("Starting data migration...")
        data_reader = self.registry.get(source_type).data_reader(self.context)

        if self.capturing:
            self.sink.add_comment("Data Migration (sample INSERT statements)")
            await self._generate_samples(data_reader, source_connection, target_type,
                                         target_schema, tables, batch_size)
            logger.info("Data migration samples generated")
            return

        data_writer = self.registry.get(target_type).data_writer(self.context)
        await data_writer.disable_constraints(target_connection)

        failed_tables: List[str] = []
        try:
            for table in tables:
                check_cancelled(self.cancel_event, f"table {table.qualified_name}")
                try:
                    await self._migrate_table(data_reader, data_writer, source_connection,
                                              target_connection, target_schema, table, batch_size)
                except MigrationCancelled:
                    raise
                except Exception as e:
                    logger.error(f"Failed to migrate data for table {table.qualified_name}: {e}. "
                                 f"Continuing with remaining tables.")
                    failed_tables.append(table.qualified_name)

            if failed_tables:
                raise DataMigrationError(failed_tables)
        finally:
            try:
                await data_writer.enable_constraints(target_connection)
            except Exception as e:
                logger.error(f"Failed to re-enable constraints after data migration: {e}. "
                             f"Manual intervention may be required.")
                self.context.record_failure("data", "re-enable constraints")

        logger.info("Data migration completed")

    async def _migrate_table(self, data_reader, data_writer, source_connection: str,
                             target_connection: str, target_schema: str,
                             table: TableSchema, batch_size: int) -> None:
        logger.info(f"Migrating table: {table.qualified_name}")
        total = await data_reader.get_row_count(source_connection, table)
        logger.info(f"  Total records: {total}")
        if total == 0:
            return

        offset = 0
        while offset < total:
            check_cancelled(self.cancel_event, f"batch {table.qualified_name}@{offset}")
            rows = await data_reader.fetch_batch(source_connection, table, offset, batch_size)
            if not rows:
                break
            await data_writer.bulk_insert(target_connection, target_schema, table, rows)
            # Advance by what actually arrived so a short final batch ends the loop correctly
            offset += len(rows)
            logger.info(f"  Migrated {offset}/{total} records")
            if len(rows) < batch_size:
                break

        await data_writer.reset_sequences(target_connection, target_schema, table)

    async def _generate_samples(self, data_reader, source_connection: str, target_type: str,
                                target_schema: str, tables: List[TableSchema], sample_size: int) -> None:
        naming = self.context.naming
        dialect = get_dialect(target_type)

        for table in tables:
            check_cancelled(self.cancel_event, f"table {table.qualified_name}")
            table_name = naming.to_target_name(table.table_name)
            try:
                await self._sample_table(data_reader, source_connection, dialect, target_schema,
                                         table, table_name, sample_size)
            except MigrationCancelled:
                raise
            except Exception as e:
                logger.warning(f"Could not read sample rows for {table.qualified_name}: {e}")
                self.sink.add_comment(f"Table {table_name}: sample rows unavailable ({e})")

    async def _sample_table(self, data_reader, source_connection: str, dialect, target_schema: str,
                            table: TableSchema, table_name: str, sample_size: int) -> None:
        naming = self.context.naming
        qualified = f"{dialect.quote(target_schema)}.{dialect.quote(table_name)}"

        total = await data_reader.get_row_count(source_connection, table)
        if total == 0:
            self.sink.add_comment(f"Table {table_name}: No data (0 rows)")
            return

        rows = await data_reader.fetch_batch(source_connection, table, 0, sample_size)
        # Render everything first so a bad value leaves no partial sample behind
        columns = ", ".join(dialect.quote(naming.to_target_name(c.name)) for c in table.columns)
        inserts = [
            f"INSERT INTO {qualified} ({columns}) VALUES "
            f"({', '.join(format_value(row_value(row, c.name), c) for c in table.columns)})"
            for row in rows
        ]
        self.sink.add_comment(f"Table {table_name}: {len(rows)} sample rows (total: {total} rows)")
        for sql in inserts:
            await self.sink.execute(sql, SqlCategory.DATA, table_name)
