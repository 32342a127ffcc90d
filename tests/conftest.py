#!/usr/bin/env python3
"""
SchemaForge Test Configuration - PyTest Configuration and Fixtures

Shared sample schemas and in-memory fake collaborators, so the migration
engine can be exercised end to end without a database server.
"""

import os
import sys
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from schemaforge.core.naming import NamingConverter
from schemaforge.core.registry import ProviderBundle, ProviderContext, ProviderRegistry
from schemaforge.core.schema_ir import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    ForeignKeySchema,
    IndexSchema,
    SqlCategory,
    TableSchema,
    ViewSchema,
)


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: needs a live database server")


# =============================================================================
# Sample schema builders
# =============================================================================

def make_table(name: str, references: Optional[List[str]] = None, schema: str = "dbo",
               columns: Optional[List[ColumnSchema]] = None, **kwargs) -> TableSchema:
    """Table with an Id primary key and one FK per referenced table"""
    foreign_keys = [
        ForeignKeySchema(name=f"FK_{name}_{ref}", column_name=f"{ref}Id",
                         referenced_schema=schema, referenced_table=ref, referenced_column="Id")
        for ref in (references or [])
    ]
    if columns is None:
        columns = [ColumnSchema(name="Id", data_type="int", is_nullable=False, is_identity=True)]
        columns += [ColumnSchema(name=f"{ref}Id", data_type="int") for ref in (references or [])]
    return TableSchema(schema_name=schema, table_name=name, columns=columns,
                       primary_keys=["Id"], foreign_keys=foreign_keys, **kwargs)


@pytest.fixture
def order_schema() -> List[TableSchema]:
    """Departments -> Employees -> OrderHeaders -> OrderDetails <- Products, given child-first"""
    return [
        make_table("OrderDetails", ["OrderHeaders", "Products"]),
        make_table("OrderHeaders", ["Employees"]),
        make_table("Employees", ["Departments"]),
        make_table("Products"),
        make_table("Departments"),
    ]


@pytest.fixture
def customer_table() -> TableSchema:
    return TableSchema(
        schema_name="dbo",
        table_name="Customers",
        columns=[
            ColumnSchema(name="CustomerId", data_type="int", is_nullable=False, is_identity=True),
            ColumnSchema(name="FullName", data_type="nvarchar", max_length=100, is_nullable=False),
            ColumnSchema(name="Notes", data_type="nvarchar", max_length=-1),
            ColumnSchema(name="IsActive", data_type="bit", is_nullable=False, default_value="((1))"),
            ColumnSchema(name="CreatedAt", data_type="datetime2", default_value="(getdate())"),
            ColumnSchema(name="Balance", data_type="decimal", precision=12, scale=2),
        ],
        primary_keys=["CustomerId"],
        indexes=[
            IndexSchema(name="PK_Customers", table_name="Customers", schema_name="dbo",
                        columns=["CustomerId"], is_unique=True, is_primary_key=True, is_clustered=True),
            IndexSchema(name="IX_Customers_FullName", table_name="Customers", schema_name="dbo",
                        columns=["FullName"], included_columns=["Notes"],
                        filter_expression="([IsActive]=(1))"),
        ],
        constraints=[
            ConstraintSchema(name="CK_Customers_Balance", table_name="Customers", schema_name="dbo",
                             type=ConstraintType.CHECK, check_expression="([Balance]>=(0))"),
            ConstraintSchema(name="UQ_Customers_FullName", table_name="Customers", schema_name="dbo",
                             type=ConstraintType.UNIQUE, columns=["FullName"]),
            ConstraintSchema(name="DF_Customers_IsActive", table_name="Customers", schema_name="dbo",
                             type=ConstraintType.DEFAULT, columns=["IsActive"],
                             default_expression="((1))", column_data_type="bit"),
        ],
    )


@pytest.fixture
def active_customers_view() -> ViewSchema:
    return ViewSchema(schema_name="dbo", name="ActiveCustomers",
                      definition="CREATE VIEW [dbo].[ActiveCustomers] AS "
                                 "SELECT [FullName], GETDATE() AS [AsOf] FROM [dbo].[Customers] WHERE [IsActive] = 1")


@pytest.fixture
def postgres_context() -> ProviderContext:
    return ProviderContext(source_type="sqlserver", target_type="postgres",
                           naming=NamingConverter("postgres"), source_schema="dbo")


# =============================================================================
# Fake collaborators
# =============================================================================

class FakeSchemaReader:
    def __init__(self, source):
        self.source = source

    async def read_tables(self, connection, include=None, exclude=None):
        self.source.calls.append("read_tables")
        if self.source.read_error:
            raise self.source.read_error
        return list(self.source.tables)

    async def read_views(self, connection):
        self.source.calls.append("read_views")
        return list(self.source.views)


class FakeSchemaWriter:
    def __init__(self, source, context):
        self.source = source
        self.context = context

    async def _write(self, step, sink, sql, category, name):
        self.source.calls.append(step)
        if step in self.source.failing_steps:
            raise RuntimeError(f"{step} exploded")
        await sink.execute(sql, category, name)

    async def create_schema(self, sink, schema, tables, include_foreign_keys=True):
        sink.add_comment(f"Schema: {schema}")
        for table in tables:
            await self._write("create_schema", sink, f"CREATE TABLE {schema}.{table.table_name} (id int)",
                              SqlCategory.TABLES, table.table_name)
        if include_foreign_keys:
            for table in tables:
                for fk in table.foreign_keys:
                    await sink.execute(f"ALTER TABLE {table.table_name} ADD CONSTRAINT {fk.name}",
                                       SqlCategory.FOREIGN_KEYS, fk.name)

    async def create_indexes(self, sink, schema, indexes):
        self.source.calls.append("create_indexes")
        for index in indexes:
            await self._write("create_indexes", sink, f"CREATE INDEX {index.name}", SqlCategory.INDEXES, index.name)

    async def create_constraints(self, sink, schema, constraints):
        self.source.calls.append("create_constraints")
        for constraint in constraints:
            await self._write("create_constraints", sink, f"ALTER TABLE ADD CONSTRAINT {constraint.name}",
                              SqlCategory.CONSTRAINTS, constraint.name)

    async def create_views(self, sink, schema, views, source_tables=None):
        self.source.calls.append("create_views")
        self.source.view_source_tables = source_tables
        for view in views:
            await self._write("create_views", sink, f"CREATE VIEW {view.name} AS SELECT 1",
                              SqlCategory.VIEWS, view.name)


class FakeDataReader:
    def __init__(self, source):
        self.source = source

    async def get_row_count(self, connection, table):
        if table.table_name in self.source.failing_reads:
            raise RuntimeError(f"count of {table.table_name} failed")
        return len(self.source.rows.get(table.table_name, []))

    async def fetch_batch(self, connection, table, offset, limit):
        self.source.fetches.append((table.table_name, offset, limit))
        return self.source.rows.get(table.table_name, [])[offset:offset + limit]


class FakeDataWriter:
    def __init__(self, source):
        self.source = source

    async def disable_constraints(self, connection):
        self.source.calls.append("disable_constraints")

    async def enable_constraints(self, connection):
        self.source.calls.append("enable_constraints")
        if self.source.enable_error:
            raise self.source.enable_error

    async def bulk_insert(self, connection, schema, table, rows):
        self.source.calls.append(f"bulk_insert:{table.table_name}")
        if table.table_name in self.source.failing_tables:
            raise RuntimeError(f"insert into {table.table_name} failed")
        if self.source.on_insert:
            self.source.on_insert(table, rows)
        self.source.inserted.setdefault(table.table_name, []).extend(rows)

    async def reset_sequences(self, connection, schema, table):
        self.source.calls.append(f"reset_sequences:{table.table_name}")


class FakeEngine:
    """One fake engine: holds the data and records every collaborator call"""

    def __init__(self, key: str = "fake", tables=None, views=None, rows: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.key = key
        self.tables = tables or []
        self.views = views or []
        self.rows = rows or {}
        self.calls: List[str] = []
        self.fetches: List[tuple] = []
        self.inserted: Dict[str, List[Dict[str, Any]]] = {}
        self.failing_tables: set = set()
        self.failing_steps: set = set()
        self.failing_reads: set = set()
        self.enable_error: Optional[Exception] = None
        self.read_error: Optional[Exception] = None
        self.on_insert = None
        self.view_source_tables = None
        self.connection = MagicMock(name=f"{key}-connection")

    def bundle(self, default_schema: str = "dbo") -> ProviderBundle:
        return ProviderBundle(
            key=self.key,
            display_name=self.key.title(),
            schema_reader=lambda context: FakeSchemaReader(self),
            schema_writer=lambda context: FakeSchemaWriter(self, context),
            data_reader=lambda context: FakeDataReader(self),
            data_writer=lambda context: FakeDataWriter(self),
            connect=lambda url: self.connection,
            default_schema=default_schema,
        )


@pytest.fixture
def fake_engines():
    """(registry, source, target) with the fakes registered as sqlserver and postgres"""
    source = FakeEngine("sqlserver")
    target = FakeEngine("postgres")
    registry = ProviderRegistry()
    registry.register(source.bundle("dbo"))
    registry.register(target.bundle("public"))
    return registry, source, target
