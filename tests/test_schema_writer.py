#!/usr/bin/env python3
"""
DDL generation tests for the engine adapters, rendered into a SqlCollector.
"""

import asyncio

import pytest

from schemaforge.core.errors import ObjectMigrationError
from schemaforge.core.naming import NamingConverter
from schemaforge.core.registry import ProviderContext
from schemaforge.core.schema_ir import (
    ColumnSchema,
    ConstraintSchema,
    ConstraintType,
    ForeignKeySchema,
    SqlCategory,
    TableSchema,
    ViewSchema,
)
from schemaforge.core.sql_sink import SqlCollector
from schemaforge.extensions.plugins import mysql_adapter, oracle_adapter, postgresql_adapter, sqlserver_adapter

from conftest import make_table


def writer_for(module, context):
    return module.create_bundle().schema_writer(context)


def context_for(source, target, **kwargs):
    return ProviderContext(source_type=source, target_type=target, naming=NamingConverter(target),
                           source_schema=kwargs.pop("source_schema", "dbo"), **kwargs)


def statements(collector, category):
    return [s.sql for s in collector.get_statements() if s.category == category]


class FailingSink(SqlCollector):
    """Collector that raises for statements containing a marker"""

    def __init__(self, marker):
        super().__init__()
        self.marker = marker

    async def execute(self, sql, category, object_name=None):
        if self.marker in sql:
            raise RuntimeError("relation does not exist")
        await super().execute(sql, category, object_name)


class TestPostgresTarget:

    @pytest.fixture
    def writer(self, postgres_context):
        return writer_for(postgresql_adapter, postgres_context)

    def test_create_table(self, writer, customer_table):
        collector = SqlCollector()
        asyncio.run(writer.create_schema(collector, "public", [customer_table]))

        assert statements(collector, SqlCategory.SCHEMA) == []
        assert statements(collector, SqlCategory.TABLES) == [
            'CREATE TABLE IF NOT EXISTS "public"."customers" (\n'
            '    "customer_id" integer GENERATED BY DEFAULT AS IDENTITY NOT NULL,\n'
            '    "full_name" character varying(100) NOT NULL,\n'
            '    "notes" text,\n'
            '    "is_active" boolean DEFAULT TRUE NOT NULL,\n'
            '    "created_at" timestamp without time zone DEFAULT NOW(),\n'
            '    "balance" numeric(12,2),\n'
            '    CONSTRAINT "pk_customers" PRIMARY KEY ("customer_id")\n'
            ')'
        ]
        assert statements(collector, SqlCategory.COMMENT) == ["-- PostgreSQL Schema: public"]

    def test_named_schema_created(self, writer):
        collector = SqlCollector()
        asyncio.run(writer.create_schema(collector, "sales", []))

        assert statements(collector, SqlCategory.SCHEMA) == ['CREATE SCHEMA IF NOT EXISTS "sales"']

    def test_foreign_keys(self, writer):
        collector = SqlCollector()
        tables = [make_table("Customers"), make_table("Orders", ["Customers"])]
        asyncio.run(writer.create_schema(collector, "public", tables))

        assert statements(collector, SqlCategory.FOREIGN_KEYS) == [
            'ALTER TABLE "public"."orders" ADD CONSTRAINT "fk_orders_customers" '
            'FOREIGN KEY ("customers_id") REFERENCES "public"."customers" ("id")'
        ]

    def test_foreign_keys_can_be_left_out(self, writer):
        collector = SqlCollector()
        tables = [make_table("Customers"), make_table("Orders", ["Customers"])]
        asyncio.run(writer.create_schema(collector, "public", tables, include_foreign_keys=False))

        assert collector.count(SqlCategory.FOREIGN_KEYS) == 0
        assert collector.count(SqlCategory.TABLES) == 2

    def test_composite_foreign_key_is_one_statement(self, writer):
        columns = [ColumnSchema(name="Id", data_type="int"), ColumnSchema(name="OrderId", data_type="int"),
                   ColumnSchema(name="LineNo", data_type="int")]
        table = TableSchema(schema_name="dbo", table_name="Shipments", columns=columns, foreign_keys=[
            ForeignKeySchema("FK_Shipments_Lines", "OrderId", "dbo", "OrderLines", "OrderId"),
            ForeignKeySchema("FK_Shipments_Lines", "LineNo", "dbo", "OrderLines", "LineNo"),
        ])

        fks = list(writer.foreign_key_sql("public", table))

        assert fks == [("fk_shipments_lines",
                        'ALTER TABLE "public"."shipments" ADD CONSTRAINT "fk_shipments_lines" '
                        'FOREIGN KEY ("order_id", "line_no") REFERENCES "public"."order_lines" '
                        '("order_id", "line_no")')]

    def test_indexes_skip_primary_key(self, writer, customer_table):
        collector = SqlCollector()
        asyncio.run(writer.create_indexes(collector, "public", customer_table.indexes))

        assert statements(collector, SqlCategory.INDEXES) == [
            'CREATE INDEX "ix_customers_full_name" ON "public"."customers" ("full_name") '
            'INCLUDE ("notes") WHERE ("is_active"=(1))'
        ]

    def test_constraints(self, writer, customer_table):
        collector = SqlCollector()
        asyncio.run(writer.create_constraints(collector, "public", customer_table.constraints))

        assert statements(collector, SqlCategory.CONSTRAINTS) == [
            'ALTER TABLE "public"."customers" ADD CONSTRAINT "ck_customers_balance" CHECK ("balance">=(0))',
            'ALTER TABLE "public"."customers" ADD CONSTRAINT "uq_customers_full_name" UNIQUE ("full_name")',
            'ALTER TABLE "public"."customers" ALTER COLUMN "is_active" SET DEFAULT TRUE',
        ]

    def test_incomplete_constraint_skipped(self, writer):
        collector = SqlCollector()
        broken = ConstraintSchema(name="CK_Empty", table_name="T", schema_name="dbo", type=ConstraintType.CHECK)
        asyncio.run(writer.create_constraints(collector, "public", [broken]))

        assert collector.count(SqlCategory.CONSTRAINTS) == 0

    def test_view_converted_and_renamed(self, writer, customer_table, active_customers_view):
        collector = SqlCollector()
        asyncio.run(writer.create_views(collector, "public", [active_customers_view], source_tables=[customer_table]))

        assert statements(collector, SqlCategory.VIEWS) == [
            'CREATE OR REPLACE VIEW "public"."active_customers" AS SELECT "full_name", NOW() AS "as_of" '
            'FROM "public"."customers" WHERE "is_active" = TRUE'
        ]

    def test_view_literals_kept_and_columns_after_qualified_table_renamed(self, writer, customer_table):
        view = ViewSchema(schema_name="dbo", name="OpenCustomers",
                          definition="SELECT [FullName] FROM [dbo].[Customers] "
                                     "WHERE [Status] = 'Open Now' AND [IsActive] = 1")
        collector = SqlCollector()
        asyncio.run(writer.create_views(collector, "public", [view], source_tables=[customer_table]))

        assert statements(collector, SqlCategory.VIEWS) == [
            'CREATE OR REPLACE VIEW "public"."open_customers" AS SELECT "full_name" FROM "public"."customers" '
            'WHERE "status" = \'Open Now\' AND "is_active" = TRUE'
        ]

    def test_view_alias_qualified_columns_renamed(self, writer, customer_table):
        view = ViewSchema(schema_name="dbo", name="CustomerNames",
                          definition="SELECT [c].[FullName] FROM [dbo].[Customers] [c] WHERE [c].[Notes] <> 'It''s Fine'")
        collector = SqlCollector()
        asyncio.run(writer.create_views(collector, "public", [view], source_tables=[customer_table]))

        assert statements(collector, SqlCategory.VIEWS) == [
            'CREATE OR REPLACE VIEW "public"."customer_names" AS SELECT "c"."full_name" '
            'FROM "public"."customers" "c" WHERE "c"."notes" <> \'It\'\'s Fine\''
        ]

    def test_check_literal_not_renamed(self, writer):
        check = ConstraintSchema(name="CK_Status", table_name="Customers", schema_name="dbo",
                                 type=ConstraintType.CHECK,
                                 check_expression="([Status] IN ('Open', 'ClosedNow'))")

        assert writer.constraint_sql("public", check) == (
            'ALTER TABLE "public"."customers" ADD CONSTRAINT "ck_status" '
            'CHECK ("status" IN (\'Open\', \'ClosedNow\'))'
        )

    def test_unconvertible_expression_used_unchanged(self):
        context = context_for("db2", "postgres")
        writer = writer_for(postgresql_adapter, context)
        check = ConstraintSchema(name="CK_Qty", table_name="Items", schema_name="dbo",
                                 type=ConstraintType.CHECK, check_expression="Qty > 0")

        assert writer.constraint_sql("public", check) == \
            'ALTER TABLE "public"."items" ADD CONSTRAINT "ck_qty" CHECK (Qty > 0)'


class TestErrorHandling:

    def test_failed_foreign_key_recorded_and_skipped(self, postgres_context):
        writer = writer_for(postgresql_adapter, postgres_context)
        sink = FailingSink("FOREIGN KEY")
        tables = [make_table("Customers"), make_table("Orders", ["Customers"])]

        asyncio.run(writer.create_schema(sink, "public", tables))

        assert postgres_context.failures == ["foreign keys: fk_orders_customers"]
        assert sink.count(SqlCategory.TABLES) == 2

    def test_failed_object_raises_when_errors_not_tolerated(self):
        context = context_for("sqlserver", "postgres", continue_on_error=False)
        writer = writer_for(postgresql_adapter, context)

        with pytest.raises(ObjectMigrationError) as exc:
            asyncio.run(writer.create_schema(FailingSink("FOREIGN KEY"), "public",
                                             [make_table("Customers"), make_table("Orders", ["Customers"])]))

        assert exc.value.phase == "foreign keys"
        assert exc.value.object_name == "fk_orders_customers"

    def test_failed_table_is_always_fatal(self, postgres_context):
        writer = writer_for(postgresql_adapter, postgres_context)

        with pytest.raises(ObjectMigrationError):
            asyncio.run(writer.create_schema(FailingSink("CREATE TABLE"), "public", [make_table("Customers")]))


class TestMySQLTarget:

    @pytest.fixture
    def writer(self):
        return writer_for(mysql_adapter, context_for("sqlserver", "mysql"))

    def test_create_table(self, writer, customer_table):
        sql = writer.create_table_sql("sales", customer_table)

        assert sql.startswith("CREATE TABLE IF NOT EXISTS `sales`.`customers` (\n")
        assert "    `customer_id` INT AUTO_INCREMENT NOT NULL," in sql
        assert "    `notes` TEXT," in sql
        assert "    `is_active` TINYINT(1) DEFAULT 1 NOT NULL," in sql
        assert "    `created_at` DATETIME DEFAULT NOW()," in sql

    def test_schema_is_a_database(self, writer):
        collector = SqlCollector()
        asyncio.run(writer.create_schema(collector, "sales", []))

        assert statements(collector, SqlCategory.SCHEMA) == ["CREATE DATABASE IF NOT EXISTS `sales`"]

    def test_index_without_include_or_filter(self, writer, customer_table):
        assert writer.index_sql("sales", customer_table.indexes[1]) == \
            "CREATE INDEX `ix_customers_full_name` ON `sales`.`customers` (`full_name`)"

    def test_default_constraint(self, writer, customer_table):
        assert writer.constraint_sql("sales", customer_table.constraints[2]) == \
            "ALTER TABLE `sales`.`customers` ALTER COLUMN `is_active` SET DEFAULT 1"

    def test_expression_default_parenthesised(self, writer):
        default = ConstraintSchema(name="DF_Orders_Created", table_name="Orders", schema_name="dbo",
                                   type=ConstraintType.DEFAULT, columns=["CreatedAt"],
                                   default_expression="(getdate())", column_data_type="datetime")

        assert writer.constraint_sql("sales", default) == \
            "ALTER TABLE `sales`.`orders` ALTER COLUMN `created_at` SET DEFAULT (NOW())"


class TestSqlServerTarget:

    @pytest.fixture
    def writer(self):
        return writer_for(sqlserver_adapter, context_for("postgres", "sqlserver", source_schema="public"))

    @pytest.fixture
    def order_items(self):
        return TableSchema(schema_name="public", table_name="order_items", columns=[
            ColumnSchema(name="id", data_type="integer", is_nullable=False, is_identity=True),
            ColumnSchema(name="status", data_type="character varying", max_length=20, default_value="'new'"),
        ], primary_keys=["id"])

    def test_create_table(self, writer, order_items):
        assert writer.create_table_sql("dbo", order_items) == (
            "IF OBJECT_ID(N'[dbo].[OrderItems]', N'U') IS NULL\n"
            "CREATE TABLE [dbo].[OrderItems] (\n"
            "    [Id] INT IDENTITY(1,1) NOT NULL,\n"
            "    [Status] VARCHAR(20) DEFAULT 'new',\n"
            "    CONSTRAINT [PkOrderItems] PRIMARY KEY ([Id])\n"
            ")"
        )

    def test_schema_created_unless_dbo(self, writer):
        collector = SqlCollector()
        asyncio.run(writer.create_schema(collector, "dbo", []))
        asyncio.run(writer.create_schema(collector, "sales", []))

        assert statements(collector, SqlCategory.SCHEMA) == [
            "IF NOT EXISTS (SELECT 1 FROM sys.schemas WHERE name = N'sales') EXEC('CREATE SCHEMA [sales]')"
        ]

    def test_default_constraint(self, writer):
        default = ConstraintSchema(name="df_status", table_name="order_items", schema_name="public",
                                   type=ConstraintType.DEFAULT, columns=["status"], default_expression="'new'")

        assert writer.constraint_sql("dbo", default) == \
            "ALTER TABLE [dbo].[OrderItems] ADD CONSTRAINT [DfStatus] DEFAULT 'new' FOR [Status]"

    def test_view(self, writer, order_items):
        view = ViewSchema(schema_name="public", name="active_items",
                          definition='SELECT "id", NOW() AS "as_of" FROM "public"."order_items"')
        collector = SqlCollector()
        asyncio.run(writer.create_views(collector, "dbo", [view], source_tables=[order_items]))

        assert statements(collector, SqlCategory.VIEWS) == [
            "CREATE OR ALTER VIEW [dbo].[ActiveItems] AS SELECT [Id], GETDATE() AS [AsOf] FROM [dbo].[OrderItems]"
        ]


class TestOracleTarget:

    @pytest.fixture
    def writer(self):
        return writer_for(oracle_adapter, context_for("sqlserver", "oracle"))

    def test_create_table(self, writer, customer_table):
        sql = writer.create_table_sql("APP", customer_table)

        assert sql.startswith('CREATE TABLE "APP"."CUSTOMERS" (\n')
        assert '    "CUSTOMERID" NUMBER(10) GENERATED BY DEFAULT AS IDENTITY NOT NULL,' in sql
        assert '    "NOTES" CLOB,' in sql
        assert '    "ISACTIVE" NUMBER(3) DEFAULT 1 NOT NULL,' in sql
        assert '    "CREATEDAT" TIMESTAMP DEFAULT SYSDATE,' in sql
        assert 'CONSTRAINT "PK_CUSTOMERS" PRIMARY KEY ("CUSTOMERID")' in sql

    def test_schema_never_created(self, writer):
        collector = SqlCollector()
        asyncio.run(writer.create_schema(collector, "APP", []))

        assert collector.count(SqlCategory.SCHEMA) == 0

    def test_default_constraint(self, writer, customer_table):
        assert writer.constraint_sql("APP", customer_table.constraints[2]) == \
            'ALTER TABLE "APP"."CUSTOMERS" MODIFY ("ISACTIVE" DEFAULT 1)'

    def test_index_unfiltered(self, writer, customer_table):
        assert writer.index_sql("APP", customer_table.indexes[1]) == \
            'CREATE INDEX "IX_CUSTOMERS_FULLNAME" ON "APP"."CUSTOMERS" ("FULLNAME")'
