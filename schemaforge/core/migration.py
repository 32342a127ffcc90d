"""
SchemaForge Migration Orchestrator
==================================

Runs a migration as six sequential phases:

1. read      - source tables (and views, when enabled), then dependency sort
2. schema    - target tables and foreign keys
3. data      - batched row copy
4. indexes   - non primary-key indexes
5. constraints - check / unique / default constraints
6. views     - dialect-converted view definitions

Each phase after the read can be switched off. A failed phase is logged
with its name; it stops the run only when continue_on_error is off. The
dry-run entry point executes the same phases against a SqlCollector and
returns the generated script.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List, Optional

from schemaforge.config.settings import MigrationOptions, MigrationSettings, describe_connection
from schemaforge.core.data_migrator import BulkDataMigrator
from schemaforge.core.dependency_sorter import TableDependencySorter
from schemaforge.core.errors import (
    DataMigrationError,
    MigrationCancelled,
    PhaseError,
    check_cancelled,
    sanitize_error,
)
from schemaforge.core.naming import NamingConverter
from schemaforge.core.registry import ProviderContext, ProviderRegistry, default_registry
from schemaforge.core.schema_ir import SqlCategory, SqlStatement, TableSchema, ViewSchema
from schemaforge.core.sql_sink import ConnectionSink, SqlCollector

logger = logging.getLogger(__name__)


class MigrationState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PhaseStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class PhaseOutcome:
    name: str
    status: PhaseStatus
    error: Optional[str] = None


@dataclass
class MigrationReport:
    state: MigrationState = MigrationState.NOT_STARTED
    phases: List[PhaseOutcome] = field(default_factory=list)
    failed_objects: List[str] = field(default_factory=list)
    tables_read: int = 0
    views_read: int = 0
    elapsed_seconds: float = 0.0

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_objects) or any(p.status == PhaseStatus.FAILED for p in self.phases)

    def phase(self, name: str) -> Optional[PhaseOutcome]:
        for outcome in self.phases:
            if outcome.name == name:
                return outcome
        return None


@dataclass
class DryRunSummary:
    table_count: int = 0
    index_count: int = 0
    constraint_count: int = 0
    view_count: int = 0
    foreign_key_count: int = 0
    total_statements: int = 0


@dataclass
class DryRunResult:
    statements: List[SqlStatement]
    script: str
    summary: DryRunSummary
    report: MigrationReport
    output_path: Optional[str] = None


def filter_tables(tables: List[TableSchema], include: List[str], exclude: List[str]) -> List[TableSchema]:
    """Apply include/exclude lists by table name (or schema.table), case-insensitively"""
    def matches(table: TableSchema, names: set) -> bool:
        return table.table_name.lower() in names or table.qualified_name.lower() in names

    result = list(tables)
    if include:
        wanted = {name.lower() for name in include}
        result = [t for t in result if matches(t, wanted)]
    if exclude:
        unwanted = {name.lower() for name in exclude}
        result = [t for t in result if not matches(t, unwanted)]
    return result


class MigrationOrchestrator:
    """Coordinates readers, writers and the data migrator for one source/target pair"""

    def __init__(self, settings: MigrationSettings, registry: Optional[ProviderRegistry] = None,
                 sorter: Optional[TableDependencySorter] = None,
                 naming: Optional[NamingConverter] = None):
        self.settings = settings
        self.registry = registry or default_registry()
        self.sorter = sorter or TableDependencySorter()
        self.naming = naming or NamingConverter.from_settings(settings)
        self.state = MigrationState.NOT_STARTED

    async def execute_migration(self, options: Optional[MigrationOptions] = None,
                                cancel_event=None) -> MigrationReport:
        options = options or MigrationOptions()
        collector = SqlCollector(True, options.dry_run.include_comments) if options.dry_run.enabled else None
        return await self._run(options, collector, cancel_event)

    async def execute_dry_run(self, options: Optional[MigrationOptions] = None,
                              cancel_event=None) -> DryRunResult:
        options = options or MigrationOptions()
        options = replace(options, dry_run=replace(options.dry_run, enabled=True))
        collector = SqlCollector(True, options.dry_run.include_comments)

        logger.info("=== DRY RUN MODE ===")
        logger.info("Generating SQL without executing...")
        report = await self._run(options, collector, cancel_event)

        statements = collector.get_statements()
        script = collector.get_script()
        summary = DryRunSummary(
            table_count=collector.count(SqlCategory.TABLES),
            index_count=collector.count(SqlCategory.INDEXES),
            constraint_count=collector.count(SqlCategory.CONSTRAINTS),
            view_count=collector.count(SqlCategory.VIEWS),
            foreign_key_count=collector.count(SqlCategory.FOREIGN_KEYS),
            total_statements=sum(1 for s in statements if s.category != SqlCategory.COMMENT),
        )

        output_path = options.dry_run.output_path
        if output_path:
            path = Path(output_path)
            if path.parent and not path.parent.exists():
                path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(script, encoding='utf-8')
            logger.info(f"Dry run SQL written to: {output_path}")

        logger.info("=== DRY RUN COMPLETE ===")
        logger.info(f"Generated {summary.total_statements} SQL statements")
        return DryRunResult(statements=statements, script=script, summary=summary,
                            report=report, output_path=output_path)

    # ------------------------------------------------------------------

    async def _run(self, options: MigrationOptions, collector: Optional[SqlCollector],
                   cancel_event) -> MigrationReport:
        report = MigrationReport()
        started = time.monotonic()
        self._log_plan(options)

        source = self.registry.get(self.settings.source_type)
        target = self.registry.get(self.settings.target_type)
        context = ProviderContext(
            source_type=source.key,
            target_type=target.key,
            naming=self.naming,
            source_schema=self.settings.source_schema or source.default_schema,
            continue_on_error=options.continue_on_error,
        )
        schema_reader = source.schema_reader(context)
        schema_writer = target.schema_writer(context)

        @asynccontextmanager
        async def open_sink():
            if collector is not None:
                yield collector
                return
            loop = asyncio.get_running_loop()
            connection = await loop.run_in_executor(None, target.connect, self.settings.target_connection)
            try:
                yield ConnectionSink(connection)
            finally:
                connection.close()

        self.state = report.state = MigrationState.RUNNING
        tables: List[TableSchema] = []
        views: List[ViewSchema] = []
        target_schema = self.settings.target_schema

        try:
            # Phase 1 is never skipped and a read failure ends the run
            check_cancelled(cancel_event, "phase read")
            logger.info("Step 1: Reading source schema...")
            tables = await schema_reader.read_tables(self.settings.source_connection,
                                                     options.include_tables or None,
                                                     options.exclude_tables or None)
            tables = filter_tables(tables, options.include_tables, options.exclude_tables)
            tables = self.sorter.sort_by_dependencies(tables)
            if options.migrate_views:
                views = await schema_reader.read_views(self.settings.source_connection)
            report.tables_read, report.views_read = len(tables), len(views)
            report.phases.append(PhaseOutcome("read", PhaseStatus.COMPLETED))

            async def create_schema():
                async with open_sink() as sink:
                    await schema_writer.create_schema(sink, target_schema, tables,
                                                      include_foreign_keys=options.migrate_foreign_keys)

            async def migrate_data():
                if collector is not None:
                    if not options.dry_run.include_data_samples:
                        logger.info("Data samples disabled for dry run")
                        return
                    batch_size = options.dry_run.sample_row_count
                else:
                    batch_size = options.effective_batch_size(self.settings)
                migrator = BulkDataMigrator(self.registry, context, sink=collector, cancel_event=cancel_event)
                await migrator.migrate_data(source.key, target.key,
                                            self.settings.source_connection, self.settings.target_connection,
                                            target_schema, tables, batch_size)

            async def create_indexes():
                indexes = [index for table in tables for index in table.indexes if not index.is_primary_key]
                async with open_sink() as sink:
                    await schema_writer.create_indexes(sink, target_schema, indexes)

            async def create_constraints():
                constraints = [constraint for table in tables for constraint in table.constraints]
                async with open_sink() as sink:
                    await schema_writer.create_constraints(sink, target_schema, constraints)

            async def create_views():
                async with open_sink() as sink:
                    await schema_writer.create_views(sink, target_schema, views, source_tables=tables)

            phases = [
                (2, "schema", "Creating target tables", options.migrate_schema, create_schema),
                (3, "data", "Migrating data", options.migrate_data, migrate_data),
                (4, "indexes", "Creating indexes", options.migrate_indexes, create_indexes),
                (5, "constraints", "Creating constraints", options.migrate_constraints, create_constraints),
                (6, "views", "Creating views", options.migrate_views, create_views),
            ]
            for step, name, description, enabled, action in phases:
                check_cancelled(cancel_event, f"phase {name}")
                await self._run_phase(report, step, name, description, enabled, action, options)

        except (MigrationCancelled, asyncio.CancelledError):
            self.state = report.state = MigrationState.CANCELLED
            logger.warning("Migration was cancelled")
            raise
        except Exception as e:
            self.state = report.state = MigrationState.FAILED
            logger.error(f"Migration failed: {sanitize_error(e)}")
            raise
        finally:
            report.elapsed_seconds = time.monotonic() - started
            report.failed_objects.extend(context.failures)

        self.state = report.state = MigrationState.COMPLETED
        if report.has_failures:
            logger.warning(f"Migration completed with failures: {', '.join(report.failed_objects) or 'see log'}")
        else:
            logger.info("Migration completed successfully!")
        return report

    async def _run_phase(self, report: MigrationReport, step: int, name: str, description: str,
                         enabled: bool, action, options: MigrationOptions) -> None:
        if not enabled:
            logger.info(f"Step {step}: Skipping {name} (disabled)")
            report.phases.append(PhaseOutcome(name, PhaseStatus.SKIPPED))
            return

        logger.info(f"Step {step}: {description}...")
        try:
            await action()
        except MigrationCancelled:
            raise
        except Exception as e:
            message = sanitize_error(e)
            logger.error(f"Phase '{name}' failed: {message}")
            report.phases.append(PhaseOutcome(name, PhaseStatus.FAILED, message))
            if isinstance(e, DataMigrationError):
                report.failed_objects.extend(f"data: {table}" for table in e.failed_tables)
            if not options.continue_on_error:
                raise PhaseError(name, e) from e
            return
        report.phases.append(PhaseOutcome(name, PhaseStatus.COMPLETED))

    def _log_plan(self, options: MigrationOptions) -> None:
        settings = self.settings

        def yes_no(flag: bool) -> str:
            return "Yes" if flag else "No"

        logger.info("=== Database Migration ===")
        logger.info(f"Source: {settings.source_type} ({describe_connection(settings.source_connection)})")
        logger.info(f"Target: {settings.target_type} ({describe_connection(settings.target_connection)}), "
                    f"schema: {settings.target_schema}")
        logger.info("--- Migration Options ---")
        logger.info(f"  Schema:      {yes_no(options.migrate_schema)}")
        logger.info(f"  Data:        {yes_no(options.migrate_data)}")
        logger.info(f"  Views:       {yes_no(options.migrate_views)}")
        logger.info(f"  Indexes:     {yes_no(options.migrate_indexes)}")
        logger.info(f"  Constraints: {yes_no(options.migrate_constraints)}")
        logger.info(f"  ForeignKeys: {yes_no(options.migrate_foreign_keys)}")
        if options.migrate_data:
            logger.info(f"  Batch Size:  {options.effective_batch_size(settings)}")
        logger.info("==========================")
