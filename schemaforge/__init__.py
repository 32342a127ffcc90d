#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SchemaForge - cross-engine schema and data migration
Exports the main components for clean imports

Version: 1.0.0
"""

from schemaforge.builder import MigrationBuilder
from schemaforge.config.settings import DryRunOptions, MigrationOptions, MigrationSettings, load_settings
from schemaforge.core.dependency_sorter import TableDependencySorter, sort_by_dependencies
from schemaforge.core.dialect_converter import SqlDialectConverter
from schemaforge.core.errors import (
    DataMigrationError,
    MigrationCancelled,
    MigrationInputError,
    PhaseError,
    SchemaForgeError,
)
from schemaforge.core.migration import DryRunResult, MigrationOrchestrator, MigrationReport
from schemaforge.core.registry import ProviderRegistry, default_registry
from schemaforge.core.sql_sink import SqlCollector
from schemaforge.core.type_registry import TypeMapper

__version__ = "1.0.0"

__all__ = [
    'MigrationBuilder',
    'MigrationSettings',
    'MigrationOptions',
    'DryRunOptions',
    'load_settings',
    'MigrationOrchestrator',
    'MigrationReport',
    'DryRunResult',
    'TableDependencySorter',
    'sort_by_dependencies',
    'SqlDialectConverter',
    'TypeMapper',
    'SqlCollector',
    'ProviderRegistry',
    'default_registry',
    'SchemaForgeError',
    'MigrationInputError',
    'DataMigrationError',
    'PhaseError',
    'MigrationCancelled',
]
