#!/usr/bin/env python3
"""
SchemaForge Configuration
Migration settings and options, loaded from a JSON file and SCHEMAFORGE_*
environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote, urlparse

from schemaforge.core.dialects import DatabaseTypes
from schemaforge.core.errors import MigrationInputError

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCHEMAFORGE_"
DEFAULT_BATCH_SIZE = 1000


@dataclass
class MigrationSettings:
    """Where to migrate from and to, and how to name things on the way"""

    source_type: str = DatabaseTypes.SQLSERVER
    target_type: str = DatabaseTypes.POSTGRES
    source_connection: str = ""
    target_connection: str = ""
    target_schema: str = "public"
    batch_size: int = DEFAULT_BATCH_SIZE

    # Naming
    naming_convention: str = "auto"  # auto, snake_case, pascalcase, camelcase, lowercase, uppercase, preserve
    use_target_standards: bool = True
    preserve_source_case: bool = False
    max_identifier_length: int = 0  # 0 = target engine limit

    # None = the source engine's default schema
    source_schema: Optional[str] = None

    log_level: str = "INFO"

    def validate(self) -> None:
        if not self.source_type or not self.source_type.strip():
            raise MigrationInputError("Source database type must not be empty")
        if not self.target_type or not self.target_type.strip():
            raise MigrationInputError("Target database type must not be empty")
        if not self.source_connection:
            raise MigrationInputError("Source connection string is required")
        if not self.target_connection:
            raise MigrationInputError("Target connection string is required")
        if self.batch_size < 1:
            raise MigrationInputError(f"Batch size must be positive, got {self.batch_size}")

    def get_safe_dict(self) -> Dict[str, Any]:
        """Settings as a dict with connection credentials removed"""
        return {
            'source_type': self.source_type,
            'target_type': self.target_type,
            'source': describe_connection(self.source_connection),
            'target': describe_connection(self.target_connection),
            'target_schema': self.target_schema,
            'source_schema': self.source_schema,
            'batch_size': self.batch_size,
            'naming_convention': self.naming_convention,
            'use_target_standards': self.use_target_standards,
            'preserve_source_case': self.preserve_source_case,
            'max_identifier_length': self.max_identifier_length,
        }


@dataclass
class DryRunOptions:
    enabled: bool = False
    output_path: Optional[str] = None
    include_data_samples: bool = True
    sample_row_count: int = 5
    include_comments: bool = True


@dataclass
class MigrationOptions:
    """Which phases run and how failures are treated"""

    migrate_schema: bool = True
    migrate_data: bool = True
    migrate_views: bool = True
    migrate_indexes: bool = True
    migrate_constraints: bool = True
    migrate_foreign_keys: bool = True
    data_batch_size: int = 0  # 0 = MigrationSettings.batch_size
    continue_on_error: bool = True
    include_tables: List[str] = field(default_factory=list)
    exclude_tables: List[str] = field(default_factory=list)
    dry_run: DryRunOptions = field(default_factory=DryRunOptions)

    @classmethod
    def full(cls) -> "MigrationOptions":
        return cls()

    @classmethod
    def schema_only(cls) -> "MigrationOptions":
        return cls(migrate_data=False)

    @classmethod
    def data_only(cls) -> "MigrationOptions":
        return cls(migrate_schema=False, migrate_views=False, migrate_indexes=False,
                   migrate_constraints=False, migrate_foreign_keys=False)

    @classmethod
    def tables_only(cls) -> "MigrationOptions":
        return cls(migrate_views=False, migrate_indexes=False,
                   migrate_constraints=False, migrate_foreign_keys=False)

    def effective_batch_size(self, settings: MigrationSettings) -> int:
        return self.data_batch_size if self.data_batch_size > 0 else settings.batch_size


def describe_connection(connection: str) -> str:
    """engine://host:port/database, without user or password"""
    if not connection:
        return ""
    parsed = urlparse(connection)
    if not parsed.scheme or not parsed.hostname:
        return "(unparsed connection string)"
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{parsed.hostname}{port}{parsed.path}"


def default_target_schema(target_type: str, connection: str) -> str:
    """Natural target schema for an engine: dbo, public, the URL database (MySQL) or user (Oracle)"""
    parsed = urlparse(connection or "")
    if target_type == DatabaseTypes.SQLSERVER:
        return "dbo"
    if target_type == DatabaseTypes.MYSQL:
        return parsed.path.lstrip("/") or ""
    if target_type == DatabaseTypes.ORACLE:
        return unquote(parsed.username).upper() if parsed.username else ""
    return "public"


def _coerce(value: str, current: Any) -> Any:
    if isinstance(current, bool):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(current, int):
        return int(value)
    return value


def _apply(target, values: Mapping[str, Any], section: str) -> None:
    known = {f.name for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown {section} setting '{key}'")
            continue
        setattr(target, key, value)


_ENV_SETTINGS = {
    'SOURCE_TYPE': 'source_type',
    'SOURCE': 'source_connection',
    'TARGET_TYPE': 'target_type',
    'TARGET': 'target_connection',
    'SCHEMA': 'target_schema',
    'SOURCE_SCHEMA': 'source_schema',
    'BATCH_SIZE': 'batch_size',
    'NAMING_CONVENTION': 'naming_convention',
    'LOG_LEVEL': 'log_level',
}


def load_settings(path: Optional[str] = None,
                  env: Optional[Mapping[str, str]] = None) -> Tuple[MigrationSettings, MigrationOptions]:
    """
    Build settings and options.

    Priority (highest to lowest):
    1. Environment variables (SCHEMAFORGE_*)
    2. JSON config file (sections "migration" and "options")
    3. Dataclass defaults
    """
    env = os.environ if env is None else env
    settings = MigrationSettings()
    options = MigrationOptions()

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise MigrationInputError(f"Config file not found: {config_path}")
        with open(config_path, 'r', encoding='utf-8') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise MigrationInputError(f"Invalid JSON in {config_path}: {e}") from e

        _apply(settings, data.get('migration', {}), 'migration')
        option_values = dict(data.get('options', {}))
        dry_run_values = option_values.pop('dry_run', None)
        _apply(options, option_values, 'options')
        if dry_run_values:
            _apply(options.dry_run, dry_run_values, 'dry_run')

    for suffix, attribute in _ENV_SETTINGS.items():
        raw = env.get(f"{ENV_PREFIX}{suffix}")
        if raw is None or raw == "":
            continue
        try:
            setattr(settings, attribute, _coerce(raw, getattr(settings, attribute)))
        except ValueError as e:
            raise MigrationInputError(f"Invalid value for {ENV_PREFIX}{suffix}: {raw!r}") from e

    return settings, options
