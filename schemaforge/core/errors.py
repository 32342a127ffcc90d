#!/usr/bin/env python3
"""
SchemaForge Error Hierarchy
Canonical exception classes for the migration engine.
"""

import re
from enum import Enum
from typing import List, Optional

_CREDENTIAL_PATTERN = re.compile(r'://([^:/@]+):([^@]+)@')


def sanitize_error(message) -> str:
    """Mask credentials in connection strings embedded in error text"""
    return _CREDENTIAL_PATTERN.sub(r'://\1:***@', str(message))


class ErrorCode(Enum):
    UNKNOWN = "UNKNOWN_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    UNSUPPORTED_DIALECT = "UNSUPPORTED_DIALECT"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    OBJECT_FAILED = "OBJECT_FAILED"
    DATA_FAILED = "DATA_MIGRATION_FAILED"
    PHASE_FAILED = "PHASE_FAILED"
    CANCELLED = "CANCELLED"


class SchemaForgeError(Exception):
    """Base class for all SchemaForge exceptions"""
    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN, details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class MigrationInputError(SchemaForgeError, ValueError):
    """Raised when arguments are rejected before any I/O happens"""
    def __init__(self, message: str, details: dict = None, code: ErrorCode = ErrorCode.INVALID_INPUT):
        super().__init__(message, code, details)


class UnsupportedDialectError(MigrationInputError):
    """Raised for an engine key with no dialect descriptor"""
    def __init__(self, key: str, supported: List[str]):
        message = f"Unsupported database type '{key}'. Supported: {', '.join(supported)}"
        super().__init__(message, {'key': key, 'supported': list(supported)},
                         ErrorCode.UNSUPPORTED_DIALECT)
        self.key = key


class UnknownProviderError(MigrationInputError):
    """Raised when no provider bundle is registered for an engine key"""
    def __init__(self, key: str, known: List[str]):
        message = f"No provider registered for '{key}'. Registered: {', '.join(known) or '(none)'}"
        super().__init__(message, {'key': key, 'known': list(known)},
                         ErrorCode.UNKNOWN_PROVIDER)
        self.key = key


class ConnectionFailedError(SchemaForgeError):
    """Raised when a database connection cannot be opened"""
    def __init__(self, engine: str, cause: Exception):
        super().__init__(f"Failed to connect to {engine}: {sanitize_error(cause)}",
                         ErrorCode.CONNECTION_FAILED, {'engine': engine})
        self.engine = engine


class ObjectMigrationError(SchemaForgeError):
    """Raised when a single schema object fails inside a phase"""
    def __init__(self, phase: str, object_name: str, cause: Optional[Exception] = None):
        message = f"{phase}: failed on {object_name}"
        if cause is not None:
            message = f"{message}: {sanitize_error(cause)}"
        super().__init__(message, ErrorCode.OBJECT_FAILED,
                         {'phase': phase, 'object': object_name})
        self.phase = phase
        self.object_name = object_name


class DataMigrationError(SchemaForgeError):
    """Aggregate failure raised after constraints have been re-enabled"""
    def __init__(self, failed_tables: List[str]):
        super().__init__(f"Data migration failed for tables: {', '.join(failed_tables)}",
                         ErrorCode.DATA_FAILED, {'failed_tables': list(failed_tables)})
        self.failed_tables = list(failed_tables)


class PhaseError(SchemaForgeError):
    """Raised when a migration phase fails and errors are not tolerated"""
    def __init__(self, phase: str, cause: Exception):
        super().__init__(f"Phase '{phase}' failed: {sanitize_error(cause)}",
                         ErrorCode.PHASE_FAILED, {'phase': phase})
        self.phase = phase


class MigrationCancelled(SchemaForgeError):
    """Raised when a cancel signal is observed at a phase, table or batch boundary"""
    def __init__(self, where: str = ""):
        message = "Migration cancelled" + (f" at {where}" if where else "")
        super().__init__(message, ErrorCode.CANCELLED, {'where': where})


def check_cancelled(cancel_event, where: str = "") -> None:
    """Raise MigrationCancelled when the cancel event has been set"""
    if cancel_event is not None and cancel_event.is_set():
        raise MigrationCancelled(where)
