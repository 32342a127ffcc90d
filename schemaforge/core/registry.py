"""
Provider registry.

Maps an engine key ("postgres", "sqlserver", ...) to the bundle of
collaborators the migration engine needs for it: schema reader, schema
writer, data reader, data writer and a connection factory. Engines are
registered explicitly; nothing is discovered by scanning modules.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from schemaforge.core.dialect_converter import SqlDialectConverter
from schemaforge.core.errors import MigrationInputError, UnknownProviderError
from schemaforge.core.naming import NamingConverter
from schemaforge.core.type_registry import TypeMapper

logger = logging.getLogger(__name__)


@dataclass
class ProviderContext:
    """Shared services handed to every collaborator a bundle builds"""
    source_type: str
    target_type: str
    naming: NamingConverter
    type_mapper: TypeMapper = field(default_factory=TypeMapper)
    converter: SqlDialectConverter = field(default_factory=SqlDialectConverter)
    source_schema: Optional[str] = None
    continue_on_error: bool = True
    # "<phase>: <object>" entries for objects skipped after a failure
    failures: List[str] = field(default_factory=list)

    def record_failure(self, phase: str, object_name: str) -> None:
        self.failures.append(f"{phase}: {object_name}")


Factory = Callable[[ProviderContext], Any]


@dataclass(frozen=True)
class ProviderBundle:
    key: str
    display_name: str
    schema_reader: Factory
    schema_writer: Factory
    data_reader: Factory
    data_writer: Factory
    connect: Callable[[str], Any]
    default_schema: str = "public"


class ProviderRegistry:
    """Engine key -> ProviderBundle"""

    def __init__(self):
        self._bundles: Dict[str, ProviderBundle] = {}
        self._lock = threading.Lock()

    def register(self, bundle: ProviderBundle, replace: bool = False) -> None:
        key = (bundle.key or "").strip().lower()
        if not key:
            raise MigrationInputError("Provider key must not be empty")
        with self._lock:
            if key in self._bundles and not replace:
                raise MigrationInputError(f"Provider '{key}' is already registered")
            self._bundles[key] = bundle
        logger.debug(f"Registered provider '{key}' ({bundle.display_name})")

    def get(self, key: str) -> ProviderBundle:
        bundle = self._bundles.get((key or "").strip().lower())
        if bundle is None:
            raise UnknownProviderError(key, self.keys())
        return bundle

    def __contains__(self, key: str) -> bool:
        return (key or "").strip().lower() in self._bundles

    def keys(self) -> List[str]:
        return sorted(self._bundles)


def register_default_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """Register the four built-in engines"""
    from schemaforge.extensions.plugins import mysql_adapter, oracle_adapter, postgresql_adapter, sqlserver_adapter

    for module in (postgresql_adapter, mysql_adapter, sqlserver_adapter, oracle_adapter):
        registry.register(module.create_bundle(), replace=True)
    return registry


_default_registry: Optional[ProviderRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> ProviderRegistry:
    """Process-wide registry holding the built-in engines"""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = register_default_providers(ProviderRegistry())
        return _default_registry
