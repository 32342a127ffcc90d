#!/usr/bin/env python3
"""
Tests for the provider registry.
"""

import pytest

from schemaforge.core.errors import MigrationInputError, UnknownProviderError
from schemaforge.core.registry import ProviderRegistry, default_registry

from conftest import FakeEngine


class TestProviderRegistry:

    def test_register_and_get_case_insensitive(self):
        registry = ProviderRegistry()
        bundle = FakeEngine("postgres").bundle()
        registry.register(bundle)

        assert registry.get("POSTGRES") is bundle
        assert "Postgres" in registry
        assert registry.keys() == ["postgres"]

    def test_duplicate_rejected_unless_replacing(self):
        registry = ProviderRegistry()
        registry.register(FakeEngine("mysql").bundle())

        with pytest.raises(MigrationInputError):
            registry.register(FakeEngine("mysql").bundle())

        replacement = FakeEngine("mysql").bundle()
        registry.register(replacement, replace=True)
        assert registry.get("mysql") is replacement

    def test_empty_key_rejected(self):
        with pytest.raises(MigrationInputError):
            ProviderRegistry().register(FakeEngine(" ").bundle())

    def test_unknown_key(self):
        registry = ProviderRegistry()
        registry.register(FakeEngine("oracle").bundle())

        with pytest.raises(UnknownProviderError) as exc:
            registry.get("db2")
        assert exc.value.key == "db2"
        assert "oracle" in str(exc.value)

    def test_default_registry_has_builtin_engines(self):
        registry = default_registry()

        assert registry.keys() == ["mysql", "oracle", "postgres", "sqlserver"]
        assert registry.get("sqlserver").default_schema == "dbo"
        assert registry.get("postgres").default_schema == "public"
        assert default_registry() is registry
