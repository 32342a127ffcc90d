#!/usr/bin/env python3
"""
Tests for the error hierarchy.
"""

import threading

import pytest

from schemaforge.core.errors import (
    DataMigrationError,
    ErrorCode,
    MigrationCancelled,
    MigrationInputError,
    ObjectMigrationError,
    PhaseError,
    UnsupportedDialectError,
    check_cancelled,
    sanitize_error,
)


def test_sanitize_error_masks_password():
    message = "connect failed for postgresql://app:s3cr3t@db:5432/sales and mysql://root:pw@h/x"

    assert sanitize_error(message) == "connect failed for postgresql://app:***@db:5432/sales and mysql://root:***@h/x"


def test_sanitize_error_accepts_exceptions():
    assert sanitize_error(ValueError("plain")) == "plain"


def test_input_errors_are_value_errors():
    assert isinstance(MigrationInputError("bad"), ValueError)
    assert isinstance(UnsupportedDialectError("db2", ["postgres"]), MigrationInputError)


def test_error_codes():
    assert DataMigrationError(["dbo.A"]).code == ErrorCode.DATA_FAILED
    assert PhaseError("views", RuntimeError("x")).details == {'phase': 'views'}


def test_object_error_message_is_sanitized():
    error = ObjectMigrationError("schema", "orders", RuntimeError("at postgresql://u:pw@h/db"))

    assert "pw@" not in str(error)
    assert error.object_name == "orders"


def test_check_cancelled():
    event = threading.Event()
    check_cancelled(event, "phase data")
    check_cancelled(None)

    event.set()
    with pytest.raises(MigrationCancelled, match="at phase data"):
        check_cancelled(event, "phase data")
