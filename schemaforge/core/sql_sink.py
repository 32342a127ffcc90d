"""
SQL sinks: where schema writers send the DDL/DML they generate.

A live migration uses a ConnectionSink that executes each statement on the
target connection. A dry run uses a SqlCollector that buffers the statements
and renders them as a reviewable script. Writers only ever see the SqlSink
interface, so the same code path produces both.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, List, Optional

from schemaforge.core.schema_ir import SqlCategory, SqlStatement

logger = logging.getLogger(__name__)


class SqlSink(ABC):
    """Destination for generated SQL"""

    @property
    def is_collecting(self) -> bool:
        return False

    @abstractmethod
    async def execute(self, sql: str, category: SqlCategory, object_name: Optional[str] = None) -> None:
        ...

    def add_comment(self, comment: str) -> None:
        """Comments only mean something to collecting sinks"""


class SqlCollector(SqlSink):
    """Buffers statements for a dry-run script"""

    def __init__(self, collecting: bool = True, include_comments: bool = True):
        self._collecting = collecting
        self._include_comments = include_comments
        self._statements: List[SqlStatement] = []

    @property
    def is_collecting(self) -> bool:
        return self._collecting

    async def execute(self, sql: str, category: SqlCategory, object_name: Optional[str] = None) -> None:
        self.add_sql(sql, category, object_name)

    def add_sql(self, sql: str, category: SqlCategory, object_name: Optional[str] = None) -> None:
        if not self._collecting:
            return
        self._statements.append(SqlStatement(sql.strip(), category, object_name))

    def add_comment(self, comment: str) -> None:
        if not self._collecting or not self._include_comments:
            return
        self._statements.append(SqlStatement(f"-- {comment}", SqlCategory.COMMENT))

    def get_statements(self) -> List[SqlStatement]:
        return list(self._statements)

    def count(self, category: SqlCategory) -> int:
        return sum(1 for statement in self._statements if statement.category == category)

    def get_script(self) -> str:
        generated = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')
        lines = [
            "-- ============================================",
            "-- SchemaForge Dry Run SQL Script",
            f"-- Generated: {generated} UTC",
            "-- ============================================",
            "",
        ]

        current = None
        for statement in self._statements:
            if statement.category != SqlCategory.COMMENT and statement.category != current:
                current = statement.category
                lines.append("")
                lines.append(f"-- === {current.value} ===")

            text = statement.sql
            if statement.category != SqlCategory.COMMENT and not text.rstrip().endswith(';'):
                text = f"{text};"
            lines.append(text)
            lines.append("")

        return "\n".join(lines) + "\n"

    def clear(self) -> None:
        self._statements.clear()


class ConnectionSink(SqlSink):
    """Executes each statement on a DB-API connection and commits it"""

    def __init__(self, connection: Any):
        self.connection = connection

    async def execute(self, sql: str, category: SqlCategory, object_name: Optional[str] = None) -> None:
        logger.debug(f"[{category.value}] {object_name or ''}: {sql}")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._execute_sync, sql)

    def _execute_sync(self, sql: str) -> None:
        cursor = self.connection.cursor()
        try:
            cursor.execute(sql)
            self.connection.commit()
        except Exception:
            self.connection.rollback()
            raise
        finally:
            cursor.close()
