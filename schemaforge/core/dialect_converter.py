#!/usr/bin/env python3
"""
SchemaForge Dialect Converter
=============================

Rewrites SQL fragments (view bodies, CHECK expressions, column defaults and
filtered-index predicates) from one engine's dialect into another's.

The conversion is a fixed pipeline of regex transforms. Order matters:

1. strip a ``CREATE VIEW ... AS`` header (views only)
2. identifier quotes
3. schema-qualified table references, one combined pass, longest name first
4. remaining bare table references, skipping ones already in target quotes
5. functions (date, timestamp, GUID, null-coalesce, MySQL ``CONCAT(...)``)
6. the string concatenation operator
7. boolean literals in comparison context only

Every transform is safe to re-apply to its own output.
"""

import logging
import re
from typing import Dict, List, Optional

from schemaforge.core.dialects import DatabaseDialect, DatabaseTypes, get_dialect

logger = logging.getLogger(__name__)

_VIEW_HEADER = re.compile(
    r'CREATE\s+VIEW\s+(?:[\w\[\]"`.]+\s*\.\s*)?[\w\[\]"`.]+\s+AS\s+',
    re.IGNORECASE | re.DOTALL)

# Up to two levels of nested parentheses inside the argument list
_CONCAT_CALL = re.compile(
    r'\bCONCAT\s*\(((?:[^()]|\((?:[^()]|\([^()]*\))*\))*)\)',
    re.IGNORECASE)

_CHECK_PREFIX = re.compile(r'^CHECK\b', re.IGNORECASE)
_NATIONAL_STRING = re.compile(r"^N('(?:[^']|'')*')$", re.DOTALL)

_BOOLEAN_TYPES = {'bit', 'boolean', 'bool'}


def strip_outer_parentheses(expression: str) -> str:
    """Remove wrapping parentheses such as ``((0))`` while keeping ``(a) + (b)`` intact"""
    result = expression.strip()
    while len(result) >= 2 and result[0] == '(' and result[-1] == ')':
        inner = result[1:-1]
        depth = 0
        for char in inner:
            if char == '(':
                depth += 1
            elif char == ')':
                depth -= 1
                if depth < 0:
                    break
        if depth != 0:
            break
        result = inner.strip()
    return result


def split_function_args(args: str) -> List[str]:
    """Split a comma separated argument list at parenthesis depth zero"""
    parts = []
    current = []
    depth = 0
    quoted = False
    for char in args:
        if char == "'":
            quoted = not quoted
        elif not quoted:
            if char == ',' and depth == 0:
                parts.append(''.join(current).strip())
                current = []
                continue
            if char == '(':
                depth += 1
            elif char == ')':
                depth -= 1
        current.append(char)
    if current:
        parts.append(''.join(current).strip())
    return parts


class SqlDialectConverter:
    """Pure text transforms between the supported SQL dialects"""

    def convert_view_definition(self, definition: str, source: str, target: str,
                                source_schema: Optional[str] = None,
                                target_schema: Optional[str] = None,
                                table_name_map: Optional[Dict[str, str]] = None) -> str:
        if not definition:
            return definition

        src = get_dialect(source)
        tgt = get_dialect(target)

        converted = _VIEW_HEADER.sub('', definition)
        converted = self._convert_quotes(converted, src, tgt)

        if source_schema and target_schema:
            if table_name_map:
                converted = self._replace_qualified_names(converted, source_schema, target_schema,
                                                          table_name_map, tgt)
            else:
                converted = self._replace_schema_references(converted, source_schema, target_schema, tgt)

        if table_name_map:
            converted = self._replace_table_names(converted, table_name_map, tgt)

        converted = self._convert_functions(converted, src, tgt)
        converted = self._convert_operators(converted, src, tgt)
        converted = self._convert_booleans(converted, src, tgt)
        return converted.strip()

    def convert_check_expression(self, expression: str, source: str, target: str) -> str:
        if not expression:
            return expression

        src = get_dialect(source)
        tgt = get_dialect(target)

        converted = _CHECK_PREFIX.sub('', expression.strip()).strip()
        converted = strip_outer_parentheses(converted)
        converted = self._convert_quotes(converted, src, tgt)
        converted = self._convert_functions(converted, src, tgt)
        return self._convert_booleans(converted, src, tgt)

    def convert_default_expression(self, expression: str, source: str, target: str,
                                   column_data_type: Optional[str] = None) -> str:
        """
        Convert a column default.

        SQL Server wraps defaults in redundant parentheses (``((0))``,
        ``(getdate())``) and prefixes unicode literals with ``N``; both are
        removed. When the column is boolean-typed a 0/1 default is rewritten
        to the target's boolean spelling.
        """
        if not expression:
            return expression

        src = get_dialect(source)
        tgt = get_dialect(target)

        converted = strip_outer_parentheses(expression)
        if tgt is not src:
            national = _NATIONAL_STRING.match(converted)
            if national:
                converted = national.group(1)
        converted = self._convert_quotes(converted, src, tgt)
        converted = self._convert_functions(converted, src, tgt)

        if column_data_type and column_data_type.strip().lower() in _BOOLEAN_TYPES:
            lowered = converted.strip("'").lower()
            if lowered in ('1', 'true', src.boolean_true.lower()):
                converted = tgt.boolean_true
            elif lowered in ('0', 'false', src.boolean_false.lower()):
                converted = tgt.boolean_false
        return converted

    def convert_filter_expression(self, expression: str, source: str, target: str) -> str:
        if not expression:
            return expression

        src = get_dialect(source)
        tgt = get_dialect(target)

        converted = self._convert_quotes(expression, src, tgt)
        return self._convert_functions(converted, src, tgt)

    def detect_source_database(self, sql: str) -> str:
        """Guess the dialect a fragment was written in from its tell-tale tokens"""
        if not sql:
            return DatabaseTypes.SQLSERVER
        if "GETDATE()" in sql or "[" in sql:
            return DatabaseTypes.SQLSERVER
        if "SYSDATE" in sql or "NVL(" in sql:
            return DatabaseTypes.ORACLE
        if "IFNULL(" in sql or "`" in sql:
            return DatabaseTypes.MYSQL
        if "NOW()" in sql or "COALESCE(" in sql:
            return DatabaseTypes.POSTGRES
        return DatabaseTypes.SQLSERVER

    # ------------------------------------------------------------------
    # Individual transforms
    # ------------------------------------------------------------------

    def _convert_quotes(self, sql: str, src: DatabaseDialect, tgt: DatabaseDialect) -> str:
        if src.quote_start == tgt.quote_start:
            return sql
        pattern = f"{re.escape(src.quote_start)}([^{re.escape(src.quote_end)}]+){re.escape(src.quote_end)}"
        return re.sub(pattern, lambda m: tgt.quote(m.group(1)), sql)

    def _replace_qualified_names(self, sql: str, source_schema: str, target_schema: str,
                                 table_name_map: Dict[str, str], tgt: DatabaseDialect) -> str:
        # Schema and table are matched together so a half-rewritten reference
        # such as "public".Employees never exists between two steps.
        qs = re.escape(tgt.quote_start)
        qe = re.escape(tgt.quote_end)
        escaped_schema = re.escape(source_schema)
        schema_pattern = f"(?:{qs}{escaped_schema}{qe}|(?<![\\w{qs}]){escaped_schema})"

        for source_name, target_name in sorted(table_name_map.items(), key=lambda kv: len(kv[0]), reverse=True):
            escaped_name = re.escape(source_name)
            table_pattern = f"(?:{qs}{escaped_name}{qe}|(?<!\\w){escaped_name}(?!\\w))"
            replacement = f"{tgt.quote(target_schema)}.{tgt.quote(target_name)}"
            sql = re.sub(f"{schema_pattern}\\s*\\.\\s*{table_pattern}", lambda m, r=replacement: r,
                         sql, flags=re.IGNORECASE)
        return sql

    def _replace_schema_references(self, sql: str, source_schema: str, target_schema: str,
                                   tgt: DatabaseDialect) -> str:
        quoted_target = tgt.quote(target_schema)
        escaped_schema = re.escape(source_schema)
        quoted_pattern = f"{re.escape(tgt.quote_start)}{escaped_schema}{re.escape(tgt.quote_end)}\\s*\\."
        sql = re.sub(quoted_pattern, lambda m: f"{quoted_target}.", sql, flags=re.IGNORECASE)
        bare_pattern = f"(?<![\\w{re.escape(tgt.quote_start)}]){escaped_schema}\\s*\\."
        return re.sub(bare_pattern, lambda m: f"{quoted_target}.", sql, flags=re.IGNORECASE)

    def _replace_table_names(self, sql: str, table_name_map: Dict[str, str], tgt: DatabaseDialect) -> str:
        qs = re.escape(tgt.quote_start)
        qe = re.escape(tgt.quote_end)
        for source_name, target_name in sorted(table_name_map.items(), key=lambda kv: len(kv[0]), reverse=True):
            if source_name == target_name:
                continue
            quoted_target = tgt.quote(target_name)
            escaped_name = re.escape(source_name)
            sql = re.sub(f"{qs}{escaped_name}{qe}", lambda m, r=quoted_target: r, sql, flags=re.IGNORECASE)
            # Skip names already wrapped in target quotes so nothing is double-quoted
            sql = re.sub(f"(?<!{qs})\\b{escaped_name}\\b(?!{qe})", lambda m, r=quoted_target: r,
                         sql, flags=re.IGNORECASE)
        return sql

    def _convert_functions(self, sql: str, src: DatabaseDialect, tgt: DatabaseDialect) -> str:
        sql = self._replace_function(sql, src.current_date_function, tgt.current_date_function)
        sql = self._replace_function(sql, src.current_timestamp_function, tgt.current_timestamp_function)
        sql = self._replace_function(sql, src.new_guid_function, tgt.new_guid_function)
        sql = self._replace_null_check(sql, src.null_check_function, tgt.null_check_function)
        return self._convert_concat_function(sql, src, tgt)

    @staticmethod
    def _replace_function(sql: str, source_func: str, target_func: str) -> str:
        if source_func.lower() == target_func.lower():
            return sql
        # Word-bounded so SYSDATE is not found inside SYSDATETIME
        pattern = f"(?<![\\w.]){re.escape(source_func)}"
        if source_func[-1].isalnum() or source_func[-1] == '_':
            pattern += r"(?!\w)"
        return re.sub(pattern, lambda m: target_func, sql, flags=re.IGNORECASE)

    @staticmethod
    def _replace_null_check(sql: str, source_func: str, target_func: str) -> str:
        if source_func.lower() == target_func.lower():
            return sql
        return re.sub(f"\\b{re.escape(source_func)}\\s*\\(", lambda m: f"{target_func}(", sql,
                      flags=re.IGNORECASE)

    @staticmethod
    def _convert_concat_function(sql: str, src: DatabaseDialect, tgt: DatabaseDialect) -> str:
        # Operator form to CONCAT(...) is not attempted; see DESIGN.md
        if not src.uses_concat_function or tgt.uses_concat_function:
            return sql

        joiner = f" {tgt.string_concat_operator} "

        def expand(match):
            return joiner.join(split_function_args(match.group(1)))

        # Repeat so nested CONCAT calls left inside arguments are expanded too
        while True:
            expanded = _CONCAT_CALL.sub(expand, sql)
            if expanded == sql:
                return expanded
            sql = expanded

    @staticmethod
    def _convert_operators(sql: str, src: DatabaseDialect, tgt: DatabaseDialect) -> str:
        if (src.string_concat_operator == tgt.string_concat_operator
                or src.uses_concat_function or tgt.uses_concat_function):
            return sql
        return sql.replace(src.string_concat_operator, tgt.string_concat_operator)

    @staticmethod
    def _convert_booleans(sql: str, src: DatabaseDialect, tgt: DatabaseDialect) -> str:
        # Only after =, <>, !=, IS or NOT; never inside a longer number such as 10 or 1.5
        context = r"((?<![<>!])=\s*|<>\s*|!=\s*|\bIS\s+|\bNOT\s+)"
        for source_literal, target_literal in ((src.boolean_true, tgt.boolean_true),
                                               (src.boolean_false, tgt.boolean_false)):
            if source_literal == target_literal:
                continue
            pattern = f"{context}{re.escape(source_literal)}(?![\\w.])"
            sql = re.sub(pattern, lambda m, t=target_literal: f"{m.group(1)}{t}", sql, flags=re.IGNORECASE)
        return sql
