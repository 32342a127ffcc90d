"""
Foreign-key dependency ordering for tables.

Referenced (parent) tables are placed before the tables that reference
them so that inserts never hit a missing parent row. Tables caught in a
reference cycle cannot be ordered; they are appended afterwards in their
input order, and the constraint disable/enable bracket around the data
copy covers them.
"""

import logging
from collections import OrderedDict, deque
from typing import Dict, List, Tuple

from schemaforge.core.schema_ir import TableSchema, table_key

logger = logging.getLogger(__name__)


def sort_by_dependencies(tables: List[TableSchema]) -> List[TableSchema]:
    """Return the tables in parent-before-child order using Kahn's algorithm"""
    logger.info(f"Sorting {len(tables)} tables by foreign key dependencies")

    # Duplicate keys share one node and are emitted together
    by_key: "OrderedDict[Tuple[str, str], List[TableSchema]]" = OrderedDict()
    for table in tables:
        by_key.setdefault(table.key, []).append(table)

    dependencies: Dict[Tuple[str, str], set] = {key: set() for key in by_key}
    dependents: Dict[Tuple[str, str], List[Tuple[str, str]]] = {key: [] for key in by_key}

    for key, group in by_key.items():
        for table in group:
            for fk in table.foreign_keys:
                referenced = table_key(fk.referenced_schema, fk.referenced_table)
                if referenced == key:
                    logger.debug(f"Skipping self-reference on {table.qualified_name}")
                    continue
                if referenced not in by_key:
                    logger.debug(f"{table.qualified_name} references "
                                 f"{fk.referenced_schema}.{fk.referenced_table} which is not in the migration set")
                    continue
                if referenced not in dependencies[key]:
                    dependencies[key].add(referenced)
                    dependents[referenced].append(key)

    queue = deque(key for key in by_key if not dependencies[key])
    logger.debug(f"Starting sort with {len(queue)} independent tables")

    ordered_keys = []
    while queue:
        current = queue.popleft()
        ordered_keys.append(current)
        for dependent in dependents[current]:
            dependencies[dependent].discard(current)
            if not dependencies[dependent]:
                queue.append(dependent)

    if len(ordered_keys) != len(by_key):
        placed = set(ordered_keys)
        remainder = [key for key in by_key if key not in placed]
        names = ", ".join(by_key[key][0].qualified_name for key in remainder)
        logger.warning(f"Circular dependency detected among tables: {names}. "
                       f"These will be appended at the end.")
        ordered_keys.extend(remainder)

    result = [table for key in ordered_keys for table in by_key[key]]

    logger.info(f"Table processing order ({len(result)} tables):")
    for position, table in enumerate(result, start=1):
        logger.info(f"  {position}. {table.qualified_name}")
    return result


class TableDependencySorter:
    """Object wrapper so the sorter can be injected and mocked like other collaborators"""

    def sort_by_dependencies(self, tables: List[TableSchema]) -> List[TableSchema]:
        return sort_by_dependencies(tables)
