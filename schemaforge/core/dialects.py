"""
SQL dialect descriptors for the supported engines.
"""

from dataclasses import dataclass
from typing import Dict, List

from schemaforge.core.errors import UnsupportedDialectError


class DatabaseTypes:
    """Engine keys used throughout configuration, registry and converters"""
    SQLSERVER = "sqlserver"
    POSTGRES = "postgres"
    MYSQL = "mysql"
    ORACLE = "oracle"

    ALL = (SQLSERVER, POSTGRES, MYSQL, ORACLE)


@dataclass(frozen=True)
class DatabaseDialect:
    name: str
    quote_start: str
    quote_end: str
    current_date_function: str
    current_timestamp_function: str
    new_guid_function: str
    null_check_function: str
    string_concat_operator: str
    limit_clause: str
    offset_fetch_clause: str  # format placeholders: {offset}, {limit}
    boolean_true: str
    boolean_false: str

    @property
    def uses_concat_function(self) -> bool:
        return self.string_concat_operator.upper() == "CONCAT"

    def quote(self, identifier: str) -> str:
        return f"{self.quote_start}{identifier}{self.quote_end}"

    def paginate(self, offset: int, limit: int) -> str:
        return self.offset_fetch_clause.format(offset=offset, limit=limit)


DIALECTS: Dict[str, DatabaseDialect] = {
    DatabaseTypes.SQLSERVER: DatabaseDialect(
        name="SQL Server",
        quote_start="[",
        quote_end="]",
        current_date_function="GETDATE()",
        current_timestamp_function="GETDATE()",
        new_guid_function="NEWID()",
        null_check_function="ISNULL",
        string_concat_operator="+",
        limit_clause="TOP",
        offset_fetch_clause="OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY",
        boolean_true="1",
        boolean_false="0",
    ),
    DatabaseTypes.POSTGRES: DatabaseDialect(
        name="PostgreSQL",
        quote_start='"',
        quote_end='"',
        current_date_function="NOW()",
        current_timestamp_function="CURRENT_TIMESTAMP",
        new_guid_function="gen_random_uuid()",
        null_check_function="COALESCE",
        string_concat_operator="||",
        limit_clause="LIMIT",
        offset_fetch_clause="LIMIT {limit} OFFSET {offset}",
        boolean_true="TRUE",
        boolean_false="FALSE",
    ),
    DatabaseTypes.MYSQL: DatabaseDialect(
        name="MySQL",
        quote_start="`",
        quote_end="`",
        current_date_function="NOW()",
        current_timestamp_function="CURRENT_TIMESTAMP",
        new_guid_function="UUID()",
        null_check_function="IFNULL",
        string_concat_operator="CONCAT",
        limit_clause="LIMIT",
        offset_fetch_clause="LIMIT {limit} OFFSET {offset}",
        boolean_true="1",
        boolean_false="0",
    ),
    DatabaseTypes.ORACLE: DatabaseDialect(
        name="Oracle",
        quote_start='"',
        quote_end='"',
        current_date_function="SYSDATE",
        current_timestamp_function="SYSTIMESTAMP",
        new_guid_function="SYS_GUID()",
        null_check_function="NVL",
        string_concat_operator="||",
        limit_clause="FETCH FIRST",
        offset_fetch_clause="OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY",
        boolean_true="1",
        boolean_false="0",
    ),
}


def supported_dialects() -> List[str]:
    return list(DIALECTS.keys())


def get_dialect(key: str) -> DatabaseDialect:
    """Look up a dialect by engine key (case-insensitive)"""
    dialect = DIALECTS.get((key or "").strip().lower())
    if dialect is None:
        raise UnsupportedDialectError(key, supported_dialects())
    return dialect
