"""
Identifier naming for the target engine.

Converts source identifiers to the target's naming convention, trims them
to the engine's identifier length limit and quotes reserved words.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet

from schemaforge.core.dialects import DatabaseTypes

logger = logging.getLogger(__name__)


class NamingConvention(Enum):
    SNAKE_CASE = "snake_case"
    PASCAL_CASE = "pascalcase"
    CAMEL_CASE = "camelcase"
    LOWERCASE = "lowercase"
    UPPERCASE = "uppercase"
    PRESERVE = "preserve"
    AUTO = "auto"


@dataclass(frozen=True)
class DatabaseStandards:
    database_type: str
    naming_convention: NamingConvention
    max_identifier_length: int
    quote_start: str
    quote_end: str
    reserved_keywords: FrozenSet[str] = field(default_factory=frozenset)


_POSTGRES_RESERVED = frozenset("""
    ALL ANALYSE ANALYZE AND ANY ARRAY AS ASC AUTHORIZATION BINARY BOTH CASE CAST
    CHECK COLLATE COLUMN CONSTRAINT CREATE CROSS CURRENT_DATE CURRENT_TIME
    CURRENT_TIMESTAMP CURRENT_USER DEFAULT DISTINCT DO ELSE END EXCEPT FALSE FETCH
    FOR FOREIGN FROM FULL GROUP HAVING IN INNER INTERSECT INTO IS JOIN LEFT LIKE
    LIMIT NATURAL NOT NULL OFFSET ON ONLY OR ORDER OUTER PRIMARY REFERENCES RIGHT
    SELECT TABLE THEN TO TRUE UNION UNIQUE USER USING WHEN WHERE WITH
""".split())

_MYSQL_RESERVED = frozenset("""
    ADD ALL ALTER AND AS ASC BETWEEN BY CASE CHAR CHECK COLUMN CONSTRAINT CREATE
    CROSS DATABASE DEFAULT DELETE DESC DISTINCT DROP ELSE EXISTS FOREIGN FROM FULL
    GROUP HAVING IN INDEX INNER INSERT INTEGER INTO IS JOIN KEY LEFT LIKE LIMIT NOT
    NULL ON OR ORDER OUTER PRIMARY REFERENCES RIGHT SELECT SET TABLE THEN TO UNION
    UNIQUE UPDATE USER USING VALUES WHEN WHERE WITH
""".split())

_ORACLE_RESERVED = frozenset("""
    ACCESS ADD ALL ALTER AND ANY AS ASC AUDIT BETWEEN BY CHAR CHECK CLUSTER COLUMN
    COMMENT COMPRESS CONNECT CREATE CURRENT DATE DECIMAL DEFAULT DELETE DESC
    DISTINCT DROP ELSE EXCLUSIVE EXISTS FILE FLOAT FOR FROM GRANT GROUP HAVING
    IDENTIFIED IN INCREMENT INDEX INSERT INTEGER INTERSECT INTO IS LEVEL LIKE LOCK
    LONG MINUS MODE NOT NULL NUMBER OF ON OPTION OR ORDER PRIOR PUBLIC RAW RENAME
    RESOURCE REVOKE ROW ROWID ROWNUM ROWS SELECT SESSION SET SHARE SIZE START
    SUCCESSFUL SYNONYM SYSDATE TABLE THEN TO TRIGGER UID UNION UNIQUE UPDATE USER
    VALIDATE VALUES VARCHAR VARCHAR2 VIEW WHENEVER WHERE WITH
""".split())

_SQLSERVER_RESERVED = frozenset("""
    ADD ALL ALTER AND ANY AS ASC AUTHORIZATION BACKUP BEGIN BETWEEN BREAK BROWSE
    BULK BY CASCADE CASE CHECK CHECKPOINT CLOSE CLUSTERED COALESCE COLUMN COMMIT
    CONSTRAINT CONTAINS CONTINUE CREATE CROSS CURRENT CURRENT_DATE CURRENT_TIME
    CURRENT_TIMESTAMP CURRENT_USER CURSOR DATABASE DECLARE DEFAULT DELETE DESC
    DISTINCT DOUBLE DROP ELSE END EXCEPT EXEC EXECUTE EXISTS EXIT FOREIGN FROM FULL
    FUNCTION GOTO GRANT GROUP HAVING IDENTITY IF IN INDEX INNER INSERT INTERSECT
    INTO IS JOIN KEY LEFT LIKE MERGE NOT NULL OF OFF ON OPEN OPTION OR ORDER OUTER
    OVER PRIMARY PRINT PROC PROCEDURE PUBLIC READ REFERENCES RETURN REVOKE RIGHT
    ROLLBACK RULE SCHEMA SELECT SET TABLE THEN TO TOP TRANSACTION TRIGGER TRUNCATE
    UNION UNIQUE UPDATE USER USING VALUES VIEW WHEN WHERE WHILE WITH
""".split())

STANDARDS = {
    DatabaseTypes.POSTGRES: DatabaseStandards("PostgreSQL", NamingConvention.SNAKE_CASE, 63,
                                              '"', '"', _POSTGRES_RESERVED),
    DatabaseTypes.MYSQL: DatabaseStandards("MySQL", NamingConvention.SNAKE_CASE, 64,
                                           '`', '`', _MYSQL_RESERVED),
    # 30 keeps compatibility with Oracle releases before 12.2
    DatabaseTypes.ORACLE: DatabaseStandards("Oracle", NamingConvention.UPPERCASE, 30,
                                            '"', '"', _ORACLE_RESERVED),
    DatabaseTypes.SQLSERVER: DatabaseStandards("SQL Server", NamingConvention.PASCAL_CASE, 128,
                                               '[', ']', _SQLSERVER_RESERVED),
}


def get_standards(database_type: str) -> DatabaseStandards:
    """Standards for an engine key; unknown keys get the PostgreSQL standards"""
    return STANDARDS.get((database_type or "").lower(), STANDARDS[DatabaseTypes.POSTGRES])


def to_snake_case(name: str) -> str:
    """OrderDetails -> order_details, XMLParser -> xml_parser"""
    if not name:
        return name
    out = []
    for i, char in enumerate(name):
        if char == '_':
            out.append('_')
            continue
        if char.isupper() and i > 0 and name[i - 1] != '_':
            prev = name[i - 1]
            next_is_lower = i + 1 < len(name) and name[i + 1].islower()
            if prev.islower() or prev.isdigit() or (next_is_lower and prev.isupper()):
                out.append('_')
        out.append(char.lower())
    return ''.join(out)


def to_pascal_case(name: str) -> str:
    if not name:
        return name
    if '_' not in name:
        # Already a single word or PascalCase/camelCase; only fix the first letter
        return name[0].upper() + name[1:]
    return ''.join(part[0].upper() + part[1:].lower() for part in name.split('_') if part)


def to_camel_case(name: str) -> str:
    pascal = to_pascal_case(name)
    return pascal[:1].lower() + pascal[1:] if pascal else pascal


def apply_convention(name: str, convention: NamingConvention) -> str:
    if convention == NamingConvention.SNAKE_CASE:
        return to_snake_case(name)
    if convention == NamingConvention.PASCAL_CASE:
        return to_pascal_case(name)
    if convention == NamingConvention.CAMEL_CASE:
        return to_camel_case(name)
    if convention == NamingConvention.LOWERCASE:
        return name.lower().replace('_', '')
    if convention == NamingConvention.UPPERCASE:
        return name.upper()
    return name


class NamingConverter:
    """Maps a source identifier onto the target engine's naming rules"""

    def __init__(self, target_type: str = DatabaseTypes.POSTGRES, naming_convention: str = "auto",
                 use_target_standards: bool = True, preserve_source_case: bool = False,
                 max_identifier_length: int = 0):
        self.standards = get_standards(target_type)
        try:
            self.convention = NamingConvention((naming_convention or "auto").lower())
        except ValueError:
            logger.warning(f"Unknown naming convention '{naming_convention}', using snake_case")
            self.convention = NamingConvention.SNAKE_CASE
        self.use_target_standards = use_target_standards
        self.preserve_source_case = preserve_source_case
        self.max_identifier_length = max_identifier_length

    @classmethod
    def from_settings(cls, settings) -> "NamingConverter":
        return cls(target_type=settings.target_type,
                   naming_convention=settings.naming_convention,
                   use_target_standards=settings.use_target_standards,
                   preserve_source_case=settings.preserve_source_case,
                   max_identifier_length=settings.max_identifier_length)

    def to_target_name(self, identifier: str) -> str:
        """Converted and length-limited name, never quoted"""
        if not identifier:
            return identifier

        if self.preserve_source_case or self.convention == NamingConvention.PRESERVE:
            result = identifier
        elif self.convention != NamingConvention.AUTO:
            result = apply_convention(identifier, self.convention)
        elif self.use_target_standards:
            result = apply_convention(identifier, self.standards.naming_convention)
        else:
            result = to_snake_case(identifier)

        limit = self.max_identifier_length or self.standards.max_identifier_length
        if limit > 0 and len(result) > limit:
            result = result[:limit]
        return result

    def is_reserved(self, name: str) -> bool:
        return name.upper() in self.standards.reserved_keywords

    def convert(self, identifier: str) -> str:
        """Converted name, quoted when it collides with a reserved word"""
        result = self.to_target_name(identifier)
        if result and self.is_reserved(result):
            return f"{self.standards.quote_start}{result}{self.standards.quote_end}"
        return result
