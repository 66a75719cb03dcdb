# File: crudforge/introspection.py
"""
crudforge - Schema Introspection
=================================
Reads table and column metadata from a live database so the operator can
pick a table and get its fields pre-filled, and performs the one destructive
schema operation the tool knows about: dropping a generated entity's table
during a confirmed rollback.

The generator depends only on the ``SchemaIntrospector`` protocol; the
SQLAlchemy implementation works against any dialect SQLAlchemy supports.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, runtime_checkable

from sqlalchemy import MetaData, Table, inspect
from sqlalchemy.engine import Engine

from crudforge.models import ColumnInfo, TableInfo

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("crudforge.introspection")


# ---------------------------------------------------------------------------
# SQL type → semantic data type
# ---------------------------------------------------------------------------

_INTEGER_PREFIXES = ("int", "integer", "smallint", "mediumint", "tinyint", "serial")
_FLOAT_PREFIXES = ("float", "double", "real")
_STRING_PREFIXES = ("char", "varchar", "nvarchar", "nchar", "string", "enum", "uuid")
_TEXT_PREFIXES = ("text", "tinytext", "mediumtext", "longtext", "clob")
_TIME_PREFIXES = ("datetime", "timestamp", "time")


def convert_sql_type(sql_type: str) -> str:
    """
    Map a SQL column type to the semantic data type used by the emitters.

        >>> convert_sql_type("tinyint(1)")
        'bool'
        >>> convert_sql_type("VARCHAR(255)")
        'string'
        >>> convert_sql_type("geometry")
        'string'
    """
    t: str = (sql_type or "").strip().lower()
    base: str = t.split("(")[0].split()[0] if t else ""

    if t.startswith("tinyint(1)") or base in ("bool", "boolean", "bit"):
        return "bool"
    if base == "bigint" or base == "bigserial":
        return "bigint"
    if base in _INTEGER_PREFIXES:
        return "integer"
    if base in _FLOAT_PREFIXES:
        return "float"
    if base in ("decimal", "numeric"):
        return "decimal"
    if base in _TEXT_PREFIXES:
        return "text"
    if base in _STRING_PREFIXES:
        return "string"
    if base == "date":
        return "date"
    if base in _TIME_PREFIXES:
        return "time"
    if base in ("json", "jsonb"):
        return "json"
    return "string"


# ---------------------------------------------------------------------------
# Introspector protocol & SQLAlchemy implementation
# ---------------------------------------------------------------------------


@runtime_checkable
class SchemaIntrospector(Protocol):
    """What the generator needs to know about the live schema."""

    def list_tables(self) -> List[TableInfo]: ...

    def list_columns(self, table_name: str) -> List[ColumnInfo]: ...

    def drop_table(self, table_name: str) -> None: ...


class SQLAlchemyIntrospector:
    """``SchemaIntrospector`` backed by ``sqlalchemy.inspect``."""

    def __init__(self, engine: Engine) -> None:
        self._engine: Engine = engine

    def list_tables(self) -> List[TableInfo]:
        inspector = inspect(self._engine)
        tables: List[TableInfo] = []
        for name in sorted(inspector.get_table_names()):
            try:
                comment: str = inspector.get_table_comment(name).get("text") or ""
            except NotImplementedError:
                comment = ""
            tables.append(TableInfo(table_name=name, table_comment=comment))
        logger.debug("Introspected %d table(s).", len(tables))
        return tables

    def list_columns(self, table_name: str) -> List[ColumnInfo]:
        inspector = inspect(self._engine)
        pk_columns: List[str] = inspector.get_pk_constraint(table_name).get(
            "constrained_columns"
        ) or []
        columns: List[ColumnInfo] = []
        for col in inspector.get_columns(table_name):
            columns.append(ColumnInfo(
                column_name=col["name"],
                data_type=col["type"].compile(dialect=self._engine.dialect),
                comment=col.get("comment") or "",
                nullable=bool(col.get("nullable", True)),
                key_flag="PRI" if col["name"] in pk_columns else "",
            ))
        logger.debug("Introspected %d column(s) of %s.", len(columns), table_name)
        return columns

    def drop_table(self, table_name: str) -> None:
        """Equivalent of ``DROP TABLE IF EXISTS``."""
        Table(table_name, MetaData()).drop(self._engine, checkfirst=True)
        logger.warning("Dropped table %s.", table_name)


__all__: List[str] = [
    "convert_sql_type",
    "SchemaIntrospector",
    "SQLAlchemyIntrospector",
]
