"""SQL text for every query shape the API runs.

Identifiers reach the SQL text only as :class:`~db_api_tool.guardrails.Identifier`
instances, quoted with backticks. Every caller-supplied value travels in the
parameter tuple and is bound by the driver (``%s`` placeholders).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from ..errors import UnknownQueryShape
from ..guardrails import Identifier


@dataclass(frozen=True)
class Ping:
    pass


@dataclass(frozen=True)
class ListTables:
    pass


@dataclass(frozen=True)
class DescribeColumns:
    table: Identifier


@dataclass(frozen=True)
class DistinctValues:
    table: Identifier
    column: Identifier
    limit: int


@dataclass(frozen=True)
class CountRows:
    table: Identifier


@dataclass(frozen=True)
class FilteredSelect:
    table: Identifier
    field: Identifier
    value: Any
    columns: tuple[Identifier, ...]
    limit: int

    @property
    def all_columns(self) -> bool:
        return not self.columns


QuerySpec = Union[Ping, ListTables, DescribeColumns, DistinctValues, CountRows, FilteredSelect]

_LIST_TABLES_SQL = (
    "SELECT TABLE_NAME AS `table_name` "
    "FROM information_schema.TABLES "
    "WHERE TABLE_SCHEMA = DATABASE() "
    "ORDER BY TABLE_NAME"
)

_DESCRIBE_COLUMNS_SQL = (
    "SELECT COLUMN_NAME AS `Field`, COLUMN_TYPE AS `Type`, IS_NULLABLE AS `Null`, "
    "COLUMN_KEY AS `Key`, COLUMN_DEFAULT AS `Default`, EXTRA AS `Extra` "
    "FROM information_schema.COLUMNS "
    "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s "
    "ORDER BY ORDINAL_POSITION"
)


def _require_identifier(value: Any, role: str) -> str:
    # Raw strings must never reach the SQL text.
    if not isinstance(value, Identifier):
        raise UnknownQueryShape(f"{role} must be a sanitized identifier")
    return value.quoted


def _require_limit(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise UnknownQueryShape("limit must be a positive integer")
    return value


def shape_name(spec: QuerySpec) -> str:
    return type(spec).__name__


def build(spec: QuerySpec) -> tuple[str, tuple[Any, ...]]:
    """Render ``spec`` into SQL text and its bound parameters."""
    if isinstance(spec, Ping):
        return "SELECT 1", ()

    if isinstance(spec, ListTables):
        return _LIST_TABLES_SQL, ()

    if isinstance(spec, DescribeColumns):
        _require_identifier(spec.table, "table")
        return _DESCRIBE_COLUMNS_SQL, (spec.table.raw,)

    if isinstance(spec, DistinctValues):
        table = _require_identifier(spec.table, "table")
        column = _require_identifier(spec.column, "column")
        sql = f"SELECT DISTINCT {column} AS `value` FROM {table} LIMIT %s"
        return sql, (_require_limit(spec.limit),)

    if isinstance(spec, CountRows):
        table = _require_identifier(spec.table, "table")
        return f"SELECT COUNT(*) AS `total_count` FROM {table}", ()

    if isinstance(spec, FilteredSelect):
        table = _require_identifier(spec.table, "table")
        field = _require_identifier(spec.field, "field")
        if spec.all_columns:
            projection = "*"
        else:
            projection = ", ".join(
                _require_identifier(column, "column") for column in spec.columns
            )
        sql = f"SELECT {projection} FROM {table} WHERE {field} = %s LIMIT %s"
        return sql, (spec.value, _require_limit(spec.limit))

    raise UnknownQueryShape(f"Unsupported query shape: {type(spec).__name__}")
