from __future__ import annotations

import logging
from typing import Any

import mysql.connector
from mysql.connector import errorcode

from ..config import AppConfig
from ..errors import DbApiError, EngineError, MissingParameter, UnknownColumn, UnknownTable
from ..guardrails import clamp_limit, parse_columns, sanitize_identifier
from ..logging_utils import log_extra
from .coercion import JsonScalar, coerce_row
from .pool import ConnectionPool
from .query_builder import (
    CountRows,
    DescribeColumns,
    DistinctValues,
    FilteredSelect,
    ListTables,
    Ping,
    QuerySpec,
    build,
    shape_name,
)

# Errors after which the connection is known to still be usable.
_CLIENT_ERRNOS = {
    errorcode.ER_NO_SUCH_TABLE,
    errorcode.ER_BAD_FIELD_ERROR,
}


class DatabaseClient:
    def __init__(self, config: AppConfig, pool: ConnectionPool) -> None:
        self._config = config
        self._pool = pool
        self._log = logging.getLogger(__name__)

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def _limit(self, requested: int | str | None) -> int:
        return clamp_limit(
            requested,
            self._config.limits.default_limit,
            self._config.limits.max_limit,
        )

    def ping(self, request_id: str | None = None) -> dict[str, Any]:
        self._execute(Ping(), request_id=request_id)
        return {"status": "ok"}

    def list_tables(self, request_id: str | None = None) -> dict[str, Any]:
        rows = self._execute(ListTables(), request_id=request_id)
        return {"tables": [row["table_name"] for row in rows]}

    def table_columns(self, table: str, request_id: str | None = None) -> dict[str, Any]:
        safe_table = sanitize_identifier(table, "table")
        rows = self._execute(DescribeColumns(safe_table), request_id=request_id)
        if not rows:
            raise UnknownTable(f"Table '{table}' not found")
        return {"table": table, "columns": rows}

    def column_values(
        self,
        table: str,
        column: str,
        limit: int | str | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        spec = DistinctValues(
            table=sanitize_identifier(table, "table"),
            column=sanitize_identifier(column, "column"),
            limit=self._limit(limit),
        )
        rows = self._execute(spec, request_id=request_id)
        return {
            "table": table,
            "column": column,
            "distinct_values": [row["value"] for row in rows],
            "limit": spec.limit,
        }

    def table_count(self, table: str, request_id: str | None = None) -> dict[str, Any]:
        safe_table = sanitize_identifier(table, "table")
        rows = self._execute(CountRows(safe_table), request_id=request_id)
        total = rows[0]["total_count"] if rows else 0
        return {"table": table, "total_count": int(total or 0)}

    def query_table(
        self,
        table: str,
        field: str | None,
        value: str | None,
        columns: str | None = None,
        limit: int | str | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Select rows of ``table`` where ``field`` equals ``value``.

        Parameters:
        table (str): Table to read
        field (str | None): Column to filter on (required)
        value (str | None): Value to compare with, always bound as a parameter (required)
        columns (str | None): Comma-separated projection; blank or absent selects all columns
        limit (int | str | None): Requested row limit, clamped to the configured maximum
        request_id (str | None): Request tracking ID

        Returns:
        dict[str, Any]: Echo of the request plus ``results``, one mapping per row

        Raises:
        MissingParameter: If ``field`` or ``value`` is absent
        InvalidIdentifier: If the table, field or any requested column fails validation
        """
        safe_table = sanitize_identifier(table, "table")
        if field is None or field == "":
            raise MissingParameter("Please provide 'field' query parameter")
        if value is None:
            raise MissingParameter("Please provide 'value' query parameter")

        spec = FilteredSelect(
            table=safe_table,
            field=sanitize_identifier(field, "field"),
            value=value,
            columns=parse_columns(columns),
            limit=self._limit(limit),
        )
        rows = self._execute(spec, request_id=request_id)
        return {
            "table": table,
            "field": field,
            "value": value,
            "columns": "all" if spec.all_columns else [c.raw for c in spec.columns],
            "limit": spec.limit,
            "results": rows,
        }

    def _translate_error(self, exc: mysql.connector.Error, spec: QuerySpec) -> DbApiError:
        errno = getattr(exc, "errno", None)
        if errno == errorcode.ER_NO_SUCH_TABLE:
            table = getattr(spec, "table", None)
            return UnknownTable(f"Table '{table}' not found" if table else "Table not found")
        if errno == errorcode.ER_BAD_FIELD_ERROR:
            return UnknownColumn(getattr(exc, "msg", None) or "Unknown column")
        return EngineError("A database error occurred")

    def _execute(
        self, spec: QuerySpec, request_id: str | None = None
    ) -> list[dict[str, JsonScalar]]:
        """
        Run one query shape on a pooled connection and coerce every row.

        The connection is returned to the pool on every exit path. Driver
        errors other than missing table/column discard it.

        Raises:
        PoolExhausted: If no connection is free within the acquire timeout
        UnknownTable, UnknownColumn: If the engine reports a missing object
        EngineError: For any other driver failure
        """
        sql, params = build(spec)
        shape = shape_name(spec)

        with self._pool.lease() as lease:
            try:
                cursor = lease.connection.cursor()
                try:
                    cursor.execute(sql, params or None)
                    rows_raw = cursor.fetchall()
                    description = cursor.description or []
                finally:
                    self._close_cursor(cursor)
            except mysql.connector.Error as exc:
                errno = getattr(exc, "errno", None)
                if errno not in _CLIENT_ERRNOS:
                    lease.discard()
                self._log.warning(
                    "Database query failed",
                    extra=log_extra(
                        request_id=request_id,
                        query_shape=shape,
                        errno=errno,
                        error_message=str(exc),
                    ),
                )
                raise self._translate_error(exc, spec) from exc

        columns = [col[0] for col in description]
        rows = [coerce_row(columns, row) for row in rows_raw]

        self._log.info(
            "Query executed",
            extra=log_extra(request_id=request_id, query_shape=shape, row_count=len(rows)),
        )
        return rows

    def _close_cursor(self, cursor: Any) -> None:
        try:
            cursor.close()
        except mysql.connector.Error as exc:
            self._log.debug("Failed to close cursor", extra=log_extra(error_message=str(exc)))
