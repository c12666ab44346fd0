"""Guarded execution of translated queries."""

import logging
import sqlite3
from typing import Any

from ..errors import ExecutionError, QueryRejectedError
from ..logging import get_logger
from ..storage import Store

logger = logging.getLogger(__name__)

READ_ONLY_KEYWORD = "SELECT"
NO_RESULTS = "Запрос выполнен успешно, но результатов не найдено."


def is_read_only(sql: str) -> bool:
    """Check that a query starts with SELECT.

    Only surrounding whitespace is trimmed, so a leading comment makes the
    query fail the check.
    """
    return sql.strip().upper().startswith(READ_ONLY_KEYWORD)


def format_value(value: Any) -> str:
    """Printable form of a column value."""
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def render_rows(columns: list[str], rows: list[tuple[str, ...]]) -> str:
    """Render rows as numbered blocks of ``column: value`` lines."""
    if not rows:
        return NO_RESULTS

    parts = [f"Найдено записей: {len(rows)}\n"]
    for i, row in enumerate(rows, start=1):
        lines = [f"Запись {i}:"]
        lines.extend(f"  {column}: {value}" for column, value in zip(columns, row))
        parts.append("\n".join(lines) + "\n")
    return "\n".join(parts)


class QueryExecutor:
    """Runs read-only queries against the store and renders the rows."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def execute(self, sql: str) -> str:
        """Run a query and return its rendered rows.

        Raises:
            QueryRejectedError: If the query is not a SELECT. Nothing is run.
            ExecutionError: If the store fails. No partial results are returned.
        """
        if not is_read_only(sql):
            get_logger().log("query_rejected", sql=sql)
            raise QueryRejectedError("only SELECT queries are allowed")

        logger.info("Executing SQL query")
        try:
            cursor = self.store.run_query(sql)
            columns = [description[0] for description in cursor.description or ()]
            rows = [tuple(format_value(value) for value in row) for row in cursor]
        except (sqlite3.Error, sqlite3.Warning) as e:
            raise ExecutionError(str(e)) from e

        logger.info("SQL executed, rows: %d", len(rows))
        get_logger().log("query_executed", rows=len(rows))
        return render_rows(columns, rows)
