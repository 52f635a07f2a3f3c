# src/async_search_query/sqlite/base.py
import json
import sqlite3
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from logging import LoggerAdapter
from typing import Any, List, Optional, Set

import aiosqlite

from async_search_query.base.exceptions import QueryExecutionError
from async_search_query.base.interfaces import Row
from async_search_query.base.query import Join, Operator, TextSearchCondition, search_terms
from async_search_query.base.settings import SearchSettings
from async_search_query.base.sql import (
    Placeholders,
    SqlFilterAdapter,
    SqlRequest,
    escape_like,
    quote_identifier,
    quote_literal,
)


async def _configure_connection(connection: aiosqlite.Connection) -> None:
    """Row factory for dict access; LIKE is case sensitive so ILIKE can differ."""
    connection.row_factory = aiosqlite.Row
    await connection.execute("PRAGMA case_sensitive_like = ON;")


class SqliteFilterAdapter(SqlFilterAdapter):
    """
    Runs query descriptors against a SQLite database using aiosqlite.

    Array-valued columns are expected to hold JSON text; the array operators
    are evaluated with ``json_each``. SQLite has no tsvector, so text search
    is term matching: every term must occur (case-insensitively) in at least
    one searched column.
    """

    def __init__(self, db_path: str, settings: Optional[SearchSettings] = None):
        super().__init__(settings)
        self._db_path = db_path

    @property
    def name(self) -> str:
        return "sqlite"

    # --- Connection Helper ---
    async def _get_connection(self) -> aiosqlite.Connection:
        try:
            conn = await aiosqlite.connect(self._db_path)
            await _configure_connection(conn)
            return conn
        except Exception as e:
            self._logger.error(
                f"Failed to connect to SQLite database {self._db_path}: {e}",
                exc_info=True,
            )
            self._handle_db_error(e, f"connecting to {self._db_path}")

    # --- Dialect ---
    def prepare_value(self, value: Any) -> Any:
        """Prepare a value the way SQLite stores it."""
        if value is None:
            return None
        if isinstance(value, Enum):
            return self.prepare_value(value.value)
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value)
        if isinstance(value, datetime):
            if value.tzinfo is not None and value.tzinfo.utcoffset(value) is not None:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value.isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        return value

    def render_ilike(self, column: str, placeholder: str) -> str:
        return f"LOWER({column}) LIKE LOWER({placeholder})"

    def render_array(
        self, column: str, operator: Operator, values: List[Any], params: Placeholders
    ) -> str:
        values = [self.prepare_value(v) for v in values]
        if operator is Operator.OVERLAPS:
            if not values:
                return "1=0"
            placeholders = ", ".join(params.add(v) for v in values)
            return (
                f"EXISTS (SELECT 1 FROM json_each({column}) "
                f"WHERE json_each.value IN ({placeholders}))"
            )
        if operator is Operator.CONTAINS:
            if not values:
                return "1=1"
            return " AND ".join(
                f"EXISTS (SELECT 1 FROM json_each({column}) "
                f"WHERE json_each.value = {params.add(v)})"
                for v in values
            )
        # contained_by: no element of the column lies outside `values`
        if not values:
            return f"NOT EXISTS (SELECT 1 FROM json_each({column}))"
        placeholders = ", ".join(params.add(v) for v in values)
        return (
            f"NOT EXISTS (SELECT 1 FROM json_each({column}) "
            f"WHERE json_each.value NOT IN ({placeholders}))"
        )

    def render_text_search(
        self, text_search: TextSearchCondition, params: Placeholders
    ) -> str:
        columns = [self.column(f) for f in (text_search.fields or self.settings.text_search_columns)]
        if not columns:
            raise ValueError("Text search needs fields or configured text_search_columns")
        clauses = []
        for term, excluded in search_terms(text_search):
            pattern = f"%{escape_like(term.lower())}%"
            any_column = " OR ".join(
                f"LOWER(COALESCE({c}, '')) LIKE {params.add(pattern)} ESCAPE '\\'"
                for c in columns
            )
            clauses.append(f"NOT ({any_column})" if excluded else f"({any_column})")
        if not clauses:
            return "1=1"
        return " AND ".join(clauses)

    def render_embedded(self, join: Join, columns: List[str]) -> str:
        if columns == ["*"]:
            raise ValueError(
                f"SQLite joins need explicit columns to embed '{join.name}', not '*'"
            )
        pairs = ", ".join(
            f"{quote_literal(c)}, " + quote_identifier(join.name + "." + c) for c in columns
        )
        return (
            f"(SELECT json_group_array(json_object({pairs})) "
            f"{self.embedded_source(join)}) AS {quote_identifier(join.name)}"
        )

    # --- Execution ---
    async def fetch(self, request: SqlRequest, logger: LoggerAdapter) -> List[Row]:
        sql, params = self.to_sql(request)
        logger.debug(f"SQLite Query: {sql}")
        logger.debug(f"SQLite Params: {params}")
        conn = await self._get_connection()
        try:
            async with conn.execute(sql, params) as cursor:
                rows = [dict(row) async for row in cursor]
        except Exception as e:
            self._handle_db_error(e, f"fetching from '{self.settings.table}'")
        finally:
            await conn.close()
        json_columns = set(self.settings.json_columns) | set(request.embedded)
        return [self._decode_row(row, json_columns) for row in rows]

    async def count(self, request: SqlRequest, logger: LoggerAdapter) -> int:
        sql, params = self.to_sql(request)
        logger.debug(f"SQLite Count: {sql}")
        conn = await self._get_connection()
        try:
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        except Exception as e:
            self._handle_db_error(e, f"counting '{self.settings.table}'")
        finally:
            await conn.close()
        return int(row[0]) if row else 0

    def _decode_row(self, row: Row, json_columns: Set[str]) -> Row:
        """Decode the JSON text of `json_columns` back into lists/dicts."""
        for key in json_columns.intersection(row):
            value = row[key]
            if not isinstance(value, str):
                continue
            try:
                row[key] = json.loads(value)
            except json.JSONDecodeError:
                self._logger.warning(f"Column '{key}' does not hold valid JSON; left as text")
        return row

    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Log a driver error and raise it as a QueryExecutionError."""
        if isinstance(error, QueryExecutionError):
            raise error
        if isinstance(error, sqlite3.Error):
            self._logger.error(f"SQLite error during {context}: {error}", exc_info=True)
            raise QueryExecutionError(
                f"SQLite error during {context}: {error}", cause=error
            ) from error
        self._logger.error(f"Unexpected error during {context}: {error}", exc_info=True)
        raise QueryExecutionError(
            f"Unexpected error during {context}: {error}", cause=error
        ) from error
