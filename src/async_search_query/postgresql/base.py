# src/async_search_query/postgresql/base.py
import json
from contextlib import asynccontextmanager
from logging import LoggerAdapter
from typing import Any, AsyncGenerator, List, Optional, Set

import asyncpg

from async_search_query.base.exceptions import QueryExecutionError
from async_search_query.base.interfaces import Row
from async_search_query.base.query import (
    Join,
    Operator,
    TextSearchCondition,
    TextSearchType,
    enum_value,
)
from async_search_query.base.settings import SearchSettings
from async_search_query.base.sql import (
    NUMERIC,
    Placeholders,
    SqlFilterAdapter,
    SqlRequest,
    quote_identifier,
    quote_literal,
)

_ARRAY_OPERATORS = {
    Operator.CONTAINS: "@>",
    Operator.CONTAINED_BY: "<@",
    Operator.OVERLAPS: "&&",
}

_TSQUERY_FUNCTIONS = {
    TextSearchType.WEBSEARCH: "websearch_to_tsquery",
    TextSearchType.PLAINTO: "plainto_tsquery",
    TextSearchType.PHRASETO: "phraseto_tsquery",
    TextSearchType.PHRASE: "phraseto_tsquery",
}



class PostgresFilterAdapter(SqlFilterAdapter):
    """
    Runs query descriptors against PostgreSQL through an asyncpg pool.

    Full-text search uses the `search_vector_column` tsvector of the table,
    or `to_tsvector` over the requested fields. Array operators map to the
    native ``@>``, ``<@`` and ``&&`` operators.
    """

    def __init__(self, pool: asyncpg.Pool, settings: Optional[SearchSettings] = None):
        super().__init__(settings)
        self._pool = pool
        self._codec_conn_ids: Set[int] = set()

    @property
    def name(self) -> str:
        return "postgresql"

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """Acquire a pooled connection with JSONB decoding configured."""
        async with self._pool.acquire() as conn:
            conn_id = conn.get_server_pid()
            if conn_id not in self._codec_conn_ids:
                await conn.set_type_codec(
                    "jsonb",
                    encoder=json.dumps,
                    decoder=json.loads,
                    schema="pg_catalog",
                    format="text",
                )
                self._codec_conn_ids.add(conn_id)
                self._logger.debug(f"Set JSONB codec for connection {conn_id}")
            yield conn

    # --- Dialect ---
    placeholder_style = NUMERIC

    def render_ilike(self, column: str, placeholder: str) -> str:
        return f"{column} ILIKE {placeholder}"

    def render_array(
        self, column: str, operator: Operator, values: List[Any], params: Placeholders
    ) -> str:
        return f"{column} {_ARRAY_OPERATORS[operator]} {params.add(values)}"

    def render_text_search(
        self, text_search: TextSearchCondition, params: Placeholders
    ) -> str:
        function = _TSQUERY_FUNCTIONS[text_search.type]
        # Config comes from a closed enumeration, so it is inlined as a literal
        config = enum_value(text_search.config)
        if text_search.fields:
            return " OR ".join(
                f"to_tsvector('{config}', coalesce({self.column(f)}::text, '')) "
                f"@@ {function}('{config}', {params.add(text_search.query)})"
                for f in text_search.fields
            )
        vector = self.column(self.settings.search_vector_column)
        return f"{vector} @@ {function}('{config}', {params.add(text_search.query)})"

    def render_embedded(self, join: Join, columns: List[str]) -> str:
        if columns == ["*"]:
            item = f"to_jsonb({quote_identifier(join.name)})"
        else:
            pairs = ", ".join(
                f"{quote_literal(c)}, " + quote_identifier(join.name + "." + c)
                for c in columns
            )
            item = f"jsonb_build_object({pairs})"
        return (
            f"(SELECT COALESCE(jsonb_agg({item}), '[]'::jsonb) "
            f"{self.embedded_source(join)}) AS {quote_identifier(join.name)}"
        )

    # --- Execution ---
    async def fetch(self, request: SqlRequest, logger: LoggerAdapter) -> List[Row]:
        sql, params = self.to_sql(request)
        logger.debug(f"PostgreSQL Query: {sql}")
        logger.debug(f"PostgreSQL Params: {params}")
        try:
            async with self._get_session() as conn:
                rows = await conn.fetch(sql, *params)
        except Exception as e:
            self._handle_db_error(e, f"fetching from {quote_identifier(self.settings.table)}")
        return [dict(row) for row in rows]

    async def count(self, request: SqlRequest, logger: LoggerAdapter) -> int:
        sql, params = self.to_sql(request)
        logger.debug(f"PostgreSQL Count: {sql}")
        try:
            async with self._get_session() as conn:
                total = await conn.fetchval(sql, *params)
        except Exception as e:
            self._handle_db_error(e, f"counting {quote_identifier(self.settings.table)}")
        return int(total or 0)

    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Log a driver error and raise it as a QueryExecutionError."""
        log_message = f"Error during {context}: {error}"
        if isinstance(error, asyncpg.PostgresError):
            self._logger.error(log_message, exc_info=True)
            detail = getattr(error, "sqlstate", None)
            raise QueryExecutionError(
                f"PostgreSQL error during {context} (SQLSTATE {detail}): {error}",
                cause=error,
            ) from error
        if isinstance(error, (OSError, asyncpg.InterfaceError)):
            self._logger.error(log_message, exc_info=True)
            raise QueryExecutionError(
                f"PostgreSQL connection problem during {context}: {error}",
                cause=error,
            ) from error
        self._logger.error(f"Unexpected error during {context}: {error}", exc_info=True)
        raise QueryExecutionError(
            f"Unexpected error during {context}: {error}", cause=error
        ) from error
