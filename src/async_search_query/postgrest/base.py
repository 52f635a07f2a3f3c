# src/async_search_query/postgrest/base.py
import re
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from logging import LoggerAdapter
from typing import Any, List, Optional, Sequence

from async_search_query.base.clauses import fold_group, null_checked
from async_search_query.base.exceptions import QueryExecutionError
from async_search_query.base.interfaces import FilterAdapter, Row
from async_search_query.base.query import (
    Condition,
    Group,
    Join,
    JoinType,
    Logic,
    Operator,
    SortSpec,
    TextSearchCondition,
    TextSearchType,
    enum_value,
)
from async_search_query.base.settings import SearchSettings
from async_search_query.base.utils import ensure_list

# Characters with meaning inside PostgREST logic trees and list literals
_RESERVED = re.compile(r'[,.:()"\\{}\s]')

# Operator names used inside or=(...) / and=(...) filter tokens
_TOKEN_OPERATORS = {
    Operator.EQ: "eq",
    Operator.NEQ: "neq",
    Operator.GT: "gt",
    Operator.GTE: "gte",
    Operator.LT: "lt",
    Operator.LTE: "lte",
    Operator.LIKE: "like",
    Operator.ILIKE: "ilike",
}

_FTS_OPTION_TYPES = {
    TextSearchType.WEBSEARCH: "web_search",
    TextSearchType.PLAINTO: "plain",
    TextSearchType.PHRASETO: "phrase",
    TextSearchType.PHRASE: "phrase",
}

_FTS_TOKEN_PREFIXES = {
    TextSearchType.WEBSEARCH: "w",
    TextSearchType.PLAINTO: "pl",
    TextSearchType.PHRASETO: "ph",
    TextSearchType.PHRASE: "ph",
}


def encode_value(value: Any) -> str:
    """
    Render a value for use inside a PostgREST filter token.

    Values containing reserved characters are double quoted with backslash
    escapes, as PostgREST expects.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        value = value.isoformat()
    text = str(value)
    if text == "" or _RESERVED.search(text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def encode_list(values: Sequence[Any]) -> str:
    return ",".join(encode_value(v) for v in values)


class _GroupToken:
    """Rendered group: ``and(...)``/``or(...)`` when nested, bare parts at the top."""

    def __init__(self, logic: Logic, parts: List[str]):
        self.logic = logic
        self.parts = parts

    def __str__(self) -> str:
        keyword = "or" if self.logic is Logic.OR else "and"
        return f"{keyword}({','.join(self.parts)})"


class PostgrestFilterAdapter(FilterAdapter[Any]):
    """
    Translates query descriptors into PostgREST filter-builder calls.

    Works with any Supabase/PostgREST style async client exposing
    ``client.table(name).select(columns, count=..., head=...)`` and the usual
    builder methods (``eq``, ``in_``, ``or_``, ``text_search``, ``order``,
    ``range``, ``execute``). OR groups are sent as one ``or_`` filter with
    nested groups written as explicit ``and(...)``/``or(...)`` trees; AND
    groups are applied filter by filter.
    """

    def __init__(self, client: Any, settings: Optional[SearchSettings] = None):
        super().__init__(settings)
        self._client = client

    @property
    def name(self) -> str:
        return "postgrest"

    # --- Select list ---
    def render_join(self, join: Join) -> str:
        if join.type not in (JoinType.LEFT, JoinType.INNER):
            raise ValueError(
                f"PostgREST embedding supports only left and inner joins, "
                f"got {enum_value(join.type)}"
            )
        target = join.table
        if join.type is JoinType.INNER:
            target += "!inner"
        if join.alias:
            target = f"{join.alias}:{target}"
        columns = ",".join(
            c.strip() for c in (join.select or "*").split(",") if c.strip()
        )
        return f"{target}({columns or '*'})"

    def select_clause(self, joins: Sequence[Join]) -> str:
        parts = [self.settings.select_clause or "*"]
        parts.extend(self.render_join(join) for join in joins)
        return ",".join(parts)

    # --- Filter tokens ---
    def condition_token(self, condition: Condition) -> str:
        """Render a condition as a logic-tree token such as ``price.gte.100``."""
        condition = null_checked(condition)
        column, operator, value = condition.field, condition.operator, condition.value
        if operator in _TOKEN_OPERATORS:
            return f"{column}.{_TOKEN_OPERATORS[operator]}.{encode_value(value)}"
        if operator is Operator.IN:
            return f"{column}.in.({encode_list(ensure_list(value))})"
        if operator is Operator.NOT_IN:
            return f"{column}.not.in.({encode_list(ensure_list(value))})"
        if operator is Operator.IS_NULL:
            return f"{column}.is.null"
        if operator is Operator.NOT_NULL:
            return f"{column}.not.is.null"
        if operator is Operator.CONTAINS:
            return f"{column}.cs.{{{encode_list(ensure_list(value))}}}"
        if operator is Operator.CONTAINED_BY:
            return f"{column}.cd.{{{encode_list(ensure_list(value))}}}"
        if operator is Operator.OVERLAPS:
            return f"{column}.ov.{{{encode_list(ensure_list(value))}}}"
        raise ValueError(f"Unsupported operator: {enum_value(operator)}")

    def group_token(self, group: Group) -> _GroupToken:
        return fold_group(
            group,
            lambda condition, path: self.condition_token(condition),
            lambda grp, children, path: _GroupToken(
                grp.logic, [str(result) for _, result in children]
            ),
        )

    # --- FilterAdapter ---
    def new_request(self, joins: Sequence[Join] = (), for_count: bool = False) -> Any:
        table = self._client.table(self.settings.table)
        if for_count:
            # Embedded inner joins still filter the count
            columns = self.select_clause(
                [j for j in joins if j.type is JoinType.INNER]
            )
            return table.select(columns, count="exact", head=True)
        return table.select(self.select_clause(joins))

    def apply_condition(self, request: Any, condition: Condition) -> Any:
        condition = null_checked(condition)
        column, operator, value = condition.field, condition.operator, condition.value
        if operator is Operator.EQ:
            return request.eq(column, value)
        if operator is Operator.NEQ:
            return request.neq(column, value)
        if operator is Operator.GT:
            return request.gt(column, value)
        if operator is Operator.GTE:
            return request.gte(column, value)
        if operator is Operator.LT:
            return request.lt(column, value)
        if operator is Operator.LTE:
            return request.lte(column, value)
        if operator is Operator.LIKE:
            return request.like(column, value)
        if operator is Operator.ILIKE:
            return request.ilike(column, value)
        if operator is Operator.IN:
            return request.in_(column, ensure_list(value))
        if operator is Operator.NOT_IN:
            values = ensure_list(value)
            if not values:
                return request
            return request.filter(column, "not.in", f"({encode_list(values)})")
        if operator is Operator.IS_NULL:
            return request.is_(column, "null")
        if operator is Operator.NOT_NULL:
            return request.filter(column, "not.is", "null")
        if operator is Operator.CONTAINS:
            return request.contains(column, ensure_list(value))
        if operator is Operator.CONTAINED_BY:
            return request.contained_by(column, ensure_list(value))
        if operator is Operator.OVERLAPS:
            return request.ov(column, ensure_list(value))
        raise ValueError(f"Unsupported operator: {enum_value(operator)}")

    def apply_group(self, request: Any, group: Group) -> Any:
        if group.logic is Logic.OR:
            token = self.group_token(group)
            if not token.parts:
                return request
            self._logger.debug(f"PostgREST or filter: {','.join(token.parts)}")
            return request.or_(",".join(token.parts))
        for child in group.conditions:
            if isinstance(child, Group):
                request = self.apply_group(request, child)
            else:
                request = self.apply_condition(request, child)
        return request

    def apply_text_search(self, request: Any, text_search: TextSearchCondition) -> Any:
        config = enum_value(text_search.config)
        if text_search.fields:
            prefix = _FTS_TOKEN_PREFIXES[text_search.type]
            query = encode_value(text_search.query)
            tokens = [
                f"{field}.{prefix}fts({config}).{query}" for field in text_search.fields
            ]
            return request.or_(",".join(tokens))
        return request.text_search(
            self.settings.search_vector_column,
            text_search.query,
            options={"config": config, "type": _FTS_OPTION_TYPES[text_search.type]},
        )

    def apply_order(self, request: Any, sort: SortSpec) -> Any:
        return request.order(sort.field, desc=sort.descending)

    def apply_range(self, request: Any, offset: int, limit: int) -> Any:
        return request.range(offset, offset + limit - 1)

    # --- Execution ---
    async def fetch(self, request: Any, logger: LoggerAdapter) -> List[Row]:
        logger.debug(f"Executing PostgREST select on '{self.settings.table}'")
        try:
            response = await request.execute()
        except Exception as e:
            self._handle_db_error(e, f"fetching from '{self.settings.table}'")
        return list(getattr(response, "data", None) or [])

    async def count(self, request: Any, logger: LoggerAdapter) -> int:
        logger.debug(f"Executing PostgREST count on '{self.settings.table}'")
        try:
            response = await request.execute()
        except Exception as e:
            self._handle_db_error(e, f"counting '{self.settings.table}'")
        total = getattr(response, "count", None)
        if total is None:
            raise QueryExecutionError(
                f"PostgREST returned no count for '{self.settings.table}'"
            )
        return int(total)

    def _handle_db_error(self, error: Exception, context: str = "") -> None:
        """Log a client error and raise it as a QueryExecutionError."""
        # postgrest APIError carries code/message/details attributes
        code = getattr(error, "code", None)
        message = getattr(error, "message", None) or str(error)
        self._logger.error(f"Error during {context}: {message}", exc_info=True)
        suffix = f" (code {code})" if code else ""
        raise QueryExecutionError(
            f"PostgREST error during {context}{suffix}: {message}", cause=error
        ) from error
