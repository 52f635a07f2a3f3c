# src/async_search_query/base/sql.py
"""
Clause rendering shared by the SQL backends.

Parameters are collected in a :class:`Placeholders` list while clauses are
rendered; each value gets the backend's placeholder (``?`` or ``$n``) at the
moment it is added, so caller supplied SQL such as a join's ``on`` text is
never rewritten.
"""
import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

from .clauses import fold_group, join_clauses, null_checked
from .interfaces import FilterAdapter
from .query import (
    Condition,
    Group,
    Join,
    Logic,
    Operator,
    SortSpec,
    TextSearchCondition,
    enum_value,
)
from .utils import ensure_list

log = logging.getLogger(__name__)

Fragment = Tuple[str, List[Any]]

_COMPARISONS = {
    Operator.EQ: "=",
    Operator.NEQ: "<>",
    Operator.GT: ">",
    Operator.GTE: ">=",
    Operator.LT: "<",
    Operator.LTE: "<=",
}

QMARK = "qmark"
NUMERIC = "numeric"


def quote_identifier(identifier: str) -> str:
    """Quote an identifier, treating dots as qualifier separators."""
    return ".".join(
        '"' + part.replace('"', '""') + '"' for part in identifier.split(".")
    )


def quote_literal(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def escape_like(text: str, escape: str = "\\") -> str:
    """Escape LIKE wildcards so `text` matches literally."""
    return (
        text.replace(escape, escape * 2).replace("%", escape + "%").replace("_", escape + "_")
    )


class Placeholders:
    """Ordered statement parameters and their placeholders."""

    def __init__(self, style: str = QMARK):
        if style not in (QMARK, NUMERIC):
            raise ValueError(f"Unknown placeholder style: {style}")
        self.style = style
        self.values: List[Any] = []

    def marker(self, position: int) -> str:
        """Placeholder for the parameter at 1-based `position`."""
        return "?" if self.style == QMARK else f"${position}"

    def add(self, value: Any) -> str:
        self.values.append(value)
        return self.marker(len(self.values))


@dataclass
class SqlRequest:
    """A SELECT (or COUNT) statement under construction."""

    table: str
    params: Placeholders
    primary_key: str = "id"
    select: List[str] = field(default_factory=list)
    joins: List[str] = field(default_factory=list)
    embedded: List[str] = field(default_factory=list)
    where: List[str] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    for_count: bool = False

    def add_where(self, clause: str) -> "SqlRequest":
        self.where.append(clause)
        return self

    def to_sql(self) -> Fragment:
        """
        Render the statement and its parameters.

        With joins, each base row is returned once: data requests group by
        the primary key and counts count distinct keys.
        """
        table = quote_identifier(self.table)
        key = quote_identifier(f"{self.table}.{self.primary_key}")
        if self.for_count:
            counted = f"DISTINCT {key}" if self.joins else "*"
            sql = f"SELECT COUNT({counted}) FROM {table}"
        else:
            sql = f"SELECT {', '.join(self.select) or '*'} FROM {table}"
        if self.joins:
            sql += " " + " ".join(self.joins)
        values = list(self.params.values)
        if self.where:
            sql += " WHERE " + " AND ".join(f"({clause})" for clause in self.where)
        if not self.for_count:
            if self.joins:
                sql += f" GROUP BY {key}"
            if self.order:
                sql += " ORDER BY " + ", ".join(self.order)
            if self.limit is not None:
                values.append(self.limit)
                sql += f" LIMIT {self.params.marker(len(values))}"
                if self.offset:
                    values.append(self.offset)
                    sql += f" OFFSET {self.params.marker(len(values))}"
        return sql, values


class SqlFilterAdapter(FilterAdapter[SqlRequest]):
    """
    Renders descriptors to parameterised SQL.

    Subclasses supply the dialect specific pieces: placeholder style,
    case-insensitive pattern matching, array operators, full-text search,
    embedding of joined rows and value conversion, plus `fetch`/`count`
    against their driver.
    """

    placeholder_style = QMARK

    def placeholders(self) -> Placeholders:
        return Placeholders(self.placeholder_style)

    def column(self, field_name: str) -> str:
        """Quoted column reference; bare names are qualified with the base table."""
        if "." in field_name:
            return quote_identifier(field_name)
        return quote_identifier(f"{self.settings.table}.{field_name}")

    def prepare_value(self, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    # --- Dialect hooks ---
    @abstractmethod
    def render_ilike(self, column: str, placeholder: str) -> str:
        """SQL for a case-insensitive match of `column` against `placeholder`."""
        pass

    @abstractmethod
    def render_array(
        self, column: str, operator: Operator, values: List[Any], params: Placeholders
    ) -> str:
        """SQL for ``contains``, ``contained_by`` and ``overlaps``."""
        pass

    @abstractmethod
    def render_text_search(
        self, text_search: TextSearchCondition, params: Placeholders
    ) -> str:
        pass

    @abstractmethod
    def render_embedded(self, join: Join, columns: List[str]) -> str:
        """
        Select expression aggregating the joined rows of one base row into a
        JSON array of objects, named after the join.
        """
        pass

    # --- Rendering ---
    def render_condition(self, condition: Condition, params: Placeholders) -> str:
        if not isinstance(condition.field, str) or not condition.field:
            raise ValueError(f"Condition has no field: {condition!r}")
        condition = null_checked(condition)
        column = self.column(condition.field)
        operator = condition.operator
        value = condition.value

        if operator in _COMPARISONS:
            if value is None:
                # Comparisons with NULL never match
                return "1=0"
            placeholder = params.add(self.prepare_value(value))
            return f"{column} {_COMPARISONS[operator]} {placeholder}"
        if operator is Operator.LIKE:
            return f"{column} LIKE {params.add(self.prepare_value(value))}"
        if operator is Operator.ILIKE:
            return self.render_ilike(column, params.add(self.prepare_value(value)))
        if operator in (Operator.IN, Operator.NOT_IN):
            values = [self.prepare_value(v) for v in ensure_list(value)]
            if not values:
                # Empty IN matches nothing; empty NOT IN matches everything
                return "1=0" if operator is Operator.IN else "1=1"
            placeholders = ", ".join(params.add(v) for v in values)
            keyword = "IN" if operator is Operator.IN else "NOT IN"
            return f"{column} {keyword} ({placeholders})"
        if operator is Operator.IS_NULL:
            return f"{column} IS NULL"
        if operator is Operator.NOT_NULL:
            return f"{column} IS NOT NULL"
        if operator in (Operator.CONTAINS, Operator.CONTAINED_BY, Operator.OVERLAPS):
            return self.render_array(column, operator, ensure_list(value), params)
        raise ValueError(f"Unsupported operator: {enum_value(operator)}")

    def render_group(self, group: Group, params: Placeholders) -> str:
        """Render a group tree with explicit parenthesised AND/OR."""

        def on_condition(condition: Condition, path) -> str:
            return self.render_condition(condition, params)

        def on_group(grp: Group, children: list, path) -> str:
            parts = [sql for _, sql in children]
            if not parts:
                return "1=0" if grp.logic is Logic.OR else "1=1"
            joined = join_clauses([f"({p})" for p in parts], grp.logic, " AND ", " OR ")
            return f"({joined})"

        return fold_group(group, on_condition, on_group)

    def render_join(self, join: Join) -> str:
        if not join.on:
            raise ValueError(
                f"Join on '{join.table}' needs an 'on' condition for SQL backends"
            )
        join_type = enum_value(join.type).upper()
        target = quote_identifier(join.table)
        if join.alias:
            target += f" AS {quote_identifier(join.alias)}"
        return f"{join_type} JOIN {target} ON {join.on}"

    def join_columns(self, join: Join) -> List[str]:
        """Requested columns of a join; ``["*"]`` for all of them."""
        return [c.strip() for c in (join.select or "").split(",") if c.strip()]

    def embedded_source(self, join: Join) -> str:
        """``FROM ... WHERE <on>`` of the correlated subquery for a join."""
        target = quote_identifier(join.table)
        if join.alias:
            target += f" AS {quote_identifier(join.alias)}"
        return f"FROM {target} WHERE {join.on}"

    # --- FilterAdapter ---
    def new_request(self, joins: Sequence[Join] = (), for_count: bool = False) -> SqlRequest:
        select = [
            f"{quote_identifier(self.settings.table)}.*"
            if column == "*"
            else self.column(column)
            for column in self.settings.select_fields
        ]
        request = SqlRequest(
            table=self.settings.table,
            params=self.placeholders(),
            primary_key=self.settings.primary_key,
            select=select,
            for_count=for_count,
        )
        for join in joins:
            request.joins.append(self.render_join(join))
            columns = self.join_columns(join)
            if columns and not for_count:
                request.select.append(self.render_embedded(join, columns))
                request.embedded.append(join.name)
        return request

    def apply_condition(self, request: SqlRequest, condition: Condition) -> SqlRequest:
        return request.add_where(self.render_condition(condition, request.params))

    def apply_group(self, request: SqlRequest, group: Group) -> SqlRequest:
        return request.add_where(self.render_group(group, request.params))

    def apply_text_search(
        self, request: SqlRequest, text_search: TextSearchCondition
    ) -> SqlRequest:
        return request.add_where(self.render_text_search(text_search, request.params))

    def apply_order(self, request: SqlRequest, sort: SortSpec) -> SqlRequest:
        direction = "DESC" if sort.descending else "ASC"
        request.order.append(f"{self.column(sort.field)} {direction}")
        return request

    def apply_range(self, request: SqlRequest, offset: int, limit: int) -> SqlRequest:
        request.offset = offset
        request.limit = limit
        return request

    def to_sql(self, request: SqlRequest) -> Fragment:
        """Final statement and parameters."""
        return request.to_sql()
