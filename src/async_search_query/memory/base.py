# src/async_search_query/memory/base.py
import asyncio
import copy
import re
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from async_search_query.base.clauses import fold_group, null_checked
from async_search_query.base.exceptions import QueryExecutionError
from async_search_query.base.interfaces import FilterAdapter, Row
from async_search_query.base.query import (
    Condition,
    Group,
    Join,
    Logic,
    Operator,
    SortSpec,
    TextSearchCondition,
    enum_value,
    search_terms,
)
from async_search_query.base.settings import SearchSettings
from async_search_query.base.utils import ensure_list

Predicate = Callable[[Row], bool]


def _get_nested_field_value(row: Row, field_name: str) -> Any:
    """Get a value from a nested field using dot notation."""
    if "." not in field_name:
        return row.get(field_name)
    curr: Any = row
    for part in field_name.split("."):
        if not isinstance(curr, dict) or part not in curr:
            return None
        curr = curr[part]
    return curr


def like_to_regex(pattern: str, ignore_case: bool = False) -> "re.Pattern":
    """Compile a SQL LIKE pattern (``%`` and ``_`` wildcards) to a regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL | (re.IGNORECASE if ignore_case else 0)
    return re.compile("".join(parts), flags)


def _compare(op: Callable[[Any, Any], bool], actual: Any, expected: Any) -> bool:
    try:
        return op(actual, expected)
    except TypeError:
        # Incomparable types never match, as in a typed database column
        return False


def _check_operator(operator: Operator, actual: Any, expected: Any) -> bool:
    """
    Evaluate one operator with SQL NULL semantics: a missing or None value
    only satisfies ``is_null``.
    """
    if operator is Operator.IS_NULL:
        return actual is None
    if operator is Operator.NOT_NULL:
        return actual is not None
    if actual is None:
        return False
    if operator is Operator.EQ:
        return actual == expected
    if operator is Operator.NEQ:
        return actual != expected
    if operator is Operator.GT:
        return _compare(lambda a, b: a > b, actual, expected)
    if operator is Operator.GTE:
        return _compare(lambda a, b: a >= b, actual, expected)
    if operator is Operator.LT:
        return _compare(lambda a, b: a < b, actual, expected)
    if operator is Operator.LTE:
        return _compare(lambda a, b: a <= b, actual, expected)
    if operator in (Operator.LIKE, Operator.ILIKE):
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        regex = like_to_regex(expected, ignore_case=operator is Operator.ILIKE)
        return regex.fullmatch(actual) is not None
    if operator is Operator.IN:
        return actual in ensure_list(expected)
    if operator is Operator.NOT_IN:
        return actual not in ensure_list(expected)
    values = ensure_list(expected)
    items = ensure_list(actual)
    if operator is Operator.CONTAINS:
        return all(v in items for v in values)
    if operator is Operator.CONTAINED_BY:
        return all(i in values for i in items)
    if operator is Operator.OVERLAPS:
        return any(v in items for v in values)
    raise ValueError(f"Unsupported operator: {enum_value(operator)}")


@dataclass
class MemoryRequest:
    predicates: List[Predicate] = field(default_factory=list)
    order: List[SortSpec] = field(default_factory=list)
    offset: int = 0
    limit: Optional[int] = None
    for_count: bool = False


class MemoryFilterAdapter(FilterAdapter[MemoryRequest]):
    """
    Evaluates query descriptors over an in-memory list of dict rows.

    Intended for tests and prototyping. Rows are copied on the way in and on
    the way out, so callers cannot mutate the stored data. Text search is
    case-insensitive term matching over the searched fields. Joins are not
    supported.
    """

    def __init__(
        self,
        rows: Optional[Iterable[Row]] = None,
        settings: Optional[SearchSettings] = None,
    ):
        super().__init__(settings)
        self._rows: List[Row] = copy.deepcopy(list(rows or []))

    @property
    def name(self) -> str:
        return "memory"

    @property
    def rows(self) -> List[Row]:
        return copy.deepcopy(self._rows)

    def load(self, rows: Iterable[Row]) -> None:
        """Replace the stored rows."""
        self._rows = copy.deepcopy(list(rows))

    # --- Predicates ---
    def _condition_predicate(self, condition: Condition) -> Predicate:
        condition = null_checked(condition)
        if not isinstance(condition.operator, Operator):
            raise ValueError(f"Unsupported operator: {condition.operator}")
        field_name, operator, expected = condition.field, condition.operator, condition.value
        return lambda row: _check_operator(
            operator, _get_nested_field_value(row, field_name), expected
        )

    def _group_predicate(self, group: Group) -> Predicate:
        def on_condition(condition: Condition, path) -> Predicate:
            return self._condition_predicate(condition)

        def on_group(grp: Group, children: list, path) -> Predicate:
            predicates = [predicate for _, predicate in children]
            if grp.logic is Logic.OR:
                return lambda row: any(p(row) for p in predicates)
            return lambda row: all(p(row) for p in predicates)

        return fold_group(group, on_condition, on_group)

    def _text_search_predicate(self, text_search: TextSearchCondition) -> Predicate:
        fields = list(text_search.fields or self.settings.text_search_columns)
        terms = [(term.lower(), excluded) for term, excluded in search_terms(text_search)]

        def matches(row: Row) -> bool:
            haystacks = [
                str(value).lower()
                for value in (_get_nested_field_value(row, f) for f in fields)
                if value is not None
            ]
            for term, excluded in terms:
                found = any(term in text for text in haystacks)
                if found == excluded:
                    return False
            return True

        return matches

    # --- FilterAdapter ---
    def new_request(self, joins: Sequence[Join] = (), for_count: bool = False) -> MemoryRequest:
        if joins:
            raise NotImplementedError("MemoryFilterAdapter does not support joins")
        return MemoryRequest(for_count=for_count)

    def apply_condition(self, request: MemoryRequest, condition: Condition) -> MemoryRequest:
        request.predicates.append(self._condition_predicate(condition))
        return request

    def apply_group(self, request: MemoryRequest, group: Group) -> MemoryRequest:
        request.predicates.append(self._group_predicate(group))
        return request

    def apply_text_search(
        self, request: MemoryRequest, text_search: TextSearchCondition
    ) -> MemoryRequest:
        request.predicates.append(self._text_search_predicate(text_search))
        return request

    def apply_order(self, request: MemoryRequest, sort: SortSpec) -> MemoryRequest:
        request.order.append(sort)
        return request

    def apply_range(self, request: MemoryRequest, offset: int, limit: int) -> MemoryRequest:
        request.offset = offset
        request.limit = limit
        return request

    # --- Execution ---
    def _matching(self, request: MemoryRequest) -> List[Row]:
        return [row for row in self._rows if all(p(row) for p in request.predicates)]

    def _sorted(self, rows: List[Row], order: List[SortSpec]) -> List[Row]:
        """Multi-key stable sort; None values always sort last."""
        for sort in reversed(order):
            present = [r for r in rows if _get_nested_field_value(r, sort.field) is not None]
            missing = [r for r in rows if _get_nested_field_value(r, sort.field) is None]
            present.sort(
                key=lambda r: _get_nested_field_value(r, sort.field),
                reverse=sort.descending,
            )
            rows = present + missing
        return rows

    async def fetch(self, request: MemoryRequest, logger: LoggerAdapter) -> List[Row]:
        await asyncio.sleep(0)
        try:
            rows = self._sorted(self._matching(request), request.order)
        except Exception as e:
            logger.error(f"Error evaluating in-memory query: {e}", exc_info=True)
            raise QueryExecutionError(
                f"Error evaluating in-memory query: {e}", cause=e
            ) from e
        end = None if request.limit is None else request.offset + request.limit
        rows = rows[request.offset:end]
        logger.debug(f"Memory query matched {len(rows)} row(s)")
        return copy.deepcopy(rows)

    async def count(self, request: MemoryRequest, logger: LoggerAdapter) -> int:
        await asyncio.sleep(0)
        return len(self._matching(request))
