# src/async_search_query/base/builder.py
import copy
import logging
from typing import Any, Callable, Iterable, List, Optional, Type, TypeVar, Union

from .query import (
    ARRAY_VALUE_OPERATORS,
    NULL_CHECK_OPERATORS,
    UNSET,
    Condition,
    Group,
    Join,
    JoinType,
    Logic,
    Operator,
    Pagination,
    QueryDescriptor,
    SortOrder,
    SortSpec,
    TextSearchCondition,
    TextSearchConfig,
    TextSearchType,
    ValidationResult,
    coerce_enum,
)
from .utils import is_array_value
from .validator import validate

# --- Setup Logging ---
log = logging.getLogger(__name__)

E = TypeVar("E")
B = TypeVar("B", bound="_ConditionMethods")


def _strict_enum(enum_cls: Type[E], value: Any, what: str) -> E:
    """Coerce `value` to `enum_cls`, failing fast on anything unrecognised."""
    member = coerce_enum(enum_cls, value)
    if not isinstance(member, enum_cls):
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValueError(f"Invalid {what} {value!r}; expected one of: {allowed}")
    return member


def _check_field(field: Any) -> str:
    if not isinstance(field, str):
        raise TypeError(f"Field name must be a string, got {type(field).__name__}")
    return field


def _check_int(value: Any, what: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{what} must be an integer, got {type(value).__name__}")
    return value


def _make_condition(
    field: Any, operator: Any, value: Any, logic: Any = None
) -> Condition:
    field = _check_field(field)
    op = _strict_enum(Operator, operator, "operator")
    if op in NULL_CHECK_OPERATORS:
        value = UNSET
    elif value is UNSET:
        raise ValueError(f"A value is required for operator '{op.value}'")
    if op in ARRAY_VALUE_OPERATORS:
        if not is_array_value(value):
            raise TypeError(
                f"Operator '{op.value}' requires a list, tuple or set of values, "
                f"got {type(value).__name__}"
            )
        value = list(value)
    return Condition(
        field=field,
        operator=op,
        value=value,
        logic=None if logic is None else _strict_enum(Logic, logic, "logic"),
    )


class _ConditionMethods:
    """Condition helpers shared by the query builder and group builders."""

    def _add(self: B, item: Union[Condition, Group]) -> B:
        raise NotImplementedError

    def where(
        self: B,
        field: str,
        operator: Union[Operator, str],
        value: Any = UNSET,
        logic: Union[Logic, str] = Logic.AND,
    ) -> B:
        """Add a condition; `logic` controls how it combines with its siblings."""
        return self._add(_make_condition(field, operator, value, logic))

    def where_between(self: B, field: str, minimum: Any, maximum: Any) -> B:
        """Add ``gte``/``lte`` bounds; a None bound is skipped."""
        _check_field(field)
        if minimum is not None:
            self.where(field, Operator.GTE, minimum)
        if maximum is not None:
            self.where(field, Operator.LTE, maximum)
        return self

    def where_in(self: B, field: str, values: Iterable[Any]) -> B:
        return self.where(field, Operator.IN, values)

    def where_not_in(self: B, field: str, values: Iterable[Any]) -> B:
        return self.where(field, Operator.NOT_IN, values)

    def where_like(self: B, field: str, pattern: str, case_sensitive: bool = False) -> B:
        """Substring match: the pattern is wrapped in ``%`` wildcards."""
        if not isinstance(pattern, str):
            raise TypeError(f"Pattern must be a string, got {type(pattern).__name__}")
        operator = Operator.LIKE if case_sensitive else Operator.ILIKE
        return self.where(field, operator, f"%{pattern}%")

    def where_null(self: B, field: str) -> B:
        return self.where(field, Operator.IS_NULL)

    def where_not_null(self: B, field: str) -> B:
        return self.where(field, Operator.NOT_NULL)


class GroupBuilder(_ConditionMethods):
    """Collects the children of one group; handed to `where_group` callbacks."""

    def __init__(self, logic: Union[Logic, str] = Logic.AND):
        self.logic = _strict_enum(Logic, logic, "logic")
        self._children: List[Union[Condition, Group]] = []

    def _add(self, item: Union[Condition, Group]) -> "GroupBuilder":
        self._children.append(item)
        return self

    def group(
        self, logic: Union[Logic, str], builder_fn: Callable[["GroupBuilder"], Any]
    ) -> "GroupBuilder":
        """Add a nested group populated by `builder_fn`."""
        return self._add(_build_group(logic, builder_fn))

    def build(self) -> Group:
        return Group(conditions=tuple(self._children), logic=self.logic)


def _build_group(
    logic: Union[Logic, str], builder_fn: Callable[[GroupBuilder], Any]
) -> Group:
    if not callable(builder_fn):
        raise TypeError(
            f"Group builder must be callable, got {type(builder_fn).__name__}"
        )
    nested = GroupBuilder(logic)
    builder_fn(nested)
    return nested.build()


class SearchQueryBuilder(_ConditionMethods):
    """
    Fluent construction of a QueryDescriptor.

    Every chainable method mutates the builder's draft and returns the builder.
    `build()` returns an independent, immutable descriptor: later calls on the
    builder never affect previously built descriptors. Argument type errors
    raise immediately; range problems (such as page 0) are left to the
    validator.

    Example:
        query = (
            SearchQueryBuilder.create()
            .text_search("BMW 3 Series")
            .where("make", "eq", "BMW")
            .where_between("year", 2015, 2020)
            .where_group("OR", lambda g: g.where("fuel", "eq", "diesel")
                                          .where("fuel", "eq", "hybrid"))
            .order_by("price", "asc")
            .paginate(1, 12)
            .build()
        )
    """

    def __init__(self):
        self._logger = log
        self._text_search: Optional[TextSearchCondition] = None
        self._conditions: List[Condition] = []
        self._groups: List[Group] = []
        self._sorting: List[SortSpec] = []
        self._pagination: Optional[Pagination] = None
        self._joins: List[Join] = []

    @classmethod
    def create(cls) -> "SearchQueryBuilder":
        return cls()

    def _add(self, item: Union[Condition, Group]) -> "SearchQueryBuilder":
        if isinstance(item, Group):
            self._groups.append(item)
        else:
            self._conditions.append(item)
        self._logger.debug(f"Added to query draft: {item!r}")
        return self

    def text_search(
        self,
        query: str,
        fields: Optional[Iterable[str]] = None,
        type: Union[TextSearchType, str] = TextSearchType.WEBSEARCH,
        config: Union[TextSearchConfig, str] = TextSearchConfig.ENGLISH,
    ) -> "SearchQueryBuilder":
        """Set the full-text search clause, replacing any previous one."""
        if not isinstance(query, str):
            raise TypeError(
                f"Text search query must be a string, got {type_name(query)}"
            )
        if fields is not None:
            if isinstance(fields, str) or not is_array_value(fields):
                raise TypeError("Text search fields must be a list of field names")
            fields = tuple(_check_field(f) for f in fields)
        self._text_search = TextSearchCondition(
            query=query,
            fields=fields,
            type=_strict_enum(TextSearchType, type, "text search type"),
            config=_strict_enum(TextSearchConfig, config, "text search config"),
        )
        return self

    def where_group(
        self,
        logic: Union[Logic, str],
        builder_fn: Callable[[GroupBuilder], Any],
    ) -> "SearchQueryBuilder":
        """Add a group whose children are added by `builder_fn(group_builder)`."""
        return self._add(_build_group(logic, builder_fn))

    def order_by(
        self, field: str, order: Union[SortOrder, str] = SortOrder.DESC
    ) -> "SearchQueryBuilder":
        """Append a sort key; keys apply in the order they were added."""
        self._sorting.append(
            SortSpec(
                field=_check_field(field),
                order=_strict_enum(SortOrder, order, "sort order"),
            )
        )
        return self

    def paginate(self, page: int, limit: int = 12) -> "SearchQueryBuilder":
        self._pagination = Pagination(
            page=_check_int(page, "Page"), limit=_check_int(limit, "Limit")
        )
        return self

    def join(
        self,
        table: str,
        select: Optional[str] = None,
        type: Union[JoinType, str] = JoinType.LEFT,
        alias: Optional[str] = None,
        on: str = "",
    ) -> "SearchQueryBuilder":
        """Request rows of a related table to be embedded in the results."""
        if not isinstance(table, str):
            raise TypeError(f"Join table must be a string, got {type_name(table)}")
        self._joins.append(
            Join(
                table=table,
                type=_strict_enum(JoinType, type, "join type"),
                on=on,
                select=select,
                alias=alias,
            )
        )
        return self

    def reset(self) -> "SearchQueryBuilder":
        """Discard the draft."""
        self.__init__()
        return self

    def build(self) -> QueryDescriptor:
        """Return an immutable deep copy of the current draft."""
        descriptor = QueryDescriptor(
            text_search=self._text_search,
            conditions=tuple(self._conditions),
            groups=tuple(self._groups),
            sorting=tuple(self._sorting),
            pagination=self._pagination,
            joins=tuple(self._joins),
        )
        descriptor = copy.deepcopy(descriptor)
        self._logger.debug(f"Built query descriptor: {descriptor!r}")
        return descriptor

    def validate(self) -> ValidationResult:
        """Validate the current draft."""
        return validate(self.build())


def type_name(value: Any) -> str:
    return type(value).__name__
