# src/async_search_query/base/query.py
import copy
import json
import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from .utils import to_plain

# --- Setup Logging ---
log = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


# --- Enumerations ---
class Operator(Enum):
    """Enumeration of valid condition operators."""

    # Comparison
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    # Pattern matching
    LIKE = "like"
    ILIKE = "ilike"
    # Membership
    IN = "in"
    NOT_IN = "not_in"
    # Null checks
    IS_NULL = "is_null"
    NOT_NULL = "not_null"
    # Array / JSON containment
    CONTAINS = "contains"
    CONTAINED_BY = "contained_by"
    OVERLAPS = "overlaps"


class Logic(Enum):
    AND = "AND"
    OR = "OR"


class TextSearchType(Enum):
    WEBSEARCH = "websearch"
    PLAINTO = "plainto"
    PHRASETO = "phraseto"
    PHRASE = "phrase"


class TextSearchConfig(Enum):
    ENGLISH = "english"
    SIMPLE = "simple"


class SortOrder(Enum):
    ASC = "asc"
    DESC = "desc"


class JoinType(Enum):
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"


NULL_CHECK_OPERATORS = frozenset({Operator.IS_NULL, Operator.NOT_NULL})
ARRAY_VALUE_OPERATORS = frozenset({Operator.IN, Operator.NOT_IN})
PATTERN_OPERATORS = frozenset({Operator.LIKE, Operator.ILIKE})


class _Unset:
    """Marker for a condition value that was never supplied (None is a real value)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return (_Unset, ())


UNSET = _Unset()


def coerce_enum(enum_cls: Type[E], value: Any) -> Union[E, Any]:
    """
    Map a string onto a member of `enum_cls` (matching values case-insensitively).

    Unrecognised values are returned unchanged so that validation can report
    them instead of construction failing.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            lowered = value.lower()
            for member in enum_cls:
                if member.value.lower() == lowered:
                    return member
    return value


def enum_value(value: Any) -> Any:
    """Return the raw value of an enum member, or the value itself."""
    return value.value if isinstance(value, Enum) else value


def _as_tuple(value: Any) -> Any:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value


def _get(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be a mapping, got {type(data).__name__}")
    return data


# Groups nested deeper than this are rejected while parsing mappings.
MAX_PARSED_GROUP_DEPTH = 32


# --- Structured Query Model ---
@dataclass(frozen=True)
class Condition:
    """A single filter predicate (field <operator> value)."""

    field: str
    operator: Union[Operator, str, None]
    value: Any = UNSET
    logic: Union[Logic, str, None] = None

    def __post_init__(self):
        object.__setattr__(self, "operator", coerce_enum(Operator, self.operator))
        object.__setattr__(self, "logic", coerce_enum(Logic, self.logic))

    @property
    def has_value(self) -> bool:
        return self.value is not UNSET

    @property
    def effective_logic(self) -> Logic:
        """Conditions without explicit logic combine with AND."""
        return Logic.OR if self.logic is Logic.OR else Logic.AND

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "field": self.field,
            "operator": enum_value(self.operator),
        }
        if self.has_value:
            data["value"] = to_plain(self.value)
        if self.logic is not None:
            data["logic"] = enum_value(self.logic)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        data = _require_mapping(data, "Condition")
        return cls(
            field=data.get("field"),
            operator=data.get("operator"),
            value=data["value"] if "value" in data else UNSET,
            logic=data.get("logic"),
        )


@dataclass(frozen=True)
class Group:
    """A boolean (AND/OR) container of conditions and nested groups."""

    conditions: Tuple[Union[Condition, "Group"], ...] = ()
    logic: Union[Logic, str, None] = Logic.AND

    def __post_init__(self):
        children = _as_tuple(self.conditions)
        if isinstance(children, tuple):
            children = tuple(
                _child_from_data(child) if isinstance(child, Mapping) else child
                for child in children
            )
        object.__setattr__(self, "conditions", children)
        object.__setattr__(self, "logic", coerce_enum(Logic, self.logic))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conditions": [child.to_dict() for child in self.conditions],
            "logic": enum_value(self.logic),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], depth: int = 1) -> "Group":
        data = _require_mapping(data, "Group")
        if depth > MAX_PARSED_GROUP_DEPTH:
            raise TypeError(
                f"Group nesting too deep (max {MAX_PARSED_GROUP_DEPTH} levels)"
            )
        children = data.get("conditions") or ()
        if not isinstance(children, (list, tuple)):
            raise TypeError("Group conditions must be a list")
        return cls(
            conditions=tuple(_child_from_data(child, depth + 1) for child in children),
            logic=data.get("logic"),
        )


def _child_from_data(child: Any, depth: int = 2) -> Union[Condition, Group]:
    if isinstance(child, (Condition, Group)):
        return child
    child = _require_mapping(child, "Group child")
    if "conditions" in child:
        return Group.from_dict(child, depth)
    return Condition.from_dict(child)


@dataclass(frozen=True)
class TextSearchCondition:
    """Full-text search request, optionally scoped to specific fields."""

    query: str
    fields: Optional[Tuple[str, ...]] = None
    type: Union[TextSearchType, str, None] = TextSearchType.WEBSEARCH
    config: Union[TextSearchConfig, str, None] = TextSearchConfig.ENGLISH

    def __post_init__(self):
        if isinstance(self.fields, (list, tuple)):
            object.__setattr__(self, "fields", tuple(self.fields))
        if self.type is None:
            object.__setattr__(self, "type", TextSearchType.WEBSEARCH)
        if self.config is None:
            object.__setattr__(self, "config", TextSearchConfig.ENGLISH)
        object.__setattr__(self, "type", coerce_enum(TextSearchType, self.type))
        object.__setattr__(self, "config", coerce_enum(TextSearchConfig, self.config))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "query": self.query,
            "type": enum_value(self.type),
            "config": enum_value(self.config),
        }
        if self.fields is not None:
            data["fields"] = list(self.fields)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TextSearchCondition":
        data = _require_mapping(data, "Text search")
        return cls(
            query=data.get("query"),
            fields=data.get("fields"),
            type=data.get("type"),
            config=data.get("config"),
        )


_WEBSEARCH_TOKEN = re.compile(r'-?"[^"]*"|\S+')


def search_terms(text_search: TextSearchCondition) -> List[Tuple[str, bool]]:
    """
    Split a text query into (term, excluded) pairs for backends without a
    full-text engine.

    Phrase searches keep the whole query as one term. Web searches honour
    quoted phrases and ``-term`` exclusions; the ``or`` keyword is dropped.
    """
    query = text_search.query.strip()
    if text_search.type in (TextSearchType.PHRASETO, TextSearchType.PHRASE):
        return [(query, False)] if query else []
    if text_search.type is not TextSearchType.WEBSEARCH:
        return [(term, False) for term in query.split()]
    terms = []
    for token in _WEBSEARCH_TOKEN.findall(query):
        excluded = token.startswith("-") and len(token) > 1
        if excluded:
            token = token[1:]
        token = token.strip('"').strip()
        if token and token.lower() != "or":
            terms.append((token, excluded))
    return terms


@dataclass(frozen=True)
class SortSpec:
    field: str
    order: Union[SortOrder, str, None] = SortOrder.ASC

    def __post_init__(self):
        object.__setattr__(self, "order", coerce_enum(SortOrder, self.order))

    @property
    def descending(self) -> bool:
        return self.order is SortOrder.DESC

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "order": enum_value(self.order)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SortSpec":
        data = _require_mapping(data, "Sort")
        return cls(field=data.get("field"), order=data.get("order"))


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int = 12

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def to_dict(self) -> Dict[str, Any]:
        return {"page": self.page, "limit": self.limit}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Pagination":
        data = _require_mapping(data, "Pagination")
        return cls(page=data.get("page"), limit=data.get("limit", 12))


@dataclass(frozen=True)
class Join:
    """Request to embed rows of a related table."""

    table: str
    type: Union[JoinType, str, None] = JoinType.LEFT
    on: str = ""
    select: Optional[str] = None
    alias: Optional[str] = None

    def __post_init__(self):
        if self.type is None:
            object.__setattr__(self, "type", JoinType.LEFT)
        object.__setattr__(self, "type", coerce_enum(JoinType, self.type))

    @property
    def name(self) -> str:
        """Alias if given, otherwise the table name."""
        return self.alias or self.table

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "table": self.table,
            "type": enum_value(self.type),
            "on": self.on,
        }
        if self.select is not None:
            data["select"] = self.select
        if self.alias is not None:
            data["alias"] = self.alias
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Join":
        data = _require_mapping(data, "Join")
        return cls(
            table=data.get("table"),
            type=data.get("type"),
            on=data.get("on") or "",
            select=data.get("select"),
            alias=data.get("alias"),
        )


# --- Query Descriptor ---
@dataclass(frozen=True)
class QueryDescriptor:
    """The complete, immutable description of a search request."""

    text_search: Optional[TextSearchCondition] = None
    conditions: Tuple[Condition, ...] = ()
    groups: Tuple[Group, ...] = ()
    sorting: Tuple[SortSpec, ...] = ()
    pagination: Optional[Pagination] = None
    joins: Tuple[Join, ...] = ()

    def __post_init__(self):
        parsers = {
            "conditions": Condition.from_dict,
            "groups": Group.from_dict,
            "sorting": SortSpec.from_dict,
            "joins": Join.from_dict,
        }
        for name, parse in parsers.items():
            items = _as_tuple(getattr(self, name))
            if isinstance(items, tuple):
                items = tuple(
                    parse(item) if isinstance(item, Mapping) else item
                    for item in items
                )
            object.__setattr__(self, name, items)
        if isinstance(self.text_search, Mapping):
            object.__setattr__(
                self, "text_search", TextSearchCondition.from_dict(self.text_search)
            )
        if isinstance(self.pagination, Mapping):
            object.__setattr__(
                self, "pagination", Pagination.from_dict(self.pagination)
            )

    def __repr__(self) -> str:
        parts = []
        if self.text_search:
            parts.append(f"text_search={self.text_search!r}")
        if self.conditions:
            parts.append(f"conditions={list(self.conditions)!r}")
        if self.groups:
            parts.append(f"groups={list(self.groups)!r}")
        if self.sorting:
            parts.append(f"sorting={list(self.sorting)!r}")
        if self.pagination:
            parts.append(f"pagination={self.pagination!r}")
        if self.joins:
            parts.append(f"joins={list(self.joins)!r}")
        return f"QueryDescriptor({', '.join(parts)})"

    def replace(self, **changes: Any) -> "QueryDescriptor":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the camelCase JSON shape exchanged with route handlers."""
        data: Dict[str, Any] = {}
        if self.text_search is not None:
            data["textSearch"] = self.text_search.to_dict()
        if self.conditions:
            data["conditions"] = [c.to_dict() for c in self.conditions]
        if self.groups:
            data["groups"] = [g.to_dict() for g in self.groups]
        if self.sorting:
            data["sorting"] = [s.to_dict() for s in self.sorting]
        if self.pagination is not None:
            data["pagination"] = self.pagination.to_dict()
        if self.joins:
            data["joins"] = [j.to_dict() for j in self.joins]
        return data

    def fingerprint(self) -> str:
        """Stable key for caching: the JSON shape with sorted keys."""
        return json.dumps(self.to_dict(), sort_keys=True, default=str)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QueryDescriptor":
        """
        Build a descriptor from its JSON shape.

        Only structural problems (non-mapping parts) raise TypeError; semantic
        problems are preserved for the validator to report.
        """
        data = _require_mapping(data, "Query")
        text_search = _get(data, "textSearch", "text_search")
        pagination = data.get("pagination")
        descriptor = cls(
            text_search=(
                TextSearchCondition.from_dict(text_search)
                if text_search is not None
                else None
            ),
            conditions=tuple(
                c if isinstance(c, Condition) else Condition.from_dict(c)
                for c in (data.get("conditions") or ())
            ),
            groups=tuple(
                g if isinstance(g, Group) else Group.from_dict(g)
                for g in (data.get("groups") or ())
            ),
            sorting=tuple(
                s if isinstance(s, SortSpec) else SortSpec.from_dict(s)
                for s in (data.get("sorting") or ())
            ),
            pagination=(
                Pagination.from_dict(pagination) if pagination is not None else None
            ),
            joins=tuple(
                j if isinstance(j, Join) else Join.from_dict(j)
                for j in (data.get("joins") or ())
            ),
        )
        log.debug(f"Parsed query descriptor from mapping: {descriptor!r}")
        return descriptor

    @classmethod
    def coerce(
        cls, query: Union["QueryDescriptor", Mapping[str, Any]]
    ) -> "QueryDescriptor":
        if isinstance(query, QueryDescriptor):
            return query
        return cls.from_dict(query)


def deep_copy_descriptor(descriptor: QueryDescriptor) -> QueryDescriptor:
    """Copy a descriptor including any mutable condition values it holds."""
    return copy.deepcopy(descriptor)


# --- Analysis Results ---
@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    optimizations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "optimizations": list(self.optimizations),
        }


@dataclass
class ComplexityScore:
    score: float
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
        }
