# src/async_search_query/base/optimizer.py
import logging
from typing import Any, Dict, List, Mapping, Tuple, Union

from .clauses import GroupPath, fold_groups, iter_conditions
from .query import (
    PATTERN_OPERATORS,
    ComplexityScore,
    Condition,
    Group,
    Logic,
    Operator,
    QueryDescriptor,
    deep_copy_descriptor,
)
from .utils import is_array_value

log = logging.getLogger(__name__)

MAX_COMPLEXITY_SCORE = 10
DEEP_NESTING_THRESHOLD = 3


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def optimize(query: Union[QueryDescriptor, Mapping[str, Any]]) -> QueryDescriptor:
    """
    Rewrite a descriptor for cheaper execution.

    Two or more ``eq`` conditions on the same field that combine with the same
    logic are merged into one ``in`` condition at the position of the first of
    them, values kept in first-seen order. Nothing else is changed, and the
    input is never mutated. Applying it twice yields the same result as once.
    """
    descriptor = deep_copy_descriptor(QueryDescriptor.coerce(query))

    buckets: Dict[Tuple[str, Logic], List[int]] = {}
    for position, condition in enumerate(descriptor.conditions):
        if (
            isinstance(condition, Condition)
            and condition.operator is Operator.EQ
            and isinstance(condition.field, str)
            and condition.field
            and condition.has_value
            and not is_array_value(condition.value)
        ):
            key = (condition.field, condition.effective_logic)
            buckets.setdefault(key, []).append(position)

    merges = {
        positions[0]: positions for positions in buckets.values() if len(positions) > 1
    }
    if not merges:
        return descriptor

    absorbed = {p for positions in merges.values() for p in positions[1:]}
    conditions = []
    for position, condition in enumerate(descriptor.conditions):
        if position in absorbed:
            continue
        if position in merges:
            values: List[Any] = []
            for p in merges[position]:
                value = descriptor.conditions[p].value
                if value not in values:
                    values.append(value)
            log.debug(
                f"Merged {len(merges[position])} eq conditions on "
                f"'{condition.field}' into one in condition"
            )
            condition = Condition(
                field=condition.field,
                operator=Operator.IN,
                value=values,
                logic=condition.logic,
            )
        conditions.append(condition)
    return descriptor.replace(conditions=tuple(conditions))


def analyze_complexity(
    query: Union[QueryDescriptor, Mapping[str, Any]]
) -> ComplexityScore:
    """
    Heuristic cost estimate of a descriptor, capped at 10.

    Every factor only ever adds to the score, so a descriptor with strictly
    more structure never scores lower.
    """
    descriptor = QueryDescriptor.coerce(query)
    score = 0.0
    warnings: List[str] = []
    recommendations: List[str] = []

    text_search = descriptor.text_search
    if text_search is not None:
        score += 2
        if isinstance(text_search.fields, tuple) and len(text_search.fields) > 5:
            score += 2
            warnings.append("Searching too many fields may impact performance")
            recommendations.append(
                "Consider limiting search fields to most relevant ones"
            )

    conditions = [c for c in descriptor.conditions if isinstance(c, Condition)]
    score += len(conditions) * 0.5
    if len(conditions) > 10:
        score += 3
        warnings.append("Large number of conditions may slow down query")
        recommendations.append(
            "Consider grouping related conditions or using different approach"
        )
    for condition in conditions:
        if (
            condition.operator in PATTERN_OPERATORS
            and isinstance(condition.value, str)
            and condition.value.startswith("%")
        ):
            score += 1
            warnings.append(
                f"Leading wildcard in LIKE operation for field '{condition.field}' is expensive"
            )
            recommendations.append(
                f"Consider full-text search instead of LIKE for field '{condition.field}'"
            )
    if text_search is not None and len(conditions) > 5:
        score += 2
        recommendations.append(
            "Consider adding composite indexes for frequently used filter combinations"
        )

    groups = [g for g in descriptor.groups if isinstance(g, Group)]

    def on_condition(condition: Any, path: GroupPath) -> float:
        return 0.25

    def on_group(group: Group, children: list, path: GroupPath) -> float:
        cost = 1.5 if len(path) == 1 else 1.0
        if len(path) - 1 > DEEP_NESTING_THRESHOLD:
            cost += 5
            warnings.append("Deep nesting in query groups can impact performance")
            recommendations.append(
                "Consider flattening nested groups or simplifying logic"
            )
        return cost + sum(result for _, result in children)

    score += sum(fold_groups(groups, on_condition, on_group))

    pagination = descriptor.pagination
    if pagination is not None and isinstance(pagination.page, int) and pagination.page > 100:
        score += 2
        warnings.append("Deep pagination is inefficient")
        recommendations.append(
            "Consider cursor-based pagination for better performance"
        )

    if len(descriptor.sorting) > 3:
        score += 1
        warnings.append("Multiple sort conditions may impact performance")
        recommendations.append("Consider reducing number of sort fields")

    if text_search is not None and descriptor.sorting:
        recommendations.append(
            "Text search results are ranked by relevance; "
            "additional sort fields dilute relevance ordering"
        )

    result = ComplexityScore(
        score=min(score, MAX_COMPLEXITY_SCORE),
        warnings=_unique(warnings),
        recommendations=_unique(recommendations),
    )
    log.debug(f"Query complexity score: {result.score}")
    return result


def suggest_indexes(query: Union[QueryDescriptor, Mapping[str, Any]]) -> List[str]:
    """Advisory index recommendations for the fields a descriptor touches."""
    descriptor = QueryDescriptor.coerce(query)
    suggestions: List[str] = []

    fields = [c.field for c in descriptor.conditions if isinstance(c, Condition)]
    for group in descriptor.groups:
        if isinstance(group, Group):
            fields.extend(c.field for c in iter_conditions(group))
    unique_fields = _unique([f for f in fields if isinstance(f, str) and f])
    if len(unique_fields) > 1:
        suggestions.append(
            f"Composite index on ({', '.join(unique_fields)}) for filter combinations"
        )
    for field in unique_fields:
        suggestions.append(f"Index on '{field}' for filtering")

    for sort in descriptor.sorting:
        suggestions.append(f"Index on '{sort.field}' for sorting")

    if descriptor.text_search is not None:
        suggestions.append("GIN index on search_vector for full-text search")
        for field in descriptor.text_search.fields or ():
            suggestions.append(f"GIN index on '{field}' for field-specific text search")

    return _unique(suggestions)
