# src/async_search_query/base/validator.py
import logging
from typing import Any, List, Mapping, Optional, Union

from .clauses import GroupPath, fold_groups, group_label, iter_conditions, iter_groups
from .query import (
    ARRAY_VALUE_OPERATORS,
    NULL_CHECK_OPERATORS,
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
    enum_value,
)
from .utils import is_array_value

log = logging.getLogger(__name__)

MAX_CONDITIONS = 50
MAX_GROUPS = 20
MAX_NESTING_DEPTH = 5
MAX_TEXT_SEARCH_LENGTH = 1000
MAX_PAGINATION_LIMIT = 100
DEFAULT_LIMIT = 12
MAX_PAGE_BEFORE_WARNING = 100
MAX_CONDITIONS_BEFORE_WARNING = 10

QUERY_LIMITS = {
    "MAX_CONDITIONS": MAX_CONDITIONS,
    "MAX_GROUPS": MAX_GROUPS,
    "MAX_NESTING_DEPTH": MAX_NESTING_DEPTH,
    "MAX_TEXT_SEARCH_LENGTH": MAX_TEXT_SEARCH_LENGTH,
    "MAX_PAGINATION_LIMIT": MAX_PAGINATION_LIMIT,
    "DEFAULT_LIMIT": DEFAULT_LIMIT,
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


class QueryValidator:
    """
    Checks a query descriptor for structural and semantic errors.

    Validation is pure: bad data is reported in the returned ValidationResult,
    never raised. Warnings and optimization hints are advisory and do not
    affect `is_valid`.
    """

    def __init__(
        self,
        max_conditions: int = MAX_CONDITIONS,
        max_groups: int = MAX_GROUPS,
        max_depth: int = MAX_NESTING_DEPTH,
    ):
        self.max_conditions = max_conditions
        self.max_groups = max_groups
        self.max_depth = max_depth

    def validate(
        self, query: Union[QueryDescriptor, Mapping[str, Any]]
    ) -> ValidationResult:
        try:
            descriptor = QueryDescriptor.coerce(query)
        except TypeError as e:
            log.debug(f"Query could not be parsed for validation: {e}")
            return ValidationResult(is_valid=False, errors=[str(e)])

        try:
            return self._validate(descriptor)
        except RecursionError:
            log.debug("Query groups nested too deeply to traverse")
            return ValidationResult(
                is_valid=False,
                errors=[f"Group nesting depth exceeds maximum of {self.max_depth}"],
            )

    def _validate(self, descriptor: QueryDescriptor) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        optimizations: List[str] = []

        if descriptor.text_search is not None:
            errors.extend(self.validate_text_search(descriptor.text_search))
        for index, condition in enumerate(descriptor.conditions, start=1):
            errors.extend(
                f"Condition {index}: {msg}"
                for msg in self.validate_condition(condition)
            )
        errors.extend(self.validate_groups(descriptor.groups))
        for index, sort in enumerate(descriptor.sorting, start=1):
            errors.extend(f"Sort {index}: {msg}" for msg in self.validate_sort(sort))
        if descriptor.pagination is not None:
            errors.extend(self.validate_pagination(descriptor.pagination))
        for index, join in enumerate(descriptor.joins, start=1):
            errors.extend(f"Join {index}: {msg}" for msg in self.validate_join(join))
        errors.extend(self._check_limits(descriptor))

        self._check_optimizations(descriptor, warnings, optimizations)

        result = ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            optimizations=optimizations,
        )
        log.debug(
            f"Validated query: valid={result.is_valid}, "
            f"{len(errors)} error(s), {len(warnings)} warning(s)"
        )
        return result

    # --- Rules ---
    def validate_text_search(self, text_search: TextSearchCondition) -> List[str]:
        errors = []
        query = text_search.query
        if _is_blank(query):
            errors.append("Text search query cannot be empty")
        if isinstance(query, str) and len(query) > MAX_TEXT_SEARCH_LENGTH:
            errors.append(
                f"Text search query too long (max {MAX_TEXT_SEARCH_LENGTH} characters)"
            )
        if not isinstance(text_search.type, TextSearchType):
            errors.append(f"Invalid text search type: {text_search.type}")
        if not isinstance(text_search.config, TextSearchConfig):
            errors.append(f"Invalid text search config: {text_search.config}")
        if text_search.fields is not None and (
            not isinstance(text_search.fields, tuple)
            or any(_is_blank(f) for f in text_search.fields)
        ):
            errors.append("Text search fields must be non-empty strings")
        return errors

    def validate_condition(self, condition: Condition) -> List[str]:
        """Errors for one condition, without the positional prefix."""
        errors = []
        operator = condition.operator
        if _is_blank(condition.field):
            errors.append("field is required")
        if operator is None or operator == "":
            errors.append("operator is required")
        elif not isinstance(operator, Operator):
            errors.append(f"unsupported operator {operator}")
        known = isinstance(operator, Operator)
        if (
            operator not in (None, "")
            and not condition.has_value
            and not (known and operator in NULL_CHECK_OPERATORS)
        ):
            errors.append(f"value is required for operator {enum_value(operator)}")
        if (
            known
            and operator in ARRAY_VALUE_OPERATORS
            and condition.has_value
            and not is_array_value(condition.value)
        ):
            errors.append(f"{operator.value} requires an array value")
        if condition.logic is not None and not isinstance(condition.logic, Logic):
            errors.append("logic must be 'AND' or 'OR'")
        return errors

    def validate_groups(self, groups: tuple) -> List[str]:
        """Validate every group recursively; messages carry the group path."""

        def on_condition(child: Any, path: GroupPath) -> List[str]:
            prefix = f"{group_label(path[:-1])}, Condition {path[-1]}"
            if not isinstance(child, Condition):
                return [f"{prefix}: must be a condition or a group"]
            return [f"{prefix}: {msg}" for msg in self.validate_condition(child)]

        def on_group(group: Group, children: list, path: GroupPath) -> List[str]:
            label = group_label(path)
            errors = []
            if not isinstance(group.conditions, tuple) or not group.conditions:
                errors.append(f"{label}: must have at least one condition")
            if not isinstance(group.logic, Logic):
                errors.append(f"{label}: logic must be 'AND' or 'OR'")
            if len(path) > self.max_depth:
                errors.append(
                    f"{label}: nesting depth exceeds maximum of {self.max_depth}"
                )
            for _, child_errors in children:
                errors.extend(child_errors)
            return errors

        errors: List[str] = []
        for index, group in enumerate(groups, start=1):
            if not isinstance(group, Group):
                errors.append(f"Group {index}: must be a group")
        valid_groups = [g for g in groups if isinstance(g, Group)]
        if len(valid_groups) == len(groups):
            for group_errors in fold_groups(valid_groups, on_condition, on_group):
                errors.extend(group_errors)
        return errors

    def validate_sort(self, sort: SortSpec) -> List[str]:
        errors = []
        if _is_blank(sort.field):
            errors.append("field is required")
        if not isinstance(sort.order, SortOrder):
            errors.append("order must be 'asc' or 'desc'")
        return errors

    def validate_pagination(self, pagination: Pagination) -> List[str]:
        errors = []
        if not _is_int(pagination.page) or pagination.page < 1:
            errors.append("Page must be greater than 0")
        if not _is_int(pagination.limit) or not (
            1 <= pagination.limit <= MAX_PAGINATION_LIMIT
        ):
            errors.append(f"Limit must be between 1 and {MAX_PAGINATION_LIMIT}")
        return errors

    def validate_join(self, join: Join) -> List[str]:
        errors = []
        if _is_blank(join.table):
            errors.append("table is required")
        if not isinstance(join.type, JoinType):
            errors.append(
                "type must be one of " + ", ".join(t.value for t in JoinType)
            )
        return errors

    def _check_limits(self, descriptor: QueryDescriptor) -> List[str]:
        groups = [g for g in descriptor.groups if isinstance(g, Group)]
        condition_count = len(descriptor.conditions) + sum(
            len(list(iter_conditions(g))) for g in groups
        )
        group_count = sum(len(list(iter_groups(g))) for g in groups)
        errors = []
        if condition_count > self.max_conditions:
            errors.append(f"Too many conditions (max {self.max_conditions})")
        if group_count > self.max_groups:
            errors.append(f"Too many groups (max {self.max_groups})")
        return errors

    # --- Advisory ---
    def _check_optimizations(
        self,
        descriptor: QueryDescriptor,
        warnings: List[str],
        optimizations: List[str],
    ) -> None:
        condition_count = len(descriptor.conditions)
        if condition_count > MAX_CONDITIONS_BEFORE_WARNING:
            warnings.append("Large number of conditions may impact performance")
            optimizations.append(
                "Consider grouping related conditions or using different filter strategy"
            )
        if descriptor.text_search is not None and condition_count > 5:
            optimizations.append(
                "Consider adding composite indexes for frequently used filter combinations"
            )
        page = descriptor.pagination.page if descriptor.pagination else None
        if _is_int(page) and page > MAX_PAGE_BEFORE_WARNING:
            warnings.append("Deep pagination may be slow")
            optimizations.append(
                "Consider using cursor-based pagination for better performance"
            )
        if descriptor.text_search is not None and descriptor.sorting:
            optimizations.append(
                "Text search results are already ranked by relevance; "
                "additional sorting may reduce relevance accuracy"
            )


_default_validator = QueryValidator()


def validate(query: Union[QueryDescriptor, Mapping[str, Any]]) -> ValidationResult:
    """Validate `query` with the default limits."""
    return _default_validator.validate(query)
