# src/async_search_query/base/clauses.py
"""
Recursive traversal of condition groups.

Every consumer of the group tree (validation, optimisation, complexity scoring
and each backend's clause renderer) walks it through :func:`fold_group`, so the
group semantics cannot drift between the validation and execution paths.
"""
from typing import Any, Callable, Iterator, List, Sequence, Tuple, TypeVar, Union

from .query import Condition, Group, Logic, Operator

R = TypeVar("R")

# Path of 1-based positions from the top-level group list down to a node.
GroupPath = Tuple[int, ...]

ConditionRenderer = Callable[[Condition, GroupPath], R]
GroupRenderer = Callable[[Group, List[Tuple[Union[Condition, Group], R]], GroupPath], R]


def fold_group(
    group: Group,
    on_condition: ConditionRenderer,
    on_group: GroupRenderer,
    path: GroupPath = (1,),
) -> R:
    """
    Fold a group bottom-up.

    `on_condition(condition, path)` is called for each leaf, where `path` is the
    parent group's path extended with the leaf's position. `on_group(group,
    children, path)` receives the already-folded children as `(child, result)`
    pairs in their original order. The depth of a group is `len(path)`.
    """
    children: List[Tuple[Union[Condition, Group], Any]] = []
    conditions = group.conditions if isinstance(group.conditions, tuple) else ()
    for position, child in enumerate(conditions, start=1):
        child_path = path + (position,)
        if isinstance(child, Group):
            children.append(
                (child, fold_group(child, on_condition, on_group, child_path))
            )
        else:
            children.append((child, on_condition(child, child_path)))
    return on_group(group, children, path)


def fold_groups(
    groups: Sequence[Group],
    on_condition: ConditionRenderer,
    on_group: GroupRenderer,
) -> List[R]:
    """Fold each top-level group, numbering them from 1."""
    return [
        fold_group(group, on_condition, on_group, (index,))
        for index, group in enumerate(groups, start=1)
    ]


def group_label(path: GroupPath) -> str:
    """Human readable location of a group, e.g. ``Group 2, Nested Group 1``."""
    head, *rest = path
    return ", ".join([f"Group {head}"] + [f"Nested Group {i}" for i in rest])


def iter_conditions(group: Group) -> Iterator[Condition]:
    """Yield every leaf condition of `group`, depth first."""
    for child in group.conditions:
        if isinstance(child, Group):
            yield from iter_conditions(child)
        elif isinstance(child, Condition):
            yield child


def iter_groups(group: Group, path: GroupPath = (1,)) -> Iterator[Tuple[Group, GroupPath]]:
    """Yield `group` and all groups nested below it with their paths."""
    yield group, path
    for position, child in enumerate(group.conditions, start=1):
        if isinstance(child, Group):
            yield from iter_groups(child, path + (position,))


def join_clauses(parts: Sequence[str], logic: Any, and_sep: str, or_sep: str) -> str:
    """Join rendered child clauses with the separator for `logic`."""
    return (or_sep if logic is Logic.OR else and_sep).join(parts)


def null_checked(condition: Condition) -> Condition:
    """Rewrite ``eq``/``neq`` against None as ``is_null``/``not_null``."""
    if condition.value is None and condition.operator in (Operator.EQ, Operator.NEQ):
        operator = Operator.IS_NULL if condition.operator is Operator.EQ else Operator.NOT_NULL
        return Condition(condition.field, operator, logic=condition.logic)
    return condition
