# src/async_search_query/base/interfaces.py

import logging
from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from async_search_query.base.query import (
    Condition,
    Group,
    Join,
    SortSpec,
    TextSearchCondition,
)
from async_search_query.base.settings import SearchSettings

# Backend specific request object being assembled
R = TypeVar("R")

Row = Dict[str, Any]


class FilterAdapter(Generic[R], ABC):
    """
    Translates query descriptor parts into one backend's filter grammar.

    The executor drives an adapter through a request's lifetime: it creates
    a request with `new_request`, applies filters, text search, sorting and
    range to it, then runs it with `fetch` or `count`. Each `apply_*` method
    returns the (possibly new) request object to keep applying to. Adapters
    are the only components aware of a backend's syntax.
    """

    def __init__(self, settings: Optional[SearchSettings] = None):
        self.settings = settings or SearchSettings()
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}[{self.settings.table}]"
        )

    @property
    def name(self) -> str:
        """Short backend name used in log messages."""
        return self.__class__.__name__

    @abstractmethod
    def new_request(self, joins: Sequence[Join] = (), for_count: bool = False) -> R:
        """
        Start a request against the configured table.

        Args:
            joins: Related tables to embed in each row.
            for_count: When True the request is only used with `count`.
        """
        pass

    @abstractmethod
    def apply_condition(self, request: R, condition: Condition) -> R:
        """AND a single condition onto the request."""
        pass

    @abstractmethod
    def apply_group(self, request: R, group: Group) -> R:
        """AND a (possibly nested) group onto the request."""
        pass

    @abstractmethod
    def apply_text_search(self, request: R, text_search: TextSearchCondition) -> R:
        """
        AND a full-text search onto the request. With `fields` set, any of the
        fields matching is sufficient.
        """
        pass

    @abstractmethod
    def apply_order(self, request: R, sort: SortSpec) -> R:
        """Append a sort key; keys apply in the order they are added."""
        pass

    @abstractmethod
    def apply_range(self, request: R, offset: int, limit: int) -> R:
        pass

    @abstractmethod
    async def fetch(self, request: R, logger: LoggerAdapter) -> List[Row]:
        """Run the request and return its rows as dictionaries."""
        pass

    @abstractmethod
    async def count(self, request: R, logger: LoggerAdapter) -> int:
        """Count the rows matching the request's filters."""
        pass
