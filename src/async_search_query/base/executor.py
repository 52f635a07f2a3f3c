# src/async_search_query/base/executor.py
import asyncio
import copy
import logging
import time
from dataclasses import dataclass, replace
from logging import LoggerAdapter
from typing import Any, Dict, List, Mapping, Optional, Union

from .cache import ResultCache
from .exceptions import (
    PartialExecutionError,
    QueryExecutionError,
    QueryValidationError,
)
from .interfaces import FilterAdapter, Row
from .optimizer import optimize
from .query import Group, Logic, QueryDescriptor, ValidationResult
from .settings import SearchSettings
from .validator import QueryValidator

log = logging.getLogger(__name__)


@dataclass
class QueryResult:
    data: List[Row]
    count: Optional[int]
    validation: ValidationResult
    execution_time_ms: float
    cached: bool = False
    count_error: Optional[PartialExecutionError] = None

    def to_dict(self) -> Dict[str, Any]:
        """Response shape handed back to route handlers."""
        result: Dict[str, Any] = {
            "data": self.data,
            "validation": self.validation.to_dict(),
            "executionTimeMs": self.execution_time_ms,
        }
        if self.count is not None:
            result["count"] = self.count
        if self.cached:
            result["cached"] = True
        return result


class QueryExecutor:
    """
    Validates, optimizes and runs query descriptors through a FilterAdapter.

    Validation failures raise QueryValidationError before any I/O. Failures
    while translating or running the data request raise QueryExecutionError
    with the original error chained. A failed count request is not fatal: the
    result carries `count=None` and the error in `count_error`.
    """

    def __init__(
        self,
        adapter: FilterAdapter,
        settings: Optional[SearchSettings] = None,
        validator: Optional[QueryValidator] = None,
        cache: Union[ResultCache, bool, None] = None,
        optimize: bool = True,
    ):
        self.adapter = adapter
        self.settings = settings or adapter.settings
        self.validator = validator or QueryValidator()
        if cache is None:
            cache = self.settings.cache_enabled
        if isinstance(cache, bool):
            cache = ResultCache.from_settings(self.settings) if cache else None
        self.cache = cache
        self.optimize = optimize
        self._logger = logging.getLogger(
            f"{__name__}.{self.__class__.__name__}[{self.settings.table}]"
        )

    async def execute(
        self,
        query: Union[QueryDescriptor, Mapping[str, Any]],
        logger: Optional[LoggerAdapter] = None,
    ) -> QueryResult:
        logger = logger or LoggerAdapter(self._logger, {})

        validation = self.validator.validate(query)
        if not validation.is_valid:
            logger.info(f"Rejected invalid query: {validation.errors}")
            raise QueryValidationError(validation.errors, validation)

        descriptor = QueryDescriptor.coerce(query)
        if self.optimize:
            descriptor = optimize(descriptor)

        cache_key = descriptor.fingerprint() if self.cache is not None else None
        if cache_key is not None:
            hit = self.cache.get(cache_key)
            if hit is not None:
                logger.debug("Returning cached query result")
                return replace(
                    hit,
                    data=copy.deepcopy(hit.data),
                    validation=validation,
                    cached=True,
                )

        want_count = (
            descriptor.pagination is not None and self.settings.count_with_pagination
        )
        try:
            data_request = self.build_request(descriptor)
            count_request = (
                self.build_request(descriptor, for_count=True) if want_count else None
            )
        except QueryExecutionError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to translate query for {self.adapter.name}: {e}",
                exc_info=True,
            )
            raise QueryExecutionError(
                f"Failed to translate query for {self.adapter.name}: {e}", cause=e
            ) from e

        operations = [self.adapter.fetch(data_request, logger)]
        if count_request is not None:
            operations.append(self.adapter.count(count_request, logger))

        start = time.perf_counter()
        outcomes = await asyncio.gather(*operations, return_exceptions=True)
        elapsed_ms = (time.perf_counter() - start) * 1000

        data = outcomes[0]
        if isinstance(data, BaseException):
            if not isinstance(data, Exception):
                raise data
            if isinstance(data, QueryExecutionError):
                raise data
            logger.error(f"Data query failed: {data}", exc_info=data)
            raise QueryExecutionError(f"Data query failed: {data}", cause=data) from data

        count: Optional[int] = None
        count_error: Optional[PartialExecutionError] = None
        if count_request is not None:
            outcome = outcomes[1]
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                count_error = PartialExecutionError(
                    f"Count query failed: {outcome}", cause=outcome
                )
                logger.warning(
                    f"Count query failed; returning {len(data)} row(s) without a "
                    f"total: {outcome}"
                )
            else:
                count = outcome

        result = QueryResult(
            data=data,
            count=count,
            validation=validation,
            execution_time_ms=elapsed_ms,
            count_error=count_error,
        )
        logger.info(
            f"Query returned {len(data)} row(s)"
            + (f" of {count}" if count is not None else "")
            + f" in {elapsed_ms:.1f} ms"
        )
        if cache_key is not None and count_error is None:
            self.cache.set(cache_key, replace(result, data=copy.deepcopy(data)))
        return result

    def build_request(self, descriptor: QueryDescriptor, for_count: bool = False) -> Any:
        """
        Translate `descriptor` into an adapter request.

        Count requests carry the same filters as data requests but no
        sorting or range.
        """
        adapter = self.adapter
        request = adapter.new_request(descriptor.joins, for_count=for_count)

        for condition in self.settings.base_conditions():
            request = adapter.apply_condition(request, condition)

        any_of = []
        for condition in descriptor.conditions:
            if condition.effective_logic is Logic.OR:
                any_of.append(condition)
            else:
                request = adapter.apply_condition(request, condition)
        if any_of:
            request = adapter.apply_group(
                request, Group(conditions=tuple(any_of), logic=Logic.OR)
            )

        for group in descriptor.groups:
            request = adapter.apply_group(request, group)

        if descriptor.text_search is not None:
            request = adapter.apply_text_search(request, descriptor.text_search)

        if for_count:
            return request

        sorting = list(descriptor.sorting)
        if not sorting:
            sorting = (
                self.settings.relevance_sort_specs()
                if descriptor.text_search is not None
                else self.settings.default_sort_specs()
            )
        for sort in sorting:
            request = adapter.apply_order(request, sort)

        if descriptor.pagination is not None:
            request = adapter.apply_range(
                request, descriptor.pagination.offset, descriptor.pagination.limit
            )
        return request
