# src/async_search_query/__init__.py

"""
Async Search Query Library Initialization.

This package provides a dynamic search query builder: descriptors are
assembled with a fluent builder (or parsed from JSON), validated, optimized,
scored for complexity and executed asynchronously through a backend filter
adapter.

It initializes a logger with a NullHandler and makes the builder, the model,
the analysis functions, the executor and the backend adapters available at
the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Model and Exception Exports
# --------------------------------------------------------------------------
from .base.query import (
    UNSET,
    ComplexityScore,
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
)
from .base.exceptions import (
    PartialExecutionError,
    QueryExecutionError,
    QueryValidationError,
    SearchQueryError,
)

# --------------------------------------------------------------------------
# Building, Validation and Analysis Exports
# --------------------------------------------------------------------------
from .base.builder import GroupBuilder, SearchQueryBuilder
from .base.validator import QUERY_LIMITS, QueryValidator
from .base.validator import validate as validate_query
from .base.optimizer import analyze_complexity as analyze_query_complexity
from .base.optimizer import optimize as optimize_query
from .base.optimizer import suggest_indexes
from .base.patterns import PATTERNS, CommonQueryPatterns, build_pattern

# --------------------------------------------------------------------------
# Execution Exports
# --------------------------------------------------------------------------
from .base.cache import ResultCache
from .base.executor import QueryExecutor, QueryResult
from .base.interfaces import FilterAdapter
from .base.settings import SearchSettings

# --------------------------------------------------------------------------
# Adapter Implementation Exports
# --------------------------------------------------------------------------
from .memory.base import MemoryFilterAdapter
from .postgresql.base import PostgresFilterAdapter
from .postgrest.base import PostgrestFilterAdapter
from .sqlite.base import SqliteFilterAdapter

SUPPORTED_OPERATORS = [op.value for op in Operator]

__all__ = [
    # Model
    "UNSET",
    "Condition",
    "Group",
    "Join",
    "JoinType",
    "Logic",
    "Operator",
    "Pagination",
    "QueryDescriptor",
    "SortOrder",
    "SortSpec",
    "TextSearchCondition",
    "TextSearchConfig",
    "TextSearchType",
    "ValidationResult",
    "ComplexityScore",
    "SUPPORTED_OPERATORS",
    "QUERY_LIMITS",
    # Exceptions
    "SearchQueryError",
    "QueryValidationError",
    "QueryExecutionError",
    "PartialExecutionError",
    # Building and analysis
    "SearchQueryBuilder",
    "GroupBuilder",
    "QueryValidator",
    "validate_query",
    "optimize_query",
    "analyze_query_complexity",
    "suggest_indexes",
    "CommonQueryPatterns",
    "PATTERNS",
    "build_pattern",
    # Execution
    "QueryExecutor",
    "QueryResult",
    "ResultCache",
    "FilterAdapter",
    "SearchSettings",
    # Adapters
    "MemoryFilterAdapter",
    "PostgresFilterAdapter",
    "PostgrestFilterAdapter",
    "SqliteFilterAdapter",
    # Logging
    "logger",
]
