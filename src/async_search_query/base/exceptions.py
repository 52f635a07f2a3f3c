from typing import List, Optional


class SearchQueryError(Exception):
    """Base class for all errors raised by the search query library."""

    def __init__(self, message: str = "Search query failed."):
        super().__init__(message)


class QueryValidationError(SearchQueryError, ValueError):
    """Exception raised when a query descriptor fails validation before execution."""

    def __init__(self, errors: List[str], validation=None):
        self.errors = list(errors)
        self.validation = validation
        super().__init__(f"Query validation failed: {', '.join(self.errors)}")


class QueryExecutionError(SearchQueryError, RuntimeError):
    """Exception raised when the data collaborator fails to execute a query."""

    def __init__(
        self,
        message: str = "Query execution failed.",
        cause: Optional[BaseException] = None,
    ):
        self.cause = cause
        super().__init__(message)


class PartialExecutionError(SearchQueryError):
    """
    Describes a count query that failed while the data query succeeded.

    Never raised by the executor; it is logged and attached to the result.
    """

    def __init__(
        self,
        message: str = "Count query failed; result returned without a total.",
        cause: Optional[BaseException] = None,
    ):
        self.cause = cause
        super().__init__(message)
