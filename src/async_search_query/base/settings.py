# src/async_search_query/base/settings.py
import json
import logging
import os
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .query import Condition, Operator, SortSpec

log = logging.getLogger(__name__)

SortPair = Tuple[str, Literal["asc", "desc"]]

LISTING_COLUMNS = [
    "id",
    "title",
    "make",
    "model",
    "year",
    "price",
    "location",
    "description",
    "engine",
    "transmission",
    "mileage",
    "condition",
    "created_at",
    "modification_count",
    "view_count",
    "search_boost",
]


def _parse_sort(value: str) -> List[SortPair]:
    pairs = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        field, _, order = item.partition(":")
        pairs.append((field.strip(), (order.strip() or "asc").lower()))
    return pairs


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class SearchSettings(BaseModel):
    """
    Execution settings shared by the executor and the adapters.

    `base_filters` are equality filters applied to every data and count
    request. `default_sort` applies when a query has no sorting and no text
    search; `relevance_sort` when it has text search but no sorting.
    `json_columns` name the columns SQLite stores as JSON text. With
    `cache_enabled` the executor builds a ResultCache sized by the `cache_*`
    fields.
    """

    model_config = ConfigDict(frozen=True)

    table: str = "listings"
    primary_key: str = "id"
    select_fields: List[str] = Field(default_factory=lambda: ["*"])
    base_filters: Dict[str, Any] = Field(default_factory=dict)
    default_sort: List[SortPair] = Field(default_factory=lambda: [("created_at", "desc")])
    relevance_sort: List[SortPair] = Field(
        default_factory=lambda: [("search_boost", "desc"), ("view_count", "desc")]
    )
    search_vector_column: str = "search_vector"
    text_search_columns: List[str] = Field(
        default_factory=lambda: ["title", "description"]
    )
    json_columns: List[str] = Field(default_factory=lambda: ["tags"])
    count_with_pagination: bool = True
    cache_enabled: bool = False
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 100

    @field_validator("table", "primary_key", "search_vector_column")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def select_clause(self) -> str:
        return ",".join(self.select_fields)

    def base_conditions(self) -> List[Condition]:
        return [
            Condition(field=field, operator=Operator.EQ, value=value)
            for field, value in self.base_filters.items()
        ]

    def default_sort_specs(self) -> List[SortSpec]:
        return [SortSpec(field=f, order=o) for f, o in self.default_sort]

    def relevance_sort_specs(self) -> List[SortSpec]:
        return [SortSpec(field=f, order=o) for f, o in self.relevance_sort]

    @classmethod
    def marketplace(cls, **overrides: Any) -> "SearchSettings":
        """Settings for the car listings table: only active listings are searched."""
        values: Dict[str, Any] = {
            "table": "listings",
            "select_fields": list(LISTING_COLUMNS),
            "base_filters": {"status": "active"},
            "text_search_columns": ["title", "description", "make", "model"],
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_env(
        cls,
        prefix: str = "SEARCH_QUERY_",
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["SearchSettings"] = None,
    ) -> "SearchSettings":
        """
        Read overrides from environment variables named ``<prefix><FIELD>``.

        Lists are comma separated, sorts are ``field:order`` pairs and
        ``BASE_FILTERS`` is a JSON object.
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = base.model_dump() if base is not None else {}
        for name in cls.model_fields:
            raw = environ.get(f"{prefix}{name.upper()}")
            if raw is None:
                continue
            if name in ("default_sort", "relevance_sort"):
                values[name] = _parse_sort(raw)
            elif name in ("select_fields", "text_search_columns", "json_columns"):
                values[name] = _parse_list(raw)
            elif name == "base_filters":
                try:
                    values[name] = json.loads(raw)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        f"{prefix}BASE_FILTERS must be a JSON object: {e}"
                    ) from e
            else:
                values[name] = raw
            log.debug(f"Search setting '{name}' read from environment")
        return cls.model_validate(values)
