# src/async_search_query/base/patterns.py
import logging
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .builder import SearchQueryBuilder
from .query import QueryDescriptor
from .utils import ensure_list

log = logging.getLogger(__name__)

P = TypeVar("P", bound="PatternParams")


class PatternParams(BaseModel):
    """Base for pattern parameters; accepts camelCase and snake_case keys."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    page: Optional[int] = None
    limit: Optional[int] = None

    @classmethod
    def parse(cls: Type[P], params: Union[P, Mapping[str, Any], None]) -> P:
        if isinstance(params, cls):
            return params
        return cls.model_validate(dict(params or {}))


class RangeParams(BaseModel):
    min: Optional[Any] = None
    max: Optional[Any] = None


class SortParams(BaseModel):
    field: str
    order: Literal["asc", "desc"] = "desc"


class CarSearchParams(PatternParams):
    search_term: Optional[str] = None
    make: Optional[Union[str, List[str]]] = None
    model: Optional[Union[str, List[str]]] = None
    year_range: Optional[RangeParams] = None
    price_range: Optional[RangeParams] = None
    mileage_range: Optional[RangeParams] = None
    condition: Optional[Union[str, List[str]]] = None
    transmission: Optional[Union[str, List[str]]] = None
    location: Optional[str] = None
    has_modifications: Optional[bool] = None
    sort_by: Optional[
        Literal["relevance", "price_low", "price_high", "year_new", "year_old", "newest"]
    ] = None


class AdvancedSearchParams(PatternParams):
    text_search: Optional[str] = None
    must_have: Dict[str, Any] = Field(default_factory=dict)
    should_have: List[Dict[str, Any]] = Field(default_factory=list)
    must_not: Dict[str, Any] = Field(default_factory=dict)
    ranges: Dict[str, RangeParams] = Field(default_factory=dict)
    sorting: List[SortParams] = Field(default_factory=list)


class ModificationSearchParams(PatternParams):
    search_term: Optional[str] = None
    categories: Optional[List[str]] = None
    specific_mods: Optional[List[str]] = None
    date_range: Optional[Dict[str, Optional[str]]] = None
    has_modifications: Optional[bool] = None
    min_modification_count: Optional[int] = None


class PriceAnalysisParams(PatternParams):
    make: Optional[str] = None
    model: Optional[str] = None
    year_range: Optional[RangeParams] = None
    group_by: Optional[Literal["make", "model", "year", "condition"]] = None
    sort_by: Optional[Literal["avg_price", "count", "min_price", "max_price"]] = None


class LocationSearchParams(PatternParams):
    search_term: Optional[str] = None
    location: Optional[str] = None
    radius: Optional[float] = None
    state: Optional[str] = None
    city: Optional[str] = None
    sort_by_distance: Optional[bool] = None


_CAR_SORTS = {
    "price_low": ("price", "asc"),
    "price_high": ("price", "desc"),
    "year_new": ("year", "desc"),
    "year_old": ("year", "asc"),
    "newest": ("created_at", "desc"),
}


def _paginate(builder: SearchQueryBuilder, params: PatternParams) -> None:
    if params.page or params.limit:
        builder.paginate(params.page or 1, params.limit or 12)


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class CommonQueryPatterns:
    """Ready-made descriptors for the marketplace's common searches."""

    @staticmethod
    def car_search(
        params: Union[CarSearchParams, Mapping[str, Any], None] = None
    ) -> QueryDescriptor:
        params = CarSearchParams.parse(params)
        builder = SearchQueryBuilder.create()

        if _has_text(params.search_term):
            builder.text_search(params.search_term, type="websearch")
        for field in ("make", "model"):
            value = getattr(params, field)
            if value:
                builder.where_in(field, ensure_list(value))
        for field, value in (
            ("year", params.year_range),
            ("price", params.price_range),
            ("mileage", params.mileage_range),
        ):
            if value is not None:
                builder.where_between(field, value.min, value.max)
        for field in ("condition", "transmission"):
            value = getattr(params, field)
            if value:
                builder.where_in(field, ensure_list(value))
        if params.location:
            builder.where_like("location", params.location)
        if params.has_modifications:
            builder.where("modification_count", "gt", 0)

        sort = _CAR_SORTS.get(params.sort_by or "relevance")
        if sort is not None:
            builder.order_by(*sort)
        elif not _has_text(params.search_term):
            # Relevance ordering only makes sense with a search term
            builder.order_by("created_at", "desc")

        _paginate(builder, params)
        return builder.build()

    @staticmethod
    def advanced_search(
        params: Union[AdvancedSearchParams, Mapping[str, Any], None] = None
    ) -> QueryDescriptor:
        """
        Boolean search: `must_have` fields are ANDed, `should_have` entries form
        one OR group, `must_not` excludes values and `ranges` bound fields.
        """
        params = AdvancedSearchParams.parse(params)
        builder = SearchQueryBuilder.create()

        if _has_text(params.text_search):
            builder.text_search(params.text_search)

        for field, value in params.must_have.items():
            if isinstance(value, (list, tuple)):
                builder.where_in(field, value)
            else:
                builder.where(field, "eq", value)

        if params.should_have:

            def add_alternatives(group):
                for alternatives in params.should_have:
                    for field, value in alternatives.items():
                        for item in ensure_list(value):
                            group.where(field, "eq", item)

            builder.where_group("OR", add_alternatives)

        for field, value in params.must_not.items():
            if isinstance(value, (list, tuple)):
                builder.where(field, "not_in", value)
            else:
                builder.where(field, "neq", value)

        for field, bounds in params.ranges.items():
            builder.where_between(field, bounds.min, bounds.max)

        for sort in params.sorting:
            builder.order_by(sort.field, sort.order)

        _paginate(builder, params)
        return builder.build()

    @staticmethod
    def modification_search(
        params: Union[ModificationSearchParams, Mapping[str, Any], None] = None
    ) -> QueryDescriptor:
        """
        Listings filtered by modification count. `categories`, `specific_mods`
        and `date_range` are accepted but not used as filters; passing any of
        them embeds each listing's modifications in the results.
        """
        params = ModificationSearchParams.parse(params)
        builder = SearchQueryBuilder.create()

        if _has_text(params.search_term):
            builder.text_search(params.search_term)
        if params.has_modifications:
            builder.where("modification_count", "gt", 0)
        if params.min_modification_count is not None:
            builder.where("modification_count", "gte", params.min_modification_count)
        if params.categories or params.specific_mods or params.date_range:
            builder.join(
                "modifications",
                "name, description, category, created_at",
                on="modifications.listing_id = listings.id",
            )

        _paginate(builder, params)
        return builder.build()

    @staticmethod
    def price_analysis(
        params: Union[PriceAnalysisParams, Mapping[str, Any], None] = None
    ) -> QueryDescriptor:
        """
        Listings for a make, model and year range, most expensive first.
        `group_by` and `sort_by` are accepted but ignored; aggregation is left
        to the caller.
        """
        params = PriceAnalysisParams.parse(params)
        builder = SearchQueryBuilder.create()

        if params.make:
            builder.where("make", "eq", params.make)
        if params.model:
            builder.where("model", "eq", params.model)
        if params.year_range is not None:
            builder.where_between("year", params.year_range.min, params.year_range.max)
        builder.order_by("price", "desc")
        return builder.build()

    @staticmethod
    def location_search(
        params: Union[LocationSearchParams, Mapping[str, Any], None] = None
    ) -> QueryDescriptor:
        """
        Listings whose location matches `location`, `state` and `city`.
        `radius` and `sort_by_distance` are accepted but ignored because
        listings carry no coordinates; results are always newest first.
        """
        params = LocationSearchParams.parse(params)
        builder = SearchQueryBuilder.create()

        if _has_text(params.search_term):
            builder.text_search(params.search_term)
        for value in (params.location, params.state, params.city):
            if value:
                builder.where_like("location", value)
        builder.order_by("created_at", "desc")

        _paginate(builder, params)
        return builder.build()


PATTERNS: Dict[str, Callable[[Any], QueryDescriptor]] = {
    "carSearch": CommonQueryPatterns.car_search,
    "advancedSearch": CommonQueryPatterns.advanced_search,
    "modificationSearch": CommonQueryPatterns.modification_search,
    "priceAnalysis": CommonQueryPatterns.price_analysis,
    "locationSearch": CommonQueryPatterns.location_search,
}


def build_pattern(
    name: Optional[str], params: Union[Mapping[str, Any], BaseModel, None] = None
) -> QueryDescriptor:
    """Build the named pattern; unknown names fall back to ``carSearch``."""
    pattern = PATTERNS.get(name or "")
    if pattern is None:
        log.debug(f"Unknown query pattern {name!r}; using carSearch")
        pattern = CommonQueryPatterns.car_search
    if isinstance(params, BaseModel):
        params = params.model_dump(by_alias=True, exclude_none=True)
    return pattern(params)
