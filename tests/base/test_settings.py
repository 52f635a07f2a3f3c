# tests/base/test_settings.py

import pytest
from pydantic import ValidationError

from async_search_query.base.query import Condition, Operator, SortOrder, SortSpec
from async_search_query.base.settings import LISTING_COLUMNS, SearchSettings


def test_defaults():
    settings = SearchSettings()
    assert settings.table == "listings"
    assert settings.select_clause == "*"
    assert settings.base_conditions() == []
    assert settings.default_sort_specs() == [SortSpec("created_at", SortOrder.DESC)]
    assert settings.relevance_sort_specs() == [
        SortSpec("search_boost", SortOrder.DESC),
        SortSpec("view_count", SortOrder.DESC),
    ]
    assert settings.count_with_pagination is True
    assert settings.primary_key == "id"
    assert settings.json_columns == ["tags"]
    assert settings.cache_enabled is False


def test_marketplace_searches_active_listings():
    settings = SearchSettings.marketplace(cache_ttl_seconds=60)
    assert settings.base_conditions() == [Condition("status", Operator.EQ, "active")]
    assert settings.select_fields == LISTING_COLUMNS
    assert settings.select_clause.startswith("id,title,make")
    assert "make" in settings.text_search_columns
    assert settings.cache_ttl_seconds == 60


def test_settings_are_frozen():
    settings = SearchSettings()
    with pytest.raises(ValidationError):
        settings.table = "cars"


@pytest.mark.parametrize("field", ["table", "primary_key", "search_vector_column"])
def test_blank_names_rejected(field):
    with pytest.raises(ValidationError):
        SearchSettings(**{field: "  "})


def test_from_env_reads_prefixed_overrides():
    settings = SearchSettings.from_env(
        environ={
            "SEARCH_QUERY_TABLE": "cars",
            "SEARCH_QUERY_SELECT_FIELDS": "id, title ,price",
            "SEARCH_QUERY_BASE_FILTERS": '{"status": "active", "dealer_id": 7}',
            "SEARCH_QUERY_DEFAULT_SORT": "price:asc, id",
            "SEARCH_QUERY_COUNT_WITH_PAGINATION": "false",
            "SEARCH_QUERY_CACHE_TTL_SECONDS": "30",
            "SEARCH_QUERY_CACHE_ENABLED": "true",
            "SEARCH_QUERY_JSON_COLUMNS": "tags, options",
            "UNRELATED": "ignored",
        }
    )
    assert settings.table == "cars"
    assert settings.select_fields == ["id", "title", "price"]
    assert settings.base_filters == {"status": "active", "dealer_id": 7}
    assert settings.default_sort_specs() == [
        SortSpec("price", SortOrder.ASC),
        SortSpec("id", SortOrder.ASC),
    ]
    assert settings.count_with_pagination is False
    assert settings.cache_ttl_seconds == 30.0
    assert settings.cache_enabled is True
    assert settings.json_columns == ["tags", "options"]


def test_from_env_custom_prefix_and_base():
    base = SearchSettings.marketplace()
    settings = SearchSettings.from_env(
        prefix="APP_", environ={"APP_TEXT_SEARCH_COLUMNS": "title"}, base=base
    )
    assert settings.text_search_columns == ["title"]
    assert settings.base_filters == {"status": "active"}


def test_from_env_rejects_bad_json():
    with pytest.raises(ValueError, match="BASE_FILTERS"):
        SearchSettings.from_env(environ={"SEARCH_QUERY_BASE_FILTERS": "status=active"})


def test_from_env_rejects_bad_sort_order():
    with pytest.raises(ValidationError):
        SearchSettings.from_env(environ={"SEARCH_QUERY_DEFAULT_SORT": "price:sideways"})
