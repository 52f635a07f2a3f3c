# tests/base/test_query_model.py

import dataclasses

import pytest

from async_search_query.base.query import (
    UNSET,
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
    search_terms,
)


# --- Condition ---
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("eq", Operator.EQ),
        ("EQ", Operator.EQ),
        ("not_in", Operator.NOT_IN),
        (Operator.OVERLAPS, Operator.OVERLAPS),
    ],
)
def test_condition_coerces_operator(raw, expected):
    assert Condition("make", raw, "BMW").operator is expected


def test_condition_keeps_unknown_operator_for_validation():
    condition = Condition("make", "between", 1)
    assert condition.operator == "between"


def test_condition_from_dict_without_value_is_unset():
    condition = Condition.from_dict({"field": "mileage", "operator": "is_null"})
    assert condition.value is UNSET
    assert not condition.has_value
    assert "value" not in condition.to_dict()


def test_condition_none_is_a_real_value():
    condition = Condition.from_dict({"field": "mileage", "operator": "eq", "value": None})
    assert condition.has_value
    assert condition.to_dict()["value"] is None


def test_condition_effective_logic_defaults_to_and():
    assert Condition("make", "eq", "BMW").effective_logic is Logic.AND
    assert Condition("make", "eq", "BMW", logic="or").effective_logic is Logic.OR


# --- Group ---
def test_group_from_dict_detects_nested_groups():
    group = Group.from_dict(
        {
            "logic": "OR",
            "conditions": [
                {"field": "make", "operator": "eq", "value": "Toyota"},
                {
                    "logic": "AND",
                    "conditions": [{"field": "year", "operator": "gte", "value": 2018}],
                },
            ],
        }
    )
    assert group.logic is Logic.OR
    assert isinstance(group.conditions[0], Condition)
    assert isinstance(group.conditions[1], Group)
    assert group.conditions[1].conditions[0].value == 2018


def test_group_without_logic_keeps_none():
    group = Group.from_dict({"conditions": []})
    assert group.logic is None


def test_group_rejects_non_list_conditions():
    with pytest.raises(TypeError):
        Group.from_dict({"conditions": "make = BMW", "logic": "AND"})


# --- Text search ---
def test_text_search_defaults_restored_from_none():
    text_search = TextSearchCondition.from_dict({"query": "BMW"})
    assert text_search.type is TextSearchType.WEBSEARCH
    assert text_search.config is TextSearchConfig.ENGLISH
    assert text_search.fields is None


def test_text_search_fields_stored_as_tuple():
    text_search = TextSearchCondition("BMW", fields=["title", "make"])
    assert text_search.fields == ("title", "make")


@pytest.mark.parametrize(
    "query, search_type, expected",
    [
        ("BMW 3 Series", "websearch", [("BMW", False), ("3", False), ("Series", False)]),
        ('"low mileage" -diesel', "websearch", [("low mileage", False), ("diesel", True)]),
        ("estate or saloon", "websearch", [("estate", False), ("saloon", False)]),
        ("  low   mileage ", "plainto", [("low", False), ("mileage", False)]),
        ("low mileage", "phraseto", [("low mileage", False)]),
        ("low mileage", "phrase", [("low mileage", False)]),
        ("   ", "websearch", []),
    ],
)
def test_search_terms(query, search_type, expected):
    assert search_terms(TextSearchCondition(query, type=search_type)) == expected


# --- Sorting, pagination and joins ---
def test_sort_spec_descending():
    assert SortSpec("price", "DESC").descending
    assert not SortSpec("price").descending
    assert SortSpec("price").order is SortOrder.ASC


@pytest.mark.parametrize("page, limit, offset", [(1, 12, 0), (2, 12, 12), (3, 25, 50)])
def test_pagination_offset(page, limit, offset):
    assert Pagination(page, limit).offset == offset


def test_pagination_default_limit():
    assert Pagination.from_dict({"page": 1}).limit == 12


def test_join_defaults_and_name():
    join = Join.from_dict({"table": "modifications"})
    assert join.type is JoinType.LEFT
    assert join.on == ""
    assert join.name == "modifications"
    assert Join("modifications", alias="mods").name == "mods"


# --- Descriptor ---
ROUTE_BODY = {
    "textSearch": {"query": "BMW 3 Series", "fields": ["title"], "type": "websearch"},
    "conditions": [
        {"field": "make", "operator": "eq", "value": "BMW"},
        {"field": "price", "operator": "lte", "value": 30000, "logic": "AND"},
    ],
    "groups": [
        {
            "logic": "OR",
            "conditions": [
                {"field": "fuel", "operator": "eq", "value": "diesel"},
                {"field": "fuel", "operator": "eq", "value": "hybrid"},
            ],
        }
    ],
    "sorting": [{"field": "price", "order": "asc"}],
    "pagination": {"page": 2, "limit": 24},
    "joins": [{"table": "modifications", "type": "left", "on": "modifications.listing_id = listings.id"}],
}


def test_descriptor_from_dict_parses_every_part():
    descriptor = QueryDescriptor.from_dict(ROUTE_BODY)

    assert descriptor.text_search.query == "BMW 3 Series"
    assert descriptor.text_search.fields == ("title",)
    assert [c.field for c in descriptor.conditions] == ["make", "price"]
    assert descriptor.groups[0].logic is Logic.OR
    assert descriptor.sorting == (SortSpec("price", SortOrder.ASC),)
    assert descriptor.pagination == Pagination(2, 24)
    assert descriptor.joins[0].table == "modifications"


def test_descriptor_to_dict_uses_camel_case():
    data = QueryDescriptor.from_dict(ROUTE_BODY).to_dict()

    assert data["textSearch"]["query"] == "BMW 3 Series"
    assert data["conditions"][0] == {"field": "make", "operator": "eq", "value": "BMW"}
    assert data["pagination"] == {"page": 2, "limit": 24}
    assert "text_search" not in data


def test_descriptor_accepts_snake_case_text_search():
    descriptor = QueryDescriptor.from_dict({"text_search": {"query": "Golf"}})
    assert descriptor.text_search.query == "Golf"


def test_descriptor_from_dict_requires_mapping():
    with pytest.raises(TypeError):
        QueryDescriptor.from_dict(["make", "eq", "BMW"])


def test_descriptor_coerces_mapping_items():
    descriptor = QueryDescriptor(
        conditions=[{"field": "make", "operator": "eq", "value": "BMW"}],
        pagination={"page": 1},
    )
    assert isinstance(descriptor.conditions, tuple)
    assert descriptor.conditions[0].operator is Operator.EQ
    assert descriptor.pagination == Pagination(1, 12)


def test_descriptor_is_immutable():
    descriptor = QueryDescriptor.from_dict(ROUTE_BODY)
    with pytest.raises(dataclasses.FrozenInstanceError):
        descriptor.pagination = None


def test_descriptor_replace_returns_new_descriptor():
    descriptor = QueryDescriptor.from_dict(ROUTE_BODY)
    changed = descriptor.replace(pagination=Pagination(1, 12))
    assert changed.pagination == Pagination(1, 12)
    assert descriptor.pagination == Pagination(2, 24)


def test_fingerprint_ignores_key_order():
    first = QueryDescriptor.from_dict(
        {"conditions": [{"field": "make", "operator": "eq", "value": "BMW"}], "pagination": {"page": 1, "limit": 12}}
    )
    second = QueryDescriptor.from_dict(
        {"pagination": {"limit": 12, "page": 1}, "conditions": [{"value": "BMW", "operator": "eq", "field": "make"}]}
    )
    assert first.fingerprint() == second.fingerprint()


def test_fingerprint_differs_for_different_queries():
    first = QueryDescriptor(conditions=(Condition("make", "eq", "BMW"),))
    second = QueryDescriptor(conditions=(Condition("make", "eq", "Audi"),))
    assert first.fingerprint() != second.fingerprint()


def test_repr_lists_only_present_parts():
    descriptor = QueryDescriptor(pagination=Pagination(1, 12))
    assert repr(descriptor) == "QueryDescriptor(pagination=Pagination(page=1, limit=12))"


def test_validation_result_to_dict():
    result = ValidationResult(is_valid=False, errors=["Page must be greater than 0"])
    assert result.to_dict() == {
        "isValid": False,
        "errors": ["Page must be greater than 0"],
        "warnings": [],
        "optimizations": [],
    }
