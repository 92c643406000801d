from __future__ import annotations

from datetime import date

from blogapi.cache.keys import (
    canonical_params,
    post_key,
    post_list_key,
    post_search_key,
    roles_meta_key,
    stats_key,
)


def test_parameter_order_does_not_change_key() -> None:
    first = post_list_key({"page": 1, "per_page": 15, "sort_by": "title", "sort_order": "asc"})
    second = post_list_key({"sort_order": "asc", "sort_by": "title", "per_page": 15, "page": 1})
    assert first == second


def test_values_are_normalised() -> None:
    assert canonical_params({"q": "  Hello ", "flag": True, "status": None}) == "flag=1:q=hello:status=null"


def test_distinct_parameters_give_distinct_keys() -> None:
    assert post_search_key({"q": "a", "page": 1}) != post_search_key({"q": "a", "page": 2})
    assert post_list_key({"page": 1}) != post_search_key({"page": 1})


def test_bounded_keys_have_fixed_shape() -> None:
    assert post_key(7) == "api:post:7"
    assert roles_meta_key() == "api:meta:roles"
    assert stats_key("posts") == "api:stats:posts"


def test_ranged_stats_key_includes_dates() -> None:
    key = stats_key("posts", date(2024, 1, 1), None)
    assert key == "api:stats:posts:2024-01-01:null"
    assert key != stats_key("posts")
