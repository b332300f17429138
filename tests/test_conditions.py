from __future__ import annotations

import pytest

from apix_gateway.pipeline import ConfigError, PipelineRequest
from apix_gateway.pipeline.conditions import (
    ALWAYS,
    AllOf,
    AnyOf,
    HasPayload,
    HeaderEquals,
    MethodIn,
    Not,
    PathPrefix,
    parse_condition,
)


def _request(**overrides) -> PipelineRequest:
    defaults = {
        "method": "POST",
        "uri": "/core/items?page=2",
        "headers": {"Content-Type": "application/json", "X-Tenant": "alpha"},
        "payload": b"{}",
    }
    defaults.update(overrides)
    return PipelineRequest(**defaults)


def test_none_and_empty_mapping_always_match():
    assert parse_condition(None) is ALWAYS
    assert parse_condition({}) is ALWAYS
    assert ALWAYS(_request())


def test_boolean_conditions():
    assert parse_condition(True)(_request())
    assert not parse_condition(False)(_request())


def test_callables_are_returned_unchanged():
    def check(request):
        return request.method == "GET"

    assert parse_condition(check) is check


def test_methods_condition_is_case_insensitive():
    condition = parse_condition({"methods": ["post", "Put"]})

    assert condition == MethodIn(frozenset({"POST", "PUT"}))
    assert condition(_request(method="put"))
    assert not condition(_request(method="GET"))


def test_single_method_string_is_accepted():
    assert parse_condition({"methods": "get"})(_request(method="GET"))


def test_path_prefix_ignores_query_string():
    assert PathPrefix("/core/items")(_request())
    assert not PathPrefix("/admin")(_request())


def test_header_presence_and_value():
    assert parse_condition({"header": "x-tenant"})(_request())
    assert parse_condition({"header": {"name": "X-Tenant", "value": "alpha"}})(_request())
    assert not HeaderEquals("X-Tenant", "beta")(_request())
    assert not HeaderEquals("X-Missing")(_request())


def test_header_condition_requires_name():
    with pytest.raises(ConfigError):
        parse_condition({"header": {"value": "alpha"}})


def test_has_payload():
    assert HasPayload(True)(_request())
    assert not HasPayload(True)(_request(payload=None))
    assert HasPayload(False)(_request(payload=b""))


def test_multiple_keys_are_combined_with_and():
    condition = parse_condition({"methods": ["POST"], "path_prefix": "/core"})

    assert isinstance(condition, AllOf)
    assert condition(_request())
    assert not condition(_request(uri="/other"))


def test_nested_any_and_not():
    condition = parse_condition(
        {"any": [{"methods": ["GET"]}, {"not": {"has_payload": True}}]}
    )

    assert isinstance(condition, AnyOf)
    assert condition(_request(method="GET"))
    assert condition(_request(payload=None))
    assert not condition(_request())
    assert Not(ALWAYS)(_request()) is False


def test_list_combinators_require_lists():
    with pytest.raises(ConfigError, match="expects a list"):
        parse_condition({"all": {"methods": ["GET"]}})


def test_unknown_condition_key_is_rejected():
    with pytest.raises(ConfigError, match="Unknown condition 'weekday'"):
        parse_condition({"weekday": "monday"})


def test_unsupported_condition_type_is_rejected():
    with pytest.raises(ConfigError):
        parse_condition("POST")
