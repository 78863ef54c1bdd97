"""
Tests for predicate generation and multi-filter combination.
"""

from datetime import datetime, timezone

import pytest

from pyfacet.filters import ConditionNode, FilterDefinition, GroupNode, LogicalOperator
from pyfacet.predicates import (
    Predicate,
    build_value_map,
    combine_predicates,
    generate_predicate,
)


def _group(logical, *children):
    return GroupNode(logical=logical, children=list(children))


def _cond(field, operator, value, binding=None):
    return ConditionNode(field=field, operator=operator, value=value, binding=binding)


# ============================================================================
# Value map
# ============================================================================

class TestValueMap:

    def test_mapping_keys_become_bindings(self):
        assert build_value_map({"from": 1, "to": 2}) == {"from": 1, "to": 2}

    @pytest.mark.parametrize("value", ["EU", 3, ["a", "b"], None, True])
    def test_other_values_go_to_default(self, value):
        assert build_value_map(value) == {"default": value}


# ============================================================================
# Logical groups
# ============================================================================

class TestGroups:

    def test_and_group_requires_every_child(self, rows):
        definition = FilterDefinition(root=_group(
            LogicalOperator.AND,
            _cond("region", "eq", "EU"),
            _cond("status", "eq", "open"),
        ))
        pred = generate_predicate(definition, None)
        assert [r["id"] for r in pred.filter_rows(rows)] == [1]

    def test_or_group_requires_any_child(self, rows):
        definition = FilterDefinition(root=_group(
            LogicalOperator.OR,
            _cond("region", "eq", "US"),
            _cond("amount", "lt", 6),
        ))
        pred = generate_predicate(definition, None)
        assert [r["id"] for r in pred.filter_rows(rows)] == [2, 4]

    def test_group_results_match_children(self, rows):
        children = [_cond("region", "eq", "EU"), _cond("amount", "gt", 20), _cond("status", "eq", "open")]
        for logical, combine in ((LogicalOperator.AND, all), (LogicalOperator.OR, any)):
            pred = generate_predicate(FilterDefinition(root=_group(logical, *children)), None)
            child_preds = [generate_predicate(FilterDefinition(root=_group(logical, c)), None) for c in children]
            for row in rows:
                assert pred.matches(row) == combine(p.matches(row) for p in child_preds)

    def test_nested_groups(self, rows):
        definition = FilterDefinition(root=_group(
            LogicalOperator.AND,
            _cond("status", "eq", "closed"),
            _group(LogicalOperator.OR, _cond("region", "eq", "US"), _cond("amount", "gte", 40)),
        ))
        pred = generate_predicate(definition, None)
        assert [r["id"] for r in pred.filter_rows(rows)] == [2, 3]

    def test_empty_groups(self, rows):
        assert generate_predicate(FilterDefinition(root=_group(LogicalOperator.AND)), None).matches(rows[0])
        assert not generate_predicate(FilterDefinition(root=_group(LogicalOperator.OR)), None).matches(rows[0])

    def test_nested_field_paths(self, rows):
        pred = generate_predicate(FilterDefinition(root=_group(
            LogicalOperator.AND, _cond("owner.name", "starts_with", "c"),
        )), None)
        assert [r["id"] for r in pred.filter_rows(rows)] == [3]


# ============================================================================
# Bindings
# ============================================================================

class TestBindings:

    def test_binding_overrides_literal(self, rows):
        definition = FilterDefinition(root=_group(LogicalOperator.AND, _cond("region", "eq", "literal", binding="b")))
        pred = generate_predicate(definition, {"b": "US"})
        assert [r["id"] for r in pred.filter_rows(rows)] == [2]
        assert pred.server_params == {"region": "US"}

    def test_literal_used_when_binding_absent(self):
        definition = FilterDefinition(root=_group(LogicalOperator.AND, _cond("region", "eq", "literal", binding="b")))
        pred = generate_predicate(definition, {"other": "US"})
        assert pred.server_params == {"region": "literal"}
        assert pred.matches({"region": "literal"})

    def test_scalar_value_fills_default_binding(self, rows):
        definition = FilterDefinition(root=_group(
            LogicalOperator.AND, _cond("status", "in", [], binding="default"),
        ))
        pred = generate_predicate(definition, ["open"])
        assert [r["id"] for r in pred.filter_rows(rows)] == [1, 4]
        assert pred.server_params == {"status[]": ["open"]}

    def test_multiple_bindings_from_mapping(self, rows):
        definition = FilterDefinition(root=_group(
            LogicalOperator.AND,
            _cond("amount", "gte", 0, binding="min"),
            _cond("amount", "lte", 0, binding="max"),
        ))
        pred = generate_predicate(definition, {"min": 6, "max": 30})
        assert [r["id"] for r in pred.filter_rows(rows)] == [1, 2]
        assert pred.server_params == {"amount_gte": 6, "amount_lte": 30}


# ============================================================================
# Server params
# ============================================================================

class TestServerParams:

    def test_connectives_are_flattened(self):
        definition = FilterDefinition(root=_group(
            LogicalOperator.OR,
            _cond("region", "eq", "EU"),
            _group(LogicalOperator.AND, _cond("amount", "between", [1, 9])),
        ))
        assert generate_predicate(definition, None).server_params == {
            "region": "EU",
            "amount_from": 1,
            "amount_to": 9,
        }

    def test_fallback_operators_collide_and_later_wins(self):
        definition = FilterDefinition(root=_group(
            LogicalOperator.AND,
            _cond("field", "neq", "first"),
            _cond("field", "starts_with", "second"),
        ))
        assert generate_predicate(definition, None).server_params == {"field": "second"}


# ============================================================================
# Purity
# ============================================================================

def test_compilation_is_repeatable(rows):
    definition = FilterDefinition(root=_group(
        LogicalOperator.OR,
        _cond("region", "in", ["EU"]),
        _cond("created", "relative", "last_7_days"),
    ))
    first = generate_predicate(definition, None)
    second = generate_predicate(definition, None)
    assert [first.matches(r) for r in rows] == [second.matches(r) for r in rows]
    assert first.server_params == second.server_params


def test_relative_uses_pinned_clock():
    definition = FilterDefinition(root=_group(LogicalOperator.AND, _cond("created", "relative", "last_3_months")))
    now = datetime(2024, 1, 15, tzinfo=timezone.utc)
    pred = generate_predicate(definition, None, now=now)
    assert pred.matches({"created": "2024-01-01"})
    assert not pred.matches({"created": "2020-01-01"})


def test_compilation_does_not_mutate_definition():
    definition = FilterDefinition(root=_group(LogicalOperator.AND, _cond("region", "eq", "EU", binding="default")))
    before = definition.to_dict()
    generate_predicate(definition, "US")
    assert definition.to_dict() == before


# ============================================================================
# Combination
# ============================================================================

class TestCombine:

    def test_no_predicates_is_neutral(self, rows):
        combined = combine_predicates([])
        assert combined.client_predicate is None
        assert combined.server_params == {}
        assert combined.filter_rows(rows) == rows

    def test_and_combination(self, rows):
        region = generate_predicate(FilterDefinition(root=_group(LogicalOperator.AND, _cond("region", "eq", "EU"))), None)
        status = generate_predicate(FilterDefinition(root=_group(LogicalOperator.AND, _cond("status", "eq", "closed"))), None)
        combined = combine_predicates([region, status])
        assert [r["id"] for r in combined.filter_rows(rows)] == [3]
        assert combined.server_params == {"region": "EU", "status": "closed"}

    def test_later_params_overwrite_earlier(self):
        a = Predicate(client_predicate=None, server_params={"region": "EU", "x": 1})
        b = Predicate(client_predicate=None, server_params={"region": "US"})
        assert combine_predicates([a, b]).server_params == {"region": "US", "x": 1}

    def test_neutral_members_accept_rows(self):
        combined = combine_predicates([Predicate.neutral(), Predicate(client_predicate=lambda r: r > 2)])
        assert combined.matches(3)
        assert not combined.matches(1)
