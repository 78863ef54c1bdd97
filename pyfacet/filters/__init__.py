"""
Filter system for the pyfacet service.

This module provides the filter tree, filter and instance records, and
JSON parsing with schema validation.
"""

from .models import (
    Operator,
    LogicalOperator,
    FilterStatus,
    FilterType,
    CreationMode,
    FieldType,
    ValueKind,
    ComparisonValue,
    value_kind,
    ConditionNode,
    GroupNode,
    FilterNode,
    node_from_dict,
    FilterDefinition,
    Dimensions,
    UIConfig,
    FilterInstance,
    Filter,
    FILTER_SCHEMA,
    DEFINITION_SCHEMA,
    INSTANCE_SCHEMA,
    parse_filter_json,
    parse_definition_json,
    parse_instance_json,
)

__all__ = [
    "Operator",
    "LogicalOperator",
    "FilterStatus",
    "FilterType",
    "CreationMode",
    "FieldType",
    "ValueKind",
    "ComparisonValue",
    "value_kind",
    "ConditionNode",
    "GroupNode",
    "FilterNode",
    "node_from_dict",
    "FilterDefinition",
    "Dimensions",
    "UIConfig",
    "FilterInstance",
    "Filter",
    "FILTER_SCHEMA",
    "DEFINITION_SCHEMA",
    "INSTANCE_SCHEMA",
    "parse_filter_json",
    "parse_definition_json",
    "parse_instance_json",
]
