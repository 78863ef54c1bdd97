"""
Predicate generation module for the pyfacet service.

This module turns filter definitions into client row tests and server
query parameters.
"""

from .operators import (
    get_nested_value,
    parse_datetime,
    strict_equals,
    relative_threshold,
    check_relative_date,
    is_known_operator,
    evaluate_operator,
    to_param_key,
    write_server_param,
)
from .compiler import (
    Predicate,
    RowTest,
    DEFAULT_BINDING,
    build_value_map,
    resolve_value,
    generate_predicate,
    combine_predicates,
)

__all__ = [
    "get_nested_value",
    "parse_datetime",
    "strict_equals",
    "relative_threshold",
    "check_relative_date",
    "is_known_operator",
    "evaluate_operator",
    "to_param_key",
    "write_server_param",
    "Predicate",
    "RowTest",
    "DEFAULT_BINDING",
    "build_value_map",
    "resolve_value",
    "generate_predicate",
    "combine_predicates",
]
