"""
Validation module for the pyfacet service.

This module checks filter trees, presentation config and placements.
"""

from .rules import (
    OPERATOR_COMPATIBILITY,
    is_operator_compatible,
    is_valid_css_value,
    validate_definition,
    validate_ui_config,
    validate_placements,
    validate_filter,
    validate_condition_types,
)

__all__ = [
    "OPERATOR_COMPATIBILITY",
    "is_operator_compatible",
    "is_valid_css_value",
    "validate_definition",
    "validate_ui_config",
    "validate_placements",
    "validate_filter",
    "validate_condition_types",
]
