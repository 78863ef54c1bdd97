import re
from typing import Dict, List, Optional

from ..errors import ValidationError
from ..filters import (
    FieldType,
    Filter,
    FilterDefinition,
    FilterInstance,
    FilterNode,
    FilterStatus,
    GroupNode,
    LogicalOperator,
    Operator,
    UIConfig,
    ValueKind,
    value_kind,
)
from ..predicates import is_known_operator
from ..settings import DEFAULT_MAX_TREE_DEPTH

_SIZES = {"small", "medium", "large"}
_LOGICALS = {LogicalOperator.AND.value, LogicalOperator.OR.value}
_CSS_VALUE_RE = re.compile(r"^(\d+(\.\d+)?(px|rem|em|%|vh|vw)|auto)$")

OPERATOR_COMPATIBILITY: Dict[str, List[str]] = {
    FieldType.STRING.value: [
        Operator.EQ.value,
        Operator.NEQ.value,
        Operator.CONTAINS.value,
        Operator.STARTS_WITH.value,
        Operator.ENDS_WITH.value,
        Operator.IN.value,
        Operator.NOT_IN.value,
    ],
    FieldType.NUMBER.value: [
        Operator.EQ.value,
        Operator.NEQ.value,
        Operator.LT.value,
        Operator.LTE.value,
        Operator.GT.value,
        Operator.GTE.value,
        Operator.BETWEEN.value,
        Operator.IN.value,
        Operator.NOT_IN.value,
    ],
    FieldType.DATE.value: [
        Operator.EQ.value,
        Operator.BEFORE.value,
        Operator.AFTER.value,
        Operator.BETWEEN.value,
        Operator.RELATIVE.value,
    ],
    FieldType.BOOLEAN.value: [Operator.EQ.value],
}


def _text(v) -> str:
    return v.value if hasattr(v, "value") else str(v or "")


def is_operator_compatible(field_type, operator) -> bool:
    return _text(operator) in OPERATOR_COMPATIBILITY.get(_text(field_type), [])


def is_valid_css_value(value) -> bool:
    return isinstance(value, str) and bool(_CSS_VALUE_RE.match(value))


def _is_blank_value(value) -> bool:
    return value is None or value == ""


def _is_supported_value(value) -> bool:
    kind = value_kind(value)
    if kind is None:
        return False
    if kind == ValueKind.LIST:
        return all(value_kind(v) not in (None, ValueKind.LIST) for v in value)
    return True


def _traverse(
    node: FilterNode,
    path: List[str],
    errors: List[ValidationError],
    depth: int,
    max_depth: int,
) -> None:
    where = ".".join(path)
    if isinstance(node, GroupNode):
        if depth > max_depth:
            errors.append(ValidationError(
                field="definition",
                path=path,
                message=f"Group at {where} exceeds the maximum nesting depth of {max_depth}",
            ))
            return
        if _text(node.logical) not in _LOGICALS:
            errors.append(ValidationError(
                field="definition",
                path=path,
                message=f"Group at {where} must have logical operator AND or OR",
            ))
        if not node.children:
            errors.append(ValidationError(
                field="definition",
                path=path,
                message=f"Group at {where} must have at least one child",
            ))
        for index, child in enumerate(node.children):
            _traverse(child, [*path, "children", str(index)], errors, depth + 1, max_depth)
        return

    if not node.field:
        errors.append(ValidationError(
            field="definition", path=path, message=f"Condition at {where} must have a field",
        ))
    if not _text(node.operator):
        errors.append(ValidationError(
            field="definition", path=path, message=f"Condition at {where} must have an operator",
        ))
    if _is_blank_value(node.value):
        errors.append(ValidationError(
            field="definition", path=path, message=f"Condition at {where} must have a value",
        ))
    elif not _is_supported_value(node.value):
        errors.append(ValidationError(
            field="definition", path=path, message=f"Condition at {where} has an unsupported value",
        ))


def validate_definition(
    definition: FilterDefinition,
    *,
    max_depth: int = DEFAULT_MAX_TREE_DEPTH,
) -> List[ValidationError]:
    errors: List[ValidationError] = []
    if definition.root is None:
        errors.append(ValidationError(field="definition", message="Definition must have a root node"))
        return errors
    _traverse(definition.root, ["root"], errors, 1, max_depth)
    return errors


def validate_ui_config(ui: UIConfig, *, prefix: str = "uiDefault") -> List[ValidationError]:
    errors: List[ValidationError] = []
    if ui.size and (not isinstance(ui.size, str) or ui.size not in _SIZES):
        errors.append(ValidationError(field=f"{prefix}.size", message="Size must be small, medium, or large"))
    dims = ui.dimensions
    if dims is not None:
        if dims.width not in (None, "") and not is_valid_css_value(dims.width):
            errors.append(ValidationError(
                field=f"{prefix}.dimensions.width", message="Width must be a valid CSS value",
            ))
        if dims.height not in (None, "") and not is_valid_css_value(dims.height):
            errors.append(ValidationError(
                field=f"{prefix}.dimensions.height", message="Height must be a valid CSS value",
            ))
    if ui.debounce_ms is not None:
        if isinstance(ui.debounce_ms, bool) or not isinstance(ui.debounce_ms, int) or ui.debounce_ms < 0:
            errors.append(ValidationError(
                field=f"{prefix}.debounceMs", message="Debounce must be a non-negative integer",
            ))
    return errors


def validate_placements(instances: List[FilterInstance]) -> List[ValidationError]:
    errors: List[ValidationError] = []
    if not instances:
        errors.append(ValidationError(field="instances", message="At least one placement is required to publish"))
    for index, inst in enumerate(instances or []):
        if not inst.target_type:
            errors.append(ValidationError(field=f"instances[{index}].targetType", message="Target type is required"))
        if not inst.target_ref:
            errors.append(ValidationError(field=f"instances[{index}].targetRef", message="Target reference is required"))
        if not inst.placement:
            errors.append(ValidationError(field=f"instances[{index}].placement", message="Placement is required"))
    return errors


def validate_filter(
    filter: Filter,
    *,
    max_depth: int = DEFAULT_MAX_TREE_DEPTH,
) -> List[ValidationError]:
    """
    Run every check and return all problems found, in order. Never raises.
    """
    errors: List[ValidationError] = []

    if not isinstance(filter.name, str) or filter.name.strip() == "":
        errors.append(ValidationError(field="name", message="Name is required"))

    if not filter.type:
        errors.append(ValidationError(field="type", message="Filter type is required"))

    if filter.definition is not None:
        errors.extend(validate_definition(filter.definition, max_depth=max_depth))

    if filter.ui_default is not None:
        errors.extend(validate_ui_config(filter.ui_default))

    if filter.status == FilterStatus.PUBLISHED:
        errors.extend(validate_placements(filter.instances))

    return errors


def validate_condition_types(
    definition: FilterDefinition,
    field_types: Dict[str, str],
) -> List[ValidationError]:
    """
    Check operators against known field types. Unknown operators are
    always reported; fields missing from `field_types` are otherwise
    skipped.
    """
    errors: List[ValidationError] = []

    def walk(node: FilterNode, path: List[str]) -> None:
        if isinstance(node, GroupNode):
            for index, child in enumerate(node.children):
                walk(child, [*path, "children", str(index)])
            return
        if not is_known_operator(node.operator):
            errors.append(ValidationError(
                field="definition",
                path=path,
                message=f"Unknown operator {_text(node.operator)} on field {node.field}",
            ))
            return
        if not isinstance(node.field, str):
            return
        typ: Optional[str] = field_types.get(node.field)
        if typ is None:
            return
        if not is_operator_compatible(typ, node.operator):
            errors.append(ValidationError(
                field="definition",
                path=path,
                message=f"Operator {_text(node.operator)} not allowed on {_text(typ)} field {node.field}",
            ))

    if definition.root is not None:
        walk(definition.root, ["root"])
    return errors
