from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..filters import (
    ConditionNode,
    FilterDefinition,
    FilterNode,
    GroupNode,
    LogicalOperator,
)
from .operators import evaluate_operator, get_nested_value, write_server_param

RowTest = Callable[[Any], bool]

DEFAULT_BINDING = "default"


@dataclass
class Predicate:
    """
    A local row test paired with the server query parameters expressing
    the same filter. `client_predicate` is None when nothing constrains
    the target, which accepts every row.
    """
    client_predicate: Optional[RowTest] = None
    server_params: Dict[str, Any] = field(default_factory=dict)

    def matches(self, row: Any) -> bool:
        if self.client_predicate is None:
            return True
        return bool(self.client_predicate(row))

    def filter_rows(self, rows: Iterable[Any]) -> List[Any]:
        return [r for r in rows if self.matches(r)]

    @classmethod
    def neutral(cls) -> "Predicate":
        return cls(client_predicate=None, server_params={})


def build_value_map(value: Any) -> Dict[str, Any]:
    """
    A mapping value contributes one binding per key; anything else is
    stored under the `default` binding.
    """
    if isinstance(value, dict):
        return dict(value)
    return {DEFAULT_BINDING: value}


def resolve_value(node: ConditionNode, value_map: Dict[str, Any]) -> Any:
    if node.binding and node.binding in value_map:
        return value_map[node.binding]
    return node.value


def _build_client_fn(node: FilterNode, value_map: Dict[str, Any], now: Optional[datetime]) -> RowTest:
    if isinstance(node, GroupNode):
        child_fns = [_build_client_fn(c, value_map, now) for c in node.children]
        if node.logical == LogicalOperator.AND:
            return lambda row: all(fn(row) for fn in child_fns)
        return lambda row: any(fn(row) for fn in child_fns)

    resolved = resolve_value(node, value_map)
    field_path, operator = node.field, node.operator

    def test(row: Any) -> bool:
        return evaluate_operator(operator, get_nested_value(row, field_path), resolved, now=now)

    return test


def _build_server_params(node: FilterNode, value_map: Dict[str, Any], out: Dict[str, Any]) -> Dict[str, Any]:
    # AND/OR structure is flattened away; later conditions win on key collisions
    if isinstance(node, GroupNode):
        for child in node.children:
            _build_server_params(child, value_map, out)
    else:
        write_server_param(out, node.field, node.operator, resolve_value(node, value_map))
    return out


def generate_predicate(
    definition: FilterDefinition,
    value: Any,
    *,
    now: Optional[datetime] = None,
) -> Predicate:
    """
    Compile a filter definition against a runtime value.

    The tree is walked twice: once into a single row-test closure and once
    into a flat server parameter map. Nothing is fetched and no shared
    state is touched; `now` pins the clock used by `relative`.
    """
    value_map = build_value_map(value)
    root = definition.root if definition.root is not None else GroupNode()
    client_predicate = _build_client_fn(root, value_map, now)
    server_params = _build_server_params(root, value_map, {})
    return Predicate(client_predicate=client_predicate, server_params=server_params)


def combine_predicates(predicates: List[Predicate]) -> Predicate:
    """
    AND-combine independent filters bound to one target. Server params
    are shallow-merged in order, later keys overwriting earlier ones.
    """
    if not predicates:
        return Predicate.neutral()

    parts = list(predicates)

    def combined(row: Any) -> bool:
        return all(p.matches(row) for p in parts)

    merged: Dict[str, Any] = {}
    for p in parts:
        merged.update(p.server_params)
    return Predicate(client_predicate=combined, server_params=merged)


__all__ = [
    "Predicate",
    "RowTest",
    "DEFAULT_BINDING",
    "build_value_map",
    "resolve_value",
    "generate_predicate",
    "combine_predicates",
]
