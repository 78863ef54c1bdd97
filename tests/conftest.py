"""
Pytest configuration and shared fixtures.

This file contains reusable filter definitions, an in-memory definition
loader, and engine fixtures.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from pyfacet.engine import FilterEngine
from pyfacet.errors import StoreError
from pyfacet.filters import (
    ConditionNode,
    Filter,
    FilterDefinition,
    FilterInstance,
    FilterStatus,
    FilterType,
    GroupNode,
    LogicalOperator,
)


class FakeLoader:
    """
    In-memory stand-in for the filter store. Records every fetch and can
    hold a fetch open until a test releases it.
    """

    def __init__(self, filters: Optional[Dict[str, Filter]] = None):
        self.filters: Dict[str, Filter] = dict(filters or {})
        self.calls: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.failures: Dict[str, str] = {}

    def add(self, flt: Filter) -> None:
        self.filters[flt.id] = flt

    async def get_filter(self, filter_id: str) -> Filter:
        self.calls.append(filter_id)
        gate = self.gates.get(filter_id)
        if gate is not None:
            await gate.wait()
        if filter_id in self.failures:
            raise StoreError(self.failures[filter_id], status_code=500)
        if filter_id not in self.filters:
            raise StoreError(f"Filter not found: {filter_id}", status_code=404)
        return self.filters[filter_id]


def make_filter(filter_id: str, definition: FilterDefinition, **kwargs) -> Filter:
    return Filter(
        id=filter_id,
        name=kwargs.pop("name", f"Filter {filter_id}"),
        type=kwargs.pop("type", FilterType.DROPDOWN),
        definition=definition,
        status=kwargs.pop("status", FilterStatus.PUBLISHED),
        **kwargs,
    )


def single_condition(field: str, operator: str, value=None, binding: str = "default") -> FilterDefinition:
    return FilterDefinition(
        root=GroupNode(
            logical=LogicalOperator.AND,
            children=[ConditionNode(field=field, operator=operator, value=value, binding=binding)],
        )
    )


def make_instance(instance_id: str, filter_id: str, target_ref: str, *, active: bool = True) -> FilterInstance:
    return FilterInstance(
        id=instance_id,
        filter_id=filter_id,
        target_type="widget",
        target_ref=target_ref,
        placement="toolbar",
        is_active=active,
    )


@pytest.fixture
def region_definition() -> FilterDefinition:
    """`region == <value>` with the value bound at runtime."""
    return single_condition("region", "eq", "EU")


@pytest.fixture
def status_definition() -> FilterDefinition:
    """`status in <value>` with the value bound at runtime."""
    return single_condition("status", "in", ["open"])


@pytest.fixture
def loader(region_definition, status_definition) -> FakeLoader:
    return FakeLoader({
        "F1": make_filter("F1", region_definition),
        "F2": make_filter("F2", status_definition),
    })


@pytest.fixture
def engine(loader) -> FilterEngine:
    """
    Engine with F1 bound to T1 and T2, and F2 bound to T3.
    """
    eng = FilterEngine(loader)
    eng.register_instance(make_instance("i1", "F1", "T1"))
    eng.register_instance(make_instance("i2", "F1", "T2"))
    eng.register_instance(make_instance("i3", "F2", "T3"))
    return eng


@pytest.fixture
def rows() -> List[dict]:
    return [
        {"id": 1, "region": "EU", "status": "open", "amount": 10, "owner": {"name": "ana"}},
        {"id": 2, "region": "US", "status": "closed", "amount": 25, "owner": {"name": "bo"}},
        {"id": 3, "region": "EU", "status": "closed", "amount": 40, "owner": {"name": "cy"}},
        {"id": 4, "region": "APAC", "status": "open", "amount": 5, "owner": None},
    ]
