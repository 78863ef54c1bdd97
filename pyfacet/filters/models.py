# pyfacet/filters/models.py
from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import copy
import json

import jsonschema

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Operator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    BETWEEN = "between"
    BEFORE = "before"
    AFTER = "after"
    RELATIVE = "relative"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class FilterStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    DEPRECATED = "deprecated"


class FilterType(str, Enum):
    DATE = "date"
    RANGE = "range"
    DROPDOWN = "dropdown"
    MULTISELECT = "multiselect"
    TEXT = "text"
    BOOLEAN = "boolean"
    TAG = "tag"
    CUSTOM = "custom"


class CreationMode(str, Enum):
    MANUAL = "manual"
    DRAG_DROP = "drag-drop"


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class ValueKind(str, Enum):
    """Closed set of literal shapes a condition can compare against."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    LIST = "list"


ComparisonValue = Union[str, int, float, bool, date, datetime, List[Any]]


def value_kind(value: Any) -> Optional[ValueKind]:
    """
    Classify a literal into its ValueKind; None when it is missing or
    not one of the supported shapes.
    """
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, (date, datetime)):
        return ValueKind.DATE
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    return None


def _enum_or_raw(enum_cls, raw: Any):
    """Keep unknown wire values as-is so validation can report them."""
    try:
        return enum_cls(raw)
    except ValueError:
        return raw


def _value_to_json(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_value_to_json(v) for v in value]
    if isinstance(value, list):
        return [_value_to_json(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Filter tree
# ---------------------------------------------------------------------------

@dataclass
class ConditionNode:
    """
    Leaf of a filter tree: a field path, an operator and a literal value.
    When `binding` names a key present in the runtime value map, that
    runtime value replaces `value` during compilation.
    """
    field: str = ""
    operator: str = Operator.EQ.value
    value: Optional[ComparisonValue] = None
    binding: Optional[str] = None

    type = "condition"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "type": "condition",
            "field": self.field,
            "operator": str(self.operator.value if isinstance(self.operator, Operator) else self.operator),
            "value": _value_to_json(self.value),
        }
        if self.binding:
            out["binding"] = self.binding
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConditionNode":
        return cls(
            field=data.get("field", "") or "",
            operator=data.get("operator", "") or "",
            value=data.get("value"),
            binding=data.get("binding") or None,
        )


@dataclass
class GroupNode:
    """
    Internal node: children combined with AND or OR.
    """
    logical: Union[LogicalOperator, str] = LogicalOperator.AND
    children: List["FilterNode"] = field(default_factory=list)

    type = "group"

    def to_dict(self) -> Dict[str, Any]:
        logical = self.logical.value if isinstance(self.logical, LogicalOperator) else self.logical
        return {
            "type": "group",
            "logical": logical,
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupNode":
        return cls(
            logical=_enum_or_raw(LogicalOperator, data.get("logical", "")),
            children=[node_from_dict(c) for c in data.get("children") or []],
        )


FilterNode = Union[GroupNode, ConditionNode]


def node_from_dict(data: Dict[str, Any]) -> FilterNode:
    """
    Dispatch on the `type` tag. Nodes without a tag are treated as groups
    when they carry `children`, otherwise as conditions.
    """
    tag = data.get("type")
    if tag == "group" or (tag is None and "children" in data):
        return GroupNode.from_dict(data)
    if tag == "condition" or tag is None:
        return ConditionNode.from_dict(data)
    raise ValueError(f"Unknown filter node type: {tag!r}")


@dataclass
class FilterDefinition:
    root: Optional[GroupNode] = field(default_factory=GroupNode)

    def to_dict(self) -> Dict[str, Any]:
        return {"root": self.root.to_dict() if self.root is not None else None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterDefinition":
        root = data.get("root")
        if root is None:
            return cls(root=None)
        node = node_from_dict(root)
        if not isinstance(node, GroupNode):
            # a bare condition at the root is wrapped in an AND group
            node = GroupNode(logical=LogicalOperator.AND, children=[node])
        return cls(root=node)


# ---------------------------------------------------------------------------
# Presentation config and placements
# ---------------------------------------------------------------------------

_UI_KEYS = {
    "size": "size",
    "cssClass": "css_class",
    "style": "style",
    "label": "label",
    "placeholder": "placeholder",
    "tooltip": "tooltip",
    "helperText": "helper_text",
    "debounceMs": "debounce_ms",
}


@dataclass
class Dimensions:
    width: Optional[str] = None
    height: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.width is not None:
            out["width"] = self.width
        if self.height is not None:
            out["height"] = self.height
        return out


@dataclass
class UIConfig:
    size: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    css_class: Optional[str] = None
    style: Dict[str, Any] = field(default_factory=dict)
    label: Optional[str] = None
    placeholder: Optional[str] = None
    tooltip: Optional[str] = None
    helper_text: Optional[str] = None
    debounce_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for wire, attr in _UI_KEYS.items():
            val = getattr(self, attr)
            if val is not None and val != {}:
                out[wire] = val
        if self.dimensions is not None:
            out["dimensions"] = self.dimensions.to_dict()
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UIConfig":
        kwargs = {attr: data.get(wire) for wire, attr in _UI_KEYS.items() if wire in data}
        if kwargs.get("style") is None:
            kwargs["style"] = {}
        dims = data.get("dimensions")
        if isinstance(dims, dict):
            kwargs["dimensions"] = Dimensions(width=dims.get("width"), height=dims.get("height"))
        return cls(**kwargs)


@dataclass
class FilterInstance:
    """
    Binds one filter to one UI target.
    """
    id: Optional[str] = None
    filter_id: str = ""
    target_type: str = ""
    target_ref: str = ""
    placement: str = ""
    panel_ref: Optional[str] = None
    shared_state_group: Optional[str] = None
    ui_override: Optional[UIConfig] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "filterId": self.filter_id,
            "targetType": self.target_type,
            "targetRef": self.target_ref,
            "placement": self.placement,
            "isActive": self.is_active,
        }
        if self.panel_ref is not None:
            out["panelRef"] = self.panel_ref
        if self.shared_state_group is not None:
            out["sharedStateGroup"] = self.shared_state_group
        if self.ui_override is not None:
            out["uiOverride"] = self.ui_override.to_dict()
        if self.created_at is not None:
            out["createdAt"] = self.created_at
        if self.updated_at is not None:
            out["updatedAt"] = self.updated_at
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FilterInstance":
        override = data.get("uiOverride")
        raw_id = data.get("id")
        return cls(
            id=str(raw_id) if raw_id not in (None, "") else None,
            filter_id=str(data.get("filterId", "") or ""),
            target_type=data.get("targetType", "") or "",
            target_ref=str(data.get("targetRef", "") or ""),
            placement=data.get("placement", "") or "",
            panel_ref=data.get("panelRef"),
            shared_state_group=data.get("sharedStateGroup"),
            ui_override=UIConfig.from_dict(override) if isinstance(override, dict) else None,
            is_active=bool(data.get("isActive", True)),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


# ---------------------------------------------------------------------------
# Aggregate root
# ---------------------------------------------------------------------------

@dataclass
class Filter:
    """
    A named, versioned, reusable rule plus its default presentation and
    the placements that bind it to targets.
    """
    id: Optional[str] = None
    name: str = ""
    description: str = ""
    type: Union[FilterType, str, None] = FilterType.DATE
    creation_mode: Union[CreationMode, str] = CreationMode.MANUAL
    definition: Optional[FilterDefinition] = field(default_factory=FilterDefinition)
    ui_default: Optional[UIConfig] = field(default_factory=UIConfig)
    version: int = 0
    status: Union[FilterStatus, str] = FilterStatus.DRAFT
    tags: List[str] = field(default_factory=list)
    owner_user_id: Optional[str] = None
    visibility_scope: Optional[str] = None
    instances: List[FilterInstance] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted_at: Optional[str] = None

    @property
    def is_deprecated(self) -> bool:
        return self.status == FilterStatus.DEPRECATED

    @classmethod
    def new_draft(cls) -> "Filter":
        return cls(
            definition=FilterDefinition(root=GroupNode(logical=LogicalOperator.AND)),
            ui_default=UIConfig(size="medium", dimensions=Dimensions(), css_class=""),
        )

    def clone(self) -> "Filter":
        return replace(
            copy.deepcopy(self),
            id=None,
            name=f"{self.name} (Copy)",
            status=FilterStatus.DRAFT,
            version=0,
        )

    # camelCase JSON helpers
    def to_dict(self) -> Dict[str, Any]:
        def _v(x):
            return x.value if isinstance(x, Enum) else x

        out: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": _v(self.type),
            "creationMode": _v(self.creation_mode),
            "definition": self.definition.to_dict() if self.definition is not None else None,
            "uiDefault": self.ui_default.to_dict() if self.ui_default is not None else None,
            "version": self.version,
            "status": _v(self.status),
            "tags": list(self.tags),
            "instances": [i.to_dict() for i in self.instances],
        }
        for wire, val in (
            ("ownerUserId", self.owner_user_id),
            ("visibilityScope", self.visibility_scope),
            ("createdAt", self.created_at),
            ("updatedAt", self.updated_at),
            ("deletedAt", self.deleted_at),
        ):
            if val is not None:
                out[wire] = val
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Filter":
        definition = data.get("definition")
        ui_default = data.get("uiDefault")
        raw_id = data.get("id")
        raw_type = data.get("type")
        return cls(
            id=str(raw_id) if raw_id not in (None, "") else None,
            name=data.get("name", "") or "",
            description=data.get("description", "") or "",
            type=_enum_or_raw(FilterType, raw_type) if raw_type else None,
            creation_mode=_enum_or_raw(CreationMode, data.get("creationMode", CreationMode.MANUAL.value)),
            definition=FilterDefinition.from_dict(definition) if isinstance(definition, dict) else None,
            ui_default=UIConfig.from_dict(ui_default) if isinstance(ui_default, dict) else None,
            version=int(data.get("version", 0) or 0),
            status=_enum_or_raw(FilterStatus, data.get("status", FilterStatus.DRAFT.value)),
            tags=list(data.get("tags") or []),
            owner_user_id=data.get("ownerUserId"),
            visibility_scope=data.get("visibilityScope"),
            instances=[FilterInstance.from_dict(i) for i in data.get("instances") or []],
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            deleted_at=data.get("deletedAt"),
        )


# ---------------------------------------------------------------------------
# JSON Schema (structural shape only; semantics live in validation.rules)
# ---------------------------------------------------------------------------

FILTER_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://pyfacet.local/filter.schema.json",
    "title": "Filter",
    "$defs": {
        "ConditionNode": {
            "type": "object",
            "properties": {
                "type": {"const": "condition"},
                "field": {"type": ["string", "null"]},
                "operator": {"type": ["string", "null"]},
                "value": {},
                "binding": {"type": ["string", "null"]},
            },
            "required": ["type"],
        },
        "GroupNode": {
            "type": "object",
            "properties": {
                "type": {"const": "group"},
                "logical": {"type": ["string", "null"]},
                "children": {
                    "type": "array",
                    "items": {
                        "oneOf": [
                            {"$ref": "#/$defs/GroupNode"},
                            {"$ref": "#/$defs/ConditionNode"},
                        ]
                    },
                },
            },
            "required": ["type"],
        },
        "FilterDefinition": {
            "type": "object",
            "properties": {
                "root": {"oneOf": [{"$ref": "#/$defs/GroupNode"}, {"type": "null"}]},
            },
        },
        "UIConfig": {
            "type": "object",
            "properties": {
                "size": {"type": ["string", "null"]},
                "dimensions": {
                    "type": ["object", "null"],
                    "properties": {
                        "width": {"type": ["string", "null"]},
                        "height": {"type": ["string", "null"]},
                    },
                },
                "cssClass": {"type": ["string", "null"]},
                "style": {"type": ["object", "null"]},
                "debounceMs": {"type": ["integer", "null"]},
            },
        },
        "FilterInstance": {
            "type": "object",
            "properties": {
                "id": {"type": ["string", "integer", "null"]},
                "filterId": {"type": ["string", "integer", "null"]},
                "targetType": {"type": ["string", "null"]},
                "targetRef": {"type": ["string", "integer", "null"]},
                "placement": {"type": ["string", "null"]},
                "isActive": {"type": "boolean"},
                "uiOverride": {"oneOf": [{"$ref": "#/$defs/UIConfig"}, {"type": "null"}]},
            },
        },
    },
    "type": "object",
    "properties": {
        "id": {"type": ["string", "integer", "null"]},
        "name": {"type": ["string", "null"]},
        "description": {"type": ["string", "null"]},
        "type": {"type": ["string", "null"]},
        "definition": {"oneOf": [{"$ref": "#/$defs/FilterDefinition"}, {"type": "null"}]},
        "uiDefault": {"oneOf": [{"$ref": "#/$defs/UIConfig"}, {"type": "null"}]},
        "version": {"type": "integer", "minimum": 0},
        "status": {"type": "string"},
        "tags": {"type": "array", "items": {"type": "string"}},
        "instances": {"type": "array", "items": {"$ref": "#/$defs/FilterInstance"}},
    },
}

DEFINITION_SCHEMA: Dict[str, Any] = {
    **{k: v for k, v in FILTER_SCHEMA.items() if k in ("$schema", "$defs")},
    "$id": "https://pyfacet.local/definition.schema.json",
    "title": "Filter Definition",
    "$ref": "#/$defs/FilterDefinition",
}

INSTANCE_SCHEMA: Dict[str, Any] = {
    **{k: v for k, v in FILTER_SCHEMA.items() if k in ("$schema", "$defs")},
    "$id": "https://pyfacet.local/instance.schema.json",
    "title": "Filter Instance",
    "$ref": "#/$defs/FilterInstance",
    "required": ["filterId", "targetRef"],
}


def _load(payload: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    data = json.loads(payload) if isinstance(payload, (str, bytes)) else payload
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def parse_filter_json(
    payload: Union[str, bytes, Dict[str, Any]],
    *,
    validate: bool = True,
) -> Filter:
    """
    Accept a JSON string or dict and return a Filter.
    """
    data = _load(payload)
    if validate:
        jsonschema.validate(instance=data, schema=FILTER_SCHEMA)
    return Filter.from_dict(data)


def parse_definition_json(
    payload: Union[str, bytes, Dict[str, Any]],
    *,
    validate: bool = True,
) -> FilterDefinition:
    data = _load(payload)
    if validate:
        jsonschema.validate(instance=data, schema=DEFINITION_SCHEMA)
    return FilterDefinition.from_dict(data)


def parse_instance_json(
    payload: Union[str, bytes, Dict[str, Any]],
    *,
    validate: bool = True,
) -> FilterInstance:
    data = _load(payload)
    if validate:
        jsonschema.validate(instance=data, schema=INSTANCE_SCHEMA)
    return FilterInstance.from_dict(data)


# ---------------------------------------------------------------------------
# Public exports
# ---------------------------------------------------------------------------

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
