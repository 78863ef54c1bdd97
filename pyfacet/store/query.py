from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, List, Tuple
from urllib.parse import urlencode


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def to_query_params(params: Dict[str, Any]) -> List[Tuple[str, str]]:
    """
    Flatten a parameter map into ordered (key, value) pairs.
    - lists/tuples become repeated `key[]` entries (no second `[]` when
      the key already ends with one)
    - None values are dropped
    """
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            array_key = key if key.endswith("[]") else f"{key}[]"
            pairs.extend((array_key, _scalar(v)) for v in value if v is not None)
        else:
            pairs.append((key, _scalar(value)))
    return pairs


def to_query_string(params: Dict[str, Any]) -> str:
    return urlencode(to_query_params(params))


__all__ = ["to_query_params", "to_query_string"]
