"""
Client-side operator semantics and server parameter key derivation.

Every function here is pure. Client tests coerce loosely (strings for the
text operators, floats for the numeric ones, parsed timestamps for dates)
and degrade to False on malformed operands instead of raising. An operator
this module does not know passes every row.
"""

from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional
import math
import re

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from ..filters import Operator

_RELATIVE_RE = re.compile(r"^last_(\d+)_(day|week|month|year)s?$")

_NAN = float("nan")


# -----------------------------------------------------------------------------
# Coercion helpers
# -----------------------------------------------------------------------------

def get_nested_value(row: Any, path: str) -> Any:
    """
    Follow a dot path through mappings (or object attributes). A missing
    segment yields None.
    """
    current = row
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, (list, tuple, str, bytes)):
            # sequences are indexed only; their methods are not fields
            if not part.isdigit() or isinstance(current, (str, bytes)):
                return None
            idx = int(part)
            current = current[idx] if idx < len(current) else None
        else:
            current = getattr(current, part, None)
    return current


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _as_number(value: Any) -> float:
    """Loose numeric coercion; NaN when the value has no numeric reading."""
    if value is None:
        return _NAN
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        if s == "":
            return 0.0
        try:
            return float(s)
        except ValueError:
            return _NAN
    if isinstance(value, (date, datetime)):
        ts = _as_timestamp(value)
        return ts if ts is not None else _NAN
    return _NAN


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a row or comparison value into an aware datetime. Naive values
    are read as UTC; numbers are epoch milliseconds. None when unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if math.isnan(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_timestamp(value: Any) -> Optional[float]:
    parsed = parse_datetime(value)
    return parsed.timestamp() if parsed is not None else None


def strict_equals(left: Any, right: Any) -> bool:
    """
    Equality without cross-type coercion: True never equals 1 and "1"
    never equals 1. Ints and floats compare numerically.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


# -----------------------------------------------------------------------------
# Relative dates
# -----------------------------------------------------------------------------

def relative_threshold(token: str, now: datetime) -> Optional[datetime]:
    """
    Resolve a `last_<N>_<unit>s?` token against `now`; None when the token
    does not match the grammar.
    """
    match = _RELATIVE_RE.match(token)
    if not match:
        return None
    amount, unit = int(match.group(1)), match.group(2)
    if unit == "day":
        return now - relativedelta(days=amount)
    if unit == "week":
        return now - relativedelta(days=amount * 7)
    if unit == "month":
        return now - relativedelta(months=amount)
    return now - relativedelta(years=amount)


def check_relative_date(date_string: Any, token: Any, now: Optional[datetime] = None) -> bool:
    """True iff the date lies within [now - N units, now]."""
    current = parse_datetime(now) if now is not None else datetime.now(timezone.utc)
    if current is None:
        return False
    threshold = relative_threshold(_as_text(token), current)
    if threshold is None:
        return False
    when = parse_datetime(date_string)
    if when is None:
        return False
    return threshold <= when <= current


# -----------------------------------------------------------------------------
# Client-side tests
# -----------------------------------------------------------------------------

def _between(row_value: Any, operand: Any) -> bool:
    if not _is_list(operand) or len(operand) != 2:
        return False
    val = _as_number(row_value)
    return _as_number(operand[0]) <= val <= _as_number(operand[1])


def _date_cmp(row_value: Any, operand: Any, before: bool) -> bool:
    left, right = _as_timestamp(row_value), _as_timestamp(operand)
    if left is None or right is None:
        return False
    return left < right if before else left > right


ClientTest = Callable[[Any, Any], bool]

_CLIENT_TESTS: Dict[str, ClientTest] = {
    Operator.EQ.value: strict_equals,
    Operator.NEQ.value: lambda r, v: not strict_equals(r, v),
    Operator.CONTAINS.value: lambda r, v: _as_text(v) in _as_text(r),
    Operator.STARTS_WITH.value: lambda r, v: _as_text(r).startswith(_as_text(v)),
    Operator.ENDS_WITH.value: lambda r, v: _as_text(r).endswith(_as_text(v)),
    Operator.IN.value: lambda r, v: _is_list(v) and any(strict_equals(r, x) for x in v),
    Operator.NOT_IN.value: lambda r, v: _is_list(v) and not any(strict_equals(r, x) for x in v),
    Operator.LT.value: lambda r, v: _as_number(r) < _as_number(v),
    Operator.LTE.value: lambda r, v: _as_number(r) <= _as_number(v),
    Operator.GT.value: lambda r, v: _as_number(r) > _as_number(v),
    Operator.GTE.value: lambda r, v: _as_number(r) >= _as_number(v),
    Operator.BETWEEN.value: _between,
    Operator.BEFORE.value: lambda r, v: _date_cmp(r, v, before=True),
    Operator.AFTER.value: lambda r, v: _date_cmp(r, v, before=False),
    Operator.RELATIVE.value: lambda r, v: check_relative_date(r, v),
}


def _op_name(operator: Any) -> str:
    return operator.value if isinstance(operator, Operator) else str(operator or "")


def is_known_operator(operator: Any) -> bool:
    return _op_name(operator) in _CLIENT_TESTS


def evaluate_operator(
    operator: Any,
    row_value: Any,
    operand: Any,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """
    Apply one operator on the client. Unknown operators pass every row.
    `now` pins the clock for `relative`.
    """
    op = _op_name(operator)
    if op == Operator.RELATIVE.value:
        return check_relative_date(row_value, operand, now)
    test = _CLIENT_TESTS.get(op)
    if test is None:
        return True
    return bool(test(row_value, operand))


# -----------------------------------------------------------------------------
# Server-side keys
# -----------------------------------------------------------------------------

_SUFFIXED = {
    Operator.LT.value: "_lt",
    Operator.LTE.value: "_lte",
    Operator.GT.value: "_gt",
    Operator.GTE.value: "_gte",
    Operator.BEFORE.value: "_before",
    Operator.AFTER.value: "_after",
    Operator.CONTAINS.value: "_contains",
}


def to_param_key(field_path: str) -> str:
    return field_path.replace(".", "_")


def write_server_param(out: Dict[str, Any], field_path: str, operator: Any, operand: Any) -> None:
    """
    Write one condition into a flat parameter map. Operators without a
    dedicated key (neq, starts_with, ends_with, not_in, relative and any
    unknown one) fall back to the bare key and may overwrite each other.
    """
    key = to_param_key(field_path)
    op = _op_name(operator)
    if op == Operator.IN.value:
        out[f"{key}[]"] = operand
    elif op == Operator.BETWEEN.value:
        if _is_list(operand) and len(operand) == 2:
            out[f"{key}_from"] = operand[0]
            out[f"{key}_to"] = operand[1]
    elif op in _SUFFIXED:
        out[f"{key}{_SUFFIXED[op]}"] = operand
    else:
        out[key] = operand


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
]
