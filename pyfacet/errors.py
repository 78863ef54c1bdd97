from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class ValidationError:
    """One problem found in a filter; returned as data, never raised."""
    field: str
    message: str
    path: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"field": self.field, "message": self.message}
        if self.path is not None:
            out["path"] = list(self.path)
        return out


class FilterValidationError(ValueError):
    """Raised when an action (publish) is blocked by validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = list(errors)
        summary = ", ".join(e.message for e in self.errors) or "invalid filter"
        super().__init__(f"Cannot publish: {summary}")


class StoreError(RuntimeError):
    """Transport or non-2xx failure from the filter store."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


__all__ = ["ValidationError", "FilterValidationError", "StoreError"]
