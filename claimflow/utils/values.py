"""Rendering of field values for the history ledger."""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def _canonical_value(obj: Any) -> Any:
    """Convert value for canonical representation."""
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return _canonical_value(obj.value)
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, (int, float, Decimal)):
        return float(obj) if isinstance(obj, (float, Decimal)) else int(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {str(k): _canonical_value(v) for k, v in sorted(obj.items())}
    if isinstance(obj, (list, tuple, set, frozenset)):
        items = [_canonical_value(v) for v in obj]
        return sorted(items, key=str) if isinstance(obj, (set, frozenset)) else items
    if isinstance(obj, str):
        return obj
    return str(obj)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON string (sorted keys, consistent formatting)."""
    canonical = _canonical_value(obj)
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def to_history_value(value: Any) -> str | None:
    """Text form stored in old_value/new_value.

    Scalars keep their plain text ("estimate_review", "15.0"); containers are
    stored as canonical JSON so equal values always compare equal.
    """
    canonical = _canonical_value(value)
    if canonical is None:
        return None
    if isinstance(canonical, bool):
        return "true" if canonical else "false"
    if isinstance(canonical, (dict, list)):
        return canonical_json(canonical)
    return str(canonical)


def to_metadata(obj: dict[str, Any] | None) -> dict[str, Any] | None:
    """JSON-safe copy of a metadata dict."""
    if obj is None:
        return None
    return _canonical_value(obj)
