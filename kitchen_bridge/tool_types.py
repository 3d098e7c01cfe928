"""
Remote tool call and result types.

Arguments arrive as JSON-decoded values whose types the agent does not
always respect ("2" for 2, 2 for 2.0), so ToolCall exposes tolerant typed
accessors instead of trusting the raw map.
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


def coerce_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    # "inf" and "nan" parse as floats but are never quantities
    return number if math.isfinite(number) else None


def coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        # 2.9 -> 2
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def coerce_datetime(value: Any) -> Optional[datetime]:
    """ISO-8601 first, then a plain YYYY-MM-DD."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%Y-%m-%d")
    except ValueError:
        return None


@dataclass(frozen=True)
class ToolCall:
    """A single remote function invocation, consumed once."""

    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def has(self, key: str) -> bool:
        return self.arguments.get(key) is not None

    def string(self, key: str) -> Optional[str]:
        value = self.arguments.get(key)
        return value if isinstance(value, str) else None

    def double(self, key: str) -> Optional[float]:
        return coerce_float(self.arguments.get(key))

    def int(self, key: str) -> Optional[int]:
        return coerce_int(self.arguments.get(key))

    def bool(self, key: str) -> Optional[bool]:
        value = self.arguments.get(key)
        return value if isinstance(value, bool) else None

    def date(self, key: str) -> Optional[datetime]:
        return coerce_datetime(self.arguments.get(key))

    def mapping(self, key: str) -> Optional[Dict[str, Any]]:
        value = self.arguments.get(key)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return None
        return value if isinstance(value, dict) else None

    def json_list(self, key: str) -> Optional[List[Any]]:
        """A list, or a string holding a JSON array. None if neither."""
        value = self.arguments.get(key)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return None
        return value if isinstance(value, list) else None


@dataclass(frozen=True)
class ToolResult:
    id: str
    name: str
    success: bool
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, call: ToolCall, message: str, **payload: Any) -> "ToolResult":
        return cls(id=call.id, name=call.name, success=True, message=message, payload=payload)

    @classmethod
    def fail(cls, call: ToolCall, message: str) -> "ToolResult":
        return cls(id=call.id, name=call.name, success=False, message=message)

    def to_response(self) -> Dict[str, Any]:
        """The ``response`` object sent back to the agent."""
        if not self.success:
            return {"success": False, "error": self.message}
        response = dict(self.payload)
        response["success"] = True
        response["message"] = self.message
        return response

    def to_api_format(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "response": self.to_response()}
