"""
Bounded conversation history for the stateless transport.

Each stateless request carries the full history, so the turn count is
capped and the oldest turns are evicted first. The streaming transport keeps
its own context server-side and never touches this.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Deque, Dict, Iterable, List, Mapping, Sequence, Tuple

from .tool_types import ToolResult


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    TOOL = "tool"

    @property
    def wire_role(self) -> str:
        # generateContent only accepts "user" and "model"; function responses ride on "user"
        return "model" if self is Role.MODEL else "user"


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class ConversationTurn:
    role: Role
    parts: Tuple[Mapping[str, Any], ...]

    @classmethod
    def build(cls, role: Role, parts: Iterable[Dict[str, Any]]) -> "ConversationTurn":
        return cls(role=role, parts=tuple(_freeze(p) for p in parts))

    def to_wire(self) -> Dict[str, Any]:
        return {"role": self.role.wire_role, "parts": [_thaw(p) for p in self.parts]}


class ConversationHistory:
    """Capped FIFO of conversation turns."""

    def __init__(self, max_turns: int = 20):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.max_turns = max_turns
        self._turns: Deque[ConversationTurn] = deque(maxlen=max_turns)

    def append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def append_user_turn(self, parts: Sequence[Dict[str, Any]]) -> ConversationTurn:
        turn = ConversationTurn.build(Role.USER, parts)
        self.append(turn)
        return turn

    def append_model_turn(self, parts: Sequence[Dict[str, Any]]) -> ConversationTurn:
        turn = ConversationTurn.build(Role.MODEL, parts)
        self.append(turn)
        return turn

    def append_tool_turn(self, results: Sequence[ToolResult]) -> ConversationTurn:
        parts = [
            {"functionResponse": {"name": r.name, "response": r.to_response()}}
            for r in results
        ]
        turn = ConversationTurn.build(Role.TOOL, parts)
        self.append(turn)
        return turn

    def snapshot(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def to_wire(self) -> List[Dict[str, Any]]:
        return [turn.to_wire() for turn in self.snapshot()]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)
