"""
Event surface and session types for the protocol client.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .tool_types import ToolResult


class EventType(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    INPUT_TRANSCRIPT = "input_transcript"
    OUTPUT_TEXT = "output_text"
    OUTPUT_TRANSCRIPT = "output_transcript"
    AUDIO_CHUNK = "audio_chunk"
    TOOL_CALL_EXECUTED = "tool_call_executed"
    RESPONSE_STARTED = "response_started"
    RESPONSE_ENDED = "response_ended"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SessionMode(str, Enum):
    TEXT = "text"
    AUDIO = "audio"


@dataclass(frozen=True)
class SessionConfig:
    """Transport mode and model, fixed for the life of one connection."""

    mode: SessionMode
    model: str

    @property
    def is_audio(self) -> bool:
        return self.mode is SessionMode.AUDIO


@dataclass(frozen=True)
class ClientEvent:
    """
    One occurrence on the client's event surface.

    Only the fields relevant to ``type`` are set: ``text`` + ``is_final``
    for transcripts and output text, ``audio`` for audio chunks,
    ``tool_result`` for executed tool calls, ``error`` for errors.
    """

    type: EventType
    text: Optional[str] = None
    is_final: bool = False
    audio: Optional[bytes] = None
    tool_result: Optional[ToolResult] = None
    error: Optional[Exception] = None
    message_id: Optional[str] = None
