"""
Wire frames for both transports.

Outbound frames are plain dict builders. Inbound frames are validated with
pydantic models; anything malformed or of an unknown shape parses to None so
the receive loop can skip it.
"""
from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidPayloadError
from .tool_types import ToolCall, ToolResult

IMAGE_MIME_TYPE = "image/jpeg"


def _alias(*names: str):
    return Field(default=None, validation_alias=AliasChoices(*names))


class _Frame(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, protected_namespaces=())


# --- inbound (streaming) ---


class InlineData(_Frame):
    mime_type: Optional[str] = _alias("mimeType", "mime_type")
    data: str


class FunctionCallPayload(_Frame):
    id: Optional[str] = None
    name: Optional[str] = None
    args: Optional[Dict[str, Any]] = None


class ContentPart(_Frame):
    text: Optional[str] = None
    inline_data: Optional[InlineData] = _alias("inlineData", "inline_data")
    transcript: Optional[str] = None
    function_call: Optional[FunctionCallPayload] = _alias("functionCall", "function_call")


class ModelTurn(_Frame):
    parts: List[ContentPart] = Field(default_factory=list)


class Transcription(_Frame):
    text: Optional[str] = None


class ServerContent(_Frame):
    model_turn: Optional[ModelTurn] = _alias("modelTurn", "model_turn")
    input_transcript: Optional[str] = _alias("inputTranscript", "input_transcript")
    input_transcription: Optional[Transcription] = _alias("inputTranscription", "input_transcription")
    output_transcription: Optional[Transcription] = _alias("outputTranscription", "output_transcription")
    turn_complete: bool = Field(default=False, validation_alias=AliasChoices("turnComplete", "turn_complete"))
    interrupted: bool = False

    def input_text(self) -> Optional[str]:
        if self.input_transcript:
            return self.input_transcript
        if self.input_transcription and self.input_transcription.text:
            return self.input_transcription.text
        return None


class ToolCallFrame(_Frame):
    function_calls: List[Dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("functionCalls", "function_calls")
    )

    def valid_calls(self) -> List[ToolCall]:
        """Calls missing an id, name or argument map are dropped."""
        calls = []
        for raw in self.function_calls:
            call_id, name, args = raw.get("id"), raw.get("name"), raw.get("args")
            if isinstance(call_id, str) and isinstance(name, str) and isinstance(args, dict):
                calls.append(ToolCall(id=call_id, name=name, arguments=args))
        return calls


class InboundFrame(_Frame):
    setup_complete: Optional[Dict[str, Any]] = _alias("setupComplete", "setup_complete")
    server_content: Optional[ServerContent] = _alias("serverContent", "server_content")
    tool_call: Optional[ToolCallFrame] = _alias("toolCall", "tool_call")

    @property
    def is_recognized(self) -> bool:
        return (
            self.setup_complete is not None
            or self.server_content is not None
            or self.tool_call is not None
        )


def parse_inbound(raw: Union[str, bytes]) -> Optional[InboundFrame]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        frame = InboundFrame.model_validate(data)
    except ValidationError:
        return None
    return frame if frame.is_recognized else None


def decode_inline_audio(inline: InlineData) -> Optional[bytes]:
    try:
        return base64.b64decode(inline.data, validate=True)
    except (binascii.Error, ValueError):
        return None


# --- outbound (streaming) ---


def build_setup_frame(
    model: str,
    system_instruction: str,
    tools: List[Dict[str, Any]],
    audio: bool,
    voice_name: str = "Aoede",
) -> Dict[str, Any]:
    generation_config: Dict[str, Any] = {"response_modalities": ["AUDIO" if audio else "TEXT"]}
    if audio:
        generation_config["speech_config"] = {
            "voice_config": {"prebuilt_voice_config": {"voice_name": voice_name}}
        }
    model_path = model if model.startswith("models/") else f"models/{model}"
    return {
        "setup": {
            "model": model_path,
            "generation_config": generation_config,
            "system_instruction": {"parts": [{"text": system_instruction}]},
            "tools": [{"function_declarations": tools}],
            "output_audio_transcription": {},
        }
    }


def build_realtime_media_frame(mime_type: str, data_b64: str) -> Dict[str, Any]:
    return {"realtime_input": {"media_chunks": [{"mime_type": mime_type, "data": data_b64}]}}


def build_client_turn_frame(parts: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "client_content": {
            "turns": [{"role": "user", "parts": list(parts)}],
            "turn_complete": True,
        }
    }


def build_tool_response_frame(results: Iterable[ToolResult]) -> Dict[str, Any]:
    return {"toolResponse": {"functionResponses": [r.to_api_format() for r in results]}}


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def image_part(image: bytes, *, rest: bool = False) -> Dict[str, Any]:
    data = base64.b64encode(image).decode("ascii")
    if rest:
        return {"inlineData": {"mimeType": IMAGE_MIME_TYPE, "data": data}}
    return {"inline_data": {"mime_type": IMAGE_MIME_TYPE, "data": data}}


# --- stateless ---


def build_generate_body(
    contents: List[Dict[str, Any]],
    system_instruction: str,
    tools: List[Dict[str, Any]],
) -> Dict[str, Any]:
    return {
        "contents": contents,
        "systemInstruction": {"parts": [{"text": system_instruction}]},
        "tools": [{"functionDeclarations": tools}],
    }


class _Content(_Frame):
    role: Optional[str] = None
    parts: List[Dict[str, Any]] = Field(default_factory=list)


class _Candidate(_Frame):
    content: Optional[_Content] = None
    finish_reason: Optional[str] = _alias("finishReason", "finish_reason")


class GenerateContentResponse(_Frame):
    candidates: List[_Candidate] = Field(default_factory=list)

    def first_parts(self) -> List[Dict[str, Any]]:
        for candidate in self.candidates:
            if candidate.content is not None:
                return candidate.content.parts
        return []


def parse_generate_response(data: Any) -> List[Dict[str, Any]]:
    """
    Raw parts of the first candidate.

    Raises InvalidPayloadError when the body is not a generateContent response.
    """
    if not isinstance(data, dict):
        raise InvalidPayloadError("Response body is not a JSON object")
    try:
        response = GenerateContentResponse.model_validate(data)
    except ValidationError as e:
        raise InvalidPayloadError(f"Unexpected response shape: {e.error_count()} errors") from e
    return response.first_parts()


def function_calls_in(parts: Iterable[Dict[str, Any]]) -> List[FunctionCallPayload]:
    calls = []
    for part in parts:
        raw = part.get("functionCall") if isinstance(part, dict) else None
        if not isinstance(raw, dict):
            continue
        try:
            payload = FunctionCallPayload.model_validate(raw)
        except ValidationError:
            continue
        if payload.name:
            calls.append(payload)
    return calls


def text_in(parts: Iterable[Dict[str, Any]]) -> str:
    return "".join(p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str))
