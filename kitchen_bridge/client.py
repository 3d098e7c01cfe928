"""
Protocol client: one state machine over the streaming and stateless
transports.

User turns go over the websocket while it is connected and over
generateContent otherwise. Inbound content, transcripts and tool calls are
surfaced as ClientEvents; tool calls are validated and executed through the
FunctionDispatcher and answered over the transport they arrived on.

All state is owned by the running event loop. Timers, the receive loop and
the stateless exchange are tasks on that loop, and disconnect() cancels all
of them.
"""
from __future__ import annotations

import asyncio
import base64
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

import aiohttp

from logging_setup import get_logger, Component as LogComponent

from . import audio_codec
from .client_events import ClientEvent, ConnectionState, EventType, SessionConfig, SessionMode
from .config import BridgeConfig, get_config
from .conversation import ConversationHistory
from .dispatcher import FunctionDispatcher
from .errors import (
    AcceptanceTimeoutError,
    ConnectionClosedError,
    ConnectionFailedError,
    HeartbeatTimeoutError,
    KitchenBridgeError,
    MissingCredentialError,
    RequestTimeoutError,
    ToolLoopExceededError,
)
from .frames import (
    IMAGE_MIME_TYPE,
    InboundFrame,
    ServerContent,
    ToolCallFrame,
    build_client_turn_frame,
    build_generate_body,
    build_realtime_media_frame,
    build_setup_frame,
    build_tool_response_frame,
    decode_inline_audio,
    function_calls_in,
    image_part,
    parse_inbound,
    text_in,
    text_part,
)
from .instructions import get_instructions
from .lifecycle import RequestLifecycleTracker
from .observability import Component, EventEmitter, Severity
from .stateless import StatelessTransport
from .streaming import StreamingTransport, build_stream_url
from .tool_types import ToolCall, ToolResult

EventHandler = Callable[[ClientEvent], Any]


def _new_id() -> str:
    return uuid.uuid4().hex


class ProtocolClient:
    def __init__(
        self,
        dispatcher: FunctionDispatcher,
        config: Optional[BridgeConfig] = None,
        *,
        system_instruction: Optional[str] = None,
        session_id: Optional[str] = None,
        stream_session_factory: Callable[[], Any] = aiohttp.ClientSession,
        rest_session_factory: Optional[Callable[[], Any]] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.config = config or get_config()
        self.dispatcher = dispatcher
        self.session_id = session_id or f"kb_{_new_id()[:12]}"
        self.system_instruction = system_instruction or get_instructions(self.config.persona)
        self.logger = get_logger(LogComponent.PROTOCOL_CLIENT, session_id=self.session_id)
        self.emitter = EventEmitter(Component.PROTOCOL_CLIENT)

        self.state = ConnectionState.DISCONNECTED
        self.session_config: Optional[SessionConfig] = None
        self.history = ConversationHistory(self.config.max_history_turns)
        self.tracker = RequestLifecycleTracker(
            acceptance_timeout_s=self.config.acceptance_timeout_s,
            request_timeout_s=self.config.request_timeout_s,
            heartbeat_timeout_s=self.config.heartbeat_timeout_s,
            on_acceptance_timeout=self._on_acceptance_timeout,
            on_request_timeout=self._on_request_timeout,
            on_heartbeat_timeout=self._on_heartbeat_timeout,
            sleep=sleep,
            session_id=self.session_id,
        )

        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self._stream_session_factory = stream_session_factory
        self._rest_session_factory = rest_session_factory
        self._stream: Optional[StreamingTransport] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._rest: Optional[StatelessTransport] = None
        self._rest_task: Optional[asyncio.Task] = None
        self._rest_message_id: Optional[str] = None
        self._background: Set[asyncio.Task] = set()

        self._responding = False
        self._stream_text: List[str] = []

    # --- event surface ---

    def on(self, event_type: EventType, handler: EventHandler) -> EventHandler:
        self._handlers[event_type].append(handler)
        return handler

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        if handler in self._handlers[event_type]:
            self._handlers[event_type].remove(handler)

    def _emit(self, event: ClientEvent) -> None:
        for handler in list(self._handlers[event.type]):
            try:
                handler(event)
            except Exception as e:
                # A broken subscriber must not take the session down
                self.logger.error(
                    "Event handler failed",
                    event=event.type.value,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

    def _emit_error(self, error: KitchenBridgeError) -> None:
        self.logger.warning(
            "Client error",
            code=error.code,
            category=error.category,
            error=str(error),
            message_id=error.message_id,
        )
        self.emitter.emit(
            "client.error",
            session_id=self.session_id,
            severity=Severity.ERROR,
            correlation_id=error.message_id,
            code=error.code,
            category=error.category,
        )
        self._emit(ClientEvent(EventType.ERROR, error=error, message_id=error.message_id))

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state is self.state:
            return
        old_state, self.state = self.state, new_state
        self.logger.info("Connection state changed", from_state=old_state.value, to_state=new_state.value)
        self.emitter.emit(
            "connection.state_changed",
            session_id=self.session_id,
            severity=Severity.INFO,
            from_state=old_state.value,
            to_state=new_state.value,
        )

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def is_responding(self) -> bool:
        return self._responding

    # --- connection ---

    async def connect(self, mode: SessionMode = SessionMode.AUDIO, model: Optional[str] = None) -> bool:
        """
        Open the streaming transport.

        Returns False when the connection could not even be attempted
        (missing credential, malformed URL); an error event is emitted and no
        network activity happens. Otherwise the state is CONNECTING until the
        server acknowledges setup.
        """
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            self.logger.debug("Connect ignored", state=self.state.value)
            return True

        try:
            api_key = self._require_api_key()
            url = build_stream_url(self.config.live_url, api_key)
        except KitchenBridgeError as e:
            self._set_state(ConnectionState.ERROR)
            self._emit_error(e)
            return False

        self.session_config = SessionConfig(mode=mode, model=model or self.config.live_model)
        self._set_state(ConnectionState.CONNECTING)

        stream = StreamingTransport(url, session_factory=self._stream_session_factory)
        self._stream = stream
        self.tracker.start_acceptance()
        self._receive_task = asyncio.get_running_loop().create_task(
            self._run_stream(stream, self.session_config)
        )
        return True

    async def switch_to_audio_mode(self) -> bool:
        await self.disconnect()
        return await self.connect(SessionMode.AUDIO)

    async def disconnect(self) -> None:
        """Cancel every task and timer and close the socket. Safe to call twice."""
        receive_task, self._receive_task = self._receive_task, None
        rest_task, self._rest_task = self._rest_task, None
        stream, self._stream = self._stream, None
        self._rest_message_id = None

        self.tracker.cancel_all()
        await self._cancel_and_wait(receive_task, rest_task)
        if stream is not None:
            await stream.close()

        self._stream_text = []
        self._end_response()

        previous = self.state
        self._set_state(ConnectionState.DISCONNECTED)
        if previous in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self._emit(ClientEvent(EventType.DISCONNECTED))

    async def aclose(self) -> None:
        """Disconnect and release the stateless HTTP session."""
        await self.disconnect()
        for task in list(self._background):
            task.cancel()
        if self._rest is not None:
            await self._rest.close()
            self._rest = None

    async def _cancel_and_wait(self, *tasks: Optional[asyncio.Task]) -> None:
        current = asyncio.current_task()
        pending = {t for t in tasks if t is not None and t is not current and not t.done()}
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

    def _require_api_key(self) -> str:
        if not self.config.api_key:
            raise MissingCredentialError()
        return self.config.api_key

    async def _run_stream(self, stream: StreamingTransport, session_config: SessionConfig) -> None:
        error: Optional[KitchenBridgeError] = None
        try:
            await stream.open()
            await stream.send_json(build_setup_frame(
                model=session_config.model,
                system_instruction=self.system_instruction,
                tools=self.dispatcher.registry.to_api_format(),
                audio=session_config.is_audio,
                voice_name=self.config.voice_name,
            ))
            self.logger.info("Setup sent", model=session_config.model, mode=session_config.mode.value)
            async for raw in stream.receive():
                await self._handle_raw(raw)
        except asyncio.CancelledError:
            raise
        except KitchenBridgeError as e:
            error = e
        except Exception as e:
            self.logger.exception("Receive loop crashed", error=str(e), error_type=type(e).__name__)
            error = ConnectionClosedError(f"Receive loop crashed: {type(e).__name__}")

        if self._stream is not stream:
            # superseded by disconnect() or an acceptance timeout
            return
        await self._on_stream_ended(stream, error)

    async def _on_stream_ended(self, stream: StreamingTransport, error: Optional[KitchenBridgeError]) -> None:
        was_connected = self.is_connected
        self._stream = None
        self._receive_task = None
        self.tracker.mark_accepted()
        self.tracker.end_stream()
        for message_id in self.tracker.pending_messages:
            if message_id != self._rest_message_id:
                self.tracker.resolve_message(message_id)
        await stream.close()
        self._stream_text = []
        self._end_response()

        if was_connected:
            if error is not None:
                self._emit_error(error)
            self._set_state(ConnectionState.DISCONNECTED)
            self._emit(ClientEvent(EventType.DISCONNECTED))
        else:
            self._set_state(ConnectionState.ERROR)
            self._emit_error(error or ConnectionFailedError("Connection closed before setup completed"))

    async def _on_acceptance_timeout(self) -> None:
        receive_task, self._receive_task = self._receive_task, None
        stream, self._stream = self._stream, None
        await self._cancel_and_wait(receive_task)
        if stream is not None:
            await stream.close()
        self.tracker.end_stream()
        self._stream_text = []
        self._end_response()
        self._set_state(ConnectionState.ERROR)
        self._emit_error(AcceptanceTimeoutError())

    # --- inbound (streaming) ---

    async def _handle_raw(self, raw: Union[str, bytes]) -> None:
        frame = parse_inbound(raw)
        if frame is None:
            self.logger.debug("Skipping unrecognized frame", size=len(raw))
            return
        if self.tracker.mark_accepted():
            self.logger.info("Connection accepted")
        await self._handle_frame(frame)

    async def _handle_frame(self, frame: InboundFrame) -> None:
        if frame.setup_complete is not None and self.state is ConnectionState.CONNECTING:
            self._set_state(ConnectionState.CONNECTED)
            self._emit(ClientEvent(EventType.CONNECTED))
        if frame.server_content is not None:
            self._handle_server_content(frame.server_content)
        if frame.tool_call is not None:
            await self._handle_tool_call(frame.tool_call)

    def _handle_server_content(self, content: ServerContent) -> None:
        final = content.turn_complete

        input_text = content.input_text()
        if input_text:
            self._emit(ClientEvent(EventType.INPUT_TRANSCRIPT, text=input_text, is_final=final))

        if content.output_transcription is not None and content.output_transcription.text:
            self._on_response_chunk()
            self._emit(ClientEvent(
                EventType.OUTPUT_TRANSCRIPT, text=content.output_transcription.text, is_final=final
            ))

        if content.model_turn is not None:
            self._on_response_chunk()
            for part in content.model_turn.parts:
                if part.text:
                    self._stream_text.append(part.text)
                    self._emit(ClientEvent(EventType.OUTPUT_TEXT, text=part.text, is_final=False))
                if part.inline_data is not None:
                    audio = decode_inline_audio(part.inline_data)
                    if audio is None:
                        self.logger.debug("Skipping undecodable audio chunk")
                    else:
                        self._emit(ClientEvent(EventType.AUDIO_CHUNK, audio=audio))
                if part.transcript:
                    self._emit(ClientEvent(EventType.OUTPUT_TRANSCRIPT, text=part.transcript, is_final=final))

        if final or content.interrupted:
            self._finish_stream_response()

    def _on_response_chunk(self) -> None:
        self.tracker.resolve_oldest()
        self._begin_response()
        self.tracker.touch_stream()

    def _finish_stream_response(self) -> None:
        self.tracker.end_stream()
        if self._stream_text:
            text, self._stream_text = "".join(self._stream_text), []
            self._emit(ClientEvent(EventType.OUTPUT_TEXT, text=text, is_final=True))
        self._end_response()

    async def _handle_tool_call(self, frame: ToolCallFrame) -> None:
        calls = frame.valid_calls()
        if not calls:
            self.logger.debug("Tool call frame without valid calls")
            return
        self.tracker.resolve_oldest()
        if self._responding:
            self.tracker.touch_stream()

        results = [self._run_tool(call) for call in calls]
        if self._stream is not None:
            await self._stream.send_json(build_tool_response_frame(results))

    def _run_tool(self, call: ToolCall) -> ToolResult:
        result = self.dispatcher.dispatch(call)
        self.emitter.emit(
            "tool.executed",
            session_id=self.session_id,
            severity=Severity.INFO if result.success else Severity.WARN,
            correlation_id=call.id,
            tool=call.name,
            success=result.success,
        )
        self._emit(ClientEvent(EventType.TOOL_CALL_EXECUTED, tool_result=result, text=result.message))
        return result

    # --- response window ---

    def _begin_response(self) -> None:
        if not self._responding:
            self._responding = True
            self._emit(ClientEvent(EventType.RESPONSE_STARTED))

    def _end_response(self) -> None:
        if self._responding:
            self._responding = False
            self._emit(ClientEvent(EventType.RESPONSE_ENDED))

    async def _on_heartbeat_timeout(self) -> None:
        self._emit_error(HeartbeatTimeoutError())
        self._finish_stream_response()

    async def _on_request_timeout(self, message_id: str) -> None:
        self._emit_error(RequestTimeoutError(message_id=message_id))
        if message_id == self._rest_message_id:
            rest_task, self._rest_task = self._rest_task, None
            self._rest_message_id = None
            await self._cancel_and_wait(rest_task)
            self._end_response()

    def notify_send_result(self, message_id: str) -> None:
        """Caller-side resolution of a pending message (e.g. delivery confirmed elsewhere)."""
        self.tracker.resolve_message(message_id)

    # --- outbound ---

    async def send_text(self, text: str, message_id: Optional[str] = None) -> str:
        return await self.send_turn([text_part(text)], message_id=message_id, text=text)

    async def send_photo(self, image: bytes, message_id: Optional[str] = None) -> str:
        return await self.send_turn([image_part(image, rest=not self.is_connected)], message_id=message_id)

    async def send_text_with_photo(self, text: str, image: bytes, message_id: Optional[str] = None) -> str:
        parts = [text_part(text), image_part(image, rest=not self.is_connected)]
        return await self.send_turn(parts, message_id=message_id, text=text)

    async def send_turn(
        self,
        parts: Sequence[Dict[str, Any]],
        message_id: Optional[str] = None,
        text: Optional[str] = None,
    ) -> str:
        """
        Send one user turn and return its message id.

        Streaming send failures raise; stateless failures arrive later as
        error events carrying the message id.
        """
        message_id = message_id or _new_id()
        if text:
            self.logger.info_pii("User turn", text=text, message_id=message_id)

        if self.is_connected and self._stream is not None:
            await self._send_stream_turn(parts, message_id)
        else:
            self._start_stateless(parts, message_id)
        return message_id

    async def _send_stream_turn(self, parts: Sequence[Dict[str, Any]], message_id: str) -> None:
        self.tracker.track_message(message_id)
        try:
            await self._stream.send_json(build_client_turn_frame(parts))
        except KitchenBridgeError as e:
            self.tracker.resolve_message(message_id)
            e.message_id = message_id
            raise
        self.emitter.emit(
            "request.sent",
            session_id=self.session_id,
            correlation_id=message_id,
            transport="streaming",
        )

    def send_audio(self, pcm: bytes) -> None:
        """Fire-and-forget 16 kHz PCM chunk. Dropped when not connected."""
        data = base64.b64encode(pcm).decode("ascii")
        self._send_realtime(build_realtime_media_frame(audio_codec.MIME_TYPE, data))

    def send_audio_samples(self, samples: Sequence[float]) -> None:
        self._send_realtime(build_realtime_media_frame(
            audio_codec.MIME_TYPE, audio_codec.encode_base64(samples)
        ))

    def send_video_frame(self, jpeg: bytes) -> None:
        data = base64.b64encode(jpeg).decode("ascii")
        self._send_realtime(build_realtime_media_frame(IMAGE_MIME_TYPE, data))

    def _send_realtime(self, frame: Dict[str, Any]) -> None:
        if not self.is_connected or self._stream is None:
            return
        task = asyncio.get_running_loop().create_task(self._send_quietly(self._stream, frame))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_quietly(self, stream: StreamingTransport, frame: Dict[str, Any]) -> None:
        try:
            await stream.send_json(frame)
        except KitchenBridgeError as e:
            self.logger.debug("Realtime chunk dropped", error=str(e), error_type=type(e).__name__)

    # --- stateless exchange ---

    def clear_history(self) -> None:
        self.history.clear()

    def _get_rest(self) -> StatelessTransport:
        if self._rest is None:
            self._rest = StatelessTransport(
                base_url=self.config.rest_url,
                api_key=self._require_api_key(),
                model=self.config.text_model,
                timeout_s=self.config.request_timeout_s,
                session_factory=self._rest_session_factory,
            )
        return self._rest

    def _start_stateless(self, parts: Sequence[Dict[str, Any]], message_id: str) -> None:
        try:
            self._get_rest()
        except KitchenBridgeError as e:
            e.message_id = message_id
            self._emit_error(e)
            return

        previous_task, previous_id = self._rest_task, self._rest_message_id
        if previous_task is not None and not previous_task.done():
            # superseded: the response window stays open for the new exchange
            previous_task.cancel()
        if previous_id is not None:
            self.tracker.resolve_message(previous_id)

        self.history.append_user_turn(parts)
        self.tracker.track_message(message_id)
        self._begin_response()
        self._rest_message_id = message_id
        self._rest_task = asyncio.get_running_loop().create_task(self._run_stateless(message_id))
        self.emitter.emit(
            "request.sent",
            session_id=self.session_id,
            correlation_id=message_id,
            transport="stateless",
        )

    async def _run_stateless(self, message_id: str) -> None:
        error: Optional[KitchenBridgeError] = None
        text = ""
        try:
            text = await self._stateless_exchange(message_id)
        except asyncio.CancelledError:
            raise
        except KitchenBridgeError as e:
            error = e
        except Exception as e:
            self.logger.exception("Stateless exchange crashed", error=str(e), error_type=type(e).__name__)
            error = KitchenBridgeError(f"Stateless exchange crashed: {type(e).__name__}")

        if self._rest_message_id != message_id:
            return
        self._rest_task = None
        self._rest_message_id = None
        self.tracker.resolve_message(message_id)

        if error is not None:
            if error.message_id is None:
                error.message_id = message_id
            self._emit_error(error)
        else:
            self.emitter.emit(
                "request.completed",
                session_id=self.session_id,
                correlation_id=message_id,
                transport="stateless",
            )
            if text:
                self._emit(ClientEvent(EventType.OUTPUT_TEXT, text=text, is_final=True, message_id=message_id))
        self._end_response()

    async def _stateless_exchange(self, message_id: str) -> str:
        """Request, run any tool calls, follow up; bounded by max_tool_rounds follow-ups."""
        rest = self._get_rest()
        tools = self.dispatcher.registry.to_api_format()
        follow_ups = 0
        while True:
            contents = [turn.to_wire() for turn in self.history.snapshot()]
            body = build_generate_body(contents, self.system_instruction, tools)
            parts = await rest.generate(body, message_id=message_id)
            calls = function_calls_in(parts)
            if not calls:
                if parts:
                    self.history.append_model_turn(parts)
                return text_in(parts)

            if follow_ups >= self.config.max_tool_rounds:
                raise ToolLoopExceededError(message_id=message_id)
            follow_ups += 1

            self.history.append_model_turn(parts)
            results = [
                self._run_tool(ToolCall(id=payload.id or _new_id(), name=payload.name, arguments=payload.args or {}))
                for payload in calls
            ]
            self.history.append_tool_turn(results)
            # each follow-up request gets its own window
            self.tracker.track_message(message_id)
