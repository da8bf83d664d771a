# client.py orchestrates the RealtimeAPI socket and the RealtimeConversation store,
# and handles session configuration, audio turn sequencing and tool execution.

import asyncio
import inspect
import json
import traceback
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Dict, List, Optional, Set

import numpy as np

from src.earthvoice.api import RealtimeAPI
from src.earthvoice.conversation import RealtimeConversation
from src.earthvoice.errors import RealtimeConnectionError, RealtimeError
from src.earthvoice.event_handler import RealtimeEventHandler
from src.earthvoice.events import ClientEventType, EventSource, ServerEventType
from src.earthvoice.session import load_session_config
from src.earthvoice.tools import RegisteredTool, ToolCallContext, ToolHandler, ToolRegistry
from src.earthvoice.utils import (
    AudioLike,
    array_buffer_to_base64,
    empty_audio,
    merge_int16_arrays,
    to_int16_array,
)
from utils.ml_logging import get_logger

logger = get_logger("earthvoice.client")


class ConnectionState(Enum):
    """Lifecycle of the realtime connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SESSION_CREATED = "session_created"

    def __str__(self) -> str:
        return self.value


class RealtimeClient(RealtimeEventHandler):
    """
    Client orchestrator that manages the RealtimeAPI socket, conversation
    tracking, session configuration and tool calls.

    Observers subscribe with ``on()``:

    - ``realtime.event``: every frame in either direction, ``{time, source, event}``
    - ``conversation.updated``: ``{item, delta}`` whenever an item changes
    - ``conversation.item.appended``: ``{item}`` when an item is created
    - ``conversation.item.completed``: ``{item}`` when an item's status is completed
    - ``conversation.interrupted``: the user started speaking over playback
    - ``conversation.tool_call.error``: ``{error, tool, call_id}``
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        instructions: Optional[str] = None,
        session_config_path: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.realtime = RealtimeAPI(url=url, api_key=api_key, model=model)
        self.conversation = RealtimeConversation()
        self.tools = ToolRegistry()

        self.default_session_config: Dict[str, Any] = load_session_config(session_config_path)
        if instructions is not None:
            self.default_session_config["instructions"] = instructions

        self.session_config: Dict[str, Any] = {}
        self.input_audio_buffer: np.ndarray = empty_audio()
        self._state = ConnectionState.DISCONNECTED
        self._session_waiters: List[asyncio.Future] = []
        self._processed_tool_calls: Set[str] = set()
        self._tool_generation = 0
        self._tool_tasks: Set[asyncio.Task] = set()

        self._reset_config()
        self._add_api_event_handlers()

    def _reset_config(self) -> None:
        self.session_config = dict(self.default_session_config)
        self.session_config["tools"] = self.tools.definitions()
        self.input_audio_buffer = empty_audio()

    def _add_api_event_handlers(self) -> None:
        self.realtime.on("client.*", partial(self._log_event, EventSource.CLIENT))
        self.realtime.on("server.*", partial(self._log_event, EventSource.SERVER))
        self.realtime.on("server.*", self._handle_server_event)
        self.realtime.on("close", self._on_socket_closed)

    def _log_event(self, source: EventSource, event: Dict[str, Any]) -> None:
        realtime_event = {
            "time": datetime.now(timezone.utc).isoformat(),
            "source": str(source),
            "event": event,
        }
        self.dispatch("realtime.event", realtime_event)

    # ---------------------------
    # Connection lifecycle
    # ---------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session_created(self) -> bool:
        return self._state is ConnectionState.SESSION_CREATED

    def is_connected(self) -> bool:
        return self.realtime.is_connected()

    async def connect(self) -> bool:
        """
        Open the socket and send the retained session configuration.

        Raises:
            RealtimeConnectionError: If already connected or the socket cannot be opened.
        """
        if self.is_connected() or self._state is ConnectionState.CONNECTING:
            raise RealtimeConnectionError("Already connected, use disconnect() first")

        self._reset_tool_calls()
        self._state = ConnectionState.CONNECTING
        try:
            await self.realtime.connect()
        except Exception:
            self._state = ConnectionState.DISCONNECTED
            raise

        self._state = ConnectionState.CONNECTED
        self.update_session()
        return True

    async def wait_for_session_created(self) -> None:
        """
        Return once the server has sent ``session.created``.

        Pending waiters survive ``disconnect()`` untouched; they resolve on the
        next ``session.created``.
        """
        if self.session_created:
            return
        future = asyncio.get_running_loop().create_future()
        self._session_waiters.append(future)
        await future

    def _clear_connection_state(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self.conversation.clear()
        self.input_audio_buffer = empty_audio()
        self._reset_tool_calls()

    async def disconnect(self) -> None:
        """
        Drop all conversation state and close the socket, whatever the current state.

        In-flight tool handlers are not cancelled; their late output is
        discarded, including after a reconnect.
        """
        self._clear_connection_state()
        await self.realtime.disconnect()

    def _on_socket_closed(self, info: Dict[str, Any]) -> None:
        logger.warning(f"Realtime socket closed by peer: {info.get('error')}")
        self._clear_connection_state()
        self._log_event(EventSource.SYSTEM, {"type": "socket.closed", **info})

    async def reset(self) -> bool:
        """
        Disconnect and return to a freshly constructed client: no observers,
        no tools, default session configuration.
        """
        await self.disconnect()
        self.clear_event_handlers()
        self.realtime.clear_event_handlers()
        self.tools.clear()
        self._reset_config()
        self._add_api_event_handlers()
        return True

    # ---------------------------
    # Session configuration & tools
    # ---------------------------

    def get_turn_detection_type(self) -> Optional[str]:
        turn_detection = self.session_config.get("turn_detection") or {}
        return turn_detection.get("type")

    def update_session(self, **kwargs: Any) -> bool:
        """
        Merge ``kwargs`` into the session configuration and, when connected,
        send the full configuration as ``session.update``.

        The declared ``tools`` list always mirrors the tool registry; use
        ``add_tool``/``remove_tool`` to change it.
        """
        if "tools" in kwargs:
            kwargs.pop("tools")
            logger.warning("Ignoring 'tools' in update_session(); use add_tool()/remove_tool().")

        self.session_config.update(kwargs)
        self.session_config["tools"] = self.tools.definitions()
        if self.is_connected():
            self.realtime.send(ClientEventType.SESSION_UPDATE, {"session": dict(self.session_config)})
        return True

    def add_tool(self, definition: Dict[str, Any], handler: ToolHandler) -> RegisteredTool:
        tool = self.tools.register(definition, handler)
        self.update_session()
        return tool

    def remove_tool(self, name: str) -> bool:
        removed = self.tools.unregister(name)
        if removed:
            self.update_session()
        return removed

    def clear_tools(self) -> None:
        had_tools = len(self.tools) > 0
        self.tools.clear()
        if had_tools:
            self.update_session()

    # ---------------------------
    # Conversation
    # ---------------------------

    def get_items(self) -> List[Dict[str, Any]]:
        return self.conversation.get_items()

    def clear_conversation(self) -> None:
        self._reset_tool_calls()
        self.conversation.clear()

    def delete_item(self, item_id: str) -> None:
        self.realtime.send(ClientEventType.ITEM_DELETE, {"item_id": item_id})

    def append_input_audio(self, array_buffer: AudioLike) -> bool:
        """
        Stream microphone audio to the server and keep a local copy for
        speech-capture slicing.

        Args:
            array_buffer (AudioLike): PCM16 bytes, or an int16/float32 numpy array.

        Returns:
            bool: False when the buffer was empty and nothing was sent.
        """
        samples = to_int16_array(array_buffer)
        if samples.size == 0:
            return False

        self.realtime.send(
            ClientEventType.INPUT_AUDIO_APPEND, {"audio": array_buffer_to_base64(samples)}
        )
        self.input_audio_buffer = merge_int16_arrays(self.input_audio_buffer, samples)
        return True

    def send_user_message_content(self, content: List[Dict[str, Any]]) -> bool:
        """
        Add a user message to the conversation and ask for a response.

        ``input_audio`` parts given as arrays or raw bytes are base64-encoded.
        """
        if content:
            parts = []
            for c in content:
                part = dict(c)
                if part.get("type") == "input_audio" and isinstance(
                    part.get("audio"), (bytes, bytearray, memoryview, np.ndarray)
                ):
                    part["audio"] = array_buffer_to_base64(part["audio"])
                parts.append(part)
            self.realtime.send(
                ClientEventType.ITEM_CREATE,
                {"item": {"type": "message", "role": "user", "content": parts}},
            )
        self.create_response()
        return True

    def create_response(self) -> bool:
        """
        Request a model response. Without turn detection, buffered input audio
        is committed first and queued for the next user item.
        """
        if self.get_turn_detection_type() is None and self.input_audio_buffer.size > 0:
            self.realtime.send(ClientEventType.INPUT_AUDIO_COMMIT)
            self.conversation.queue_input_audio(self.input_audio_buffer)
            self.input_audio_buffer = empty_audio()
        self._request_response()
        return True

    def cancel_response(self) -> None:
        if self.is_connected():
            logger.info("Cancelling current server response...")
            self.realtime.send(ClientEventType.RESPONSE_CANCEL)

    async def wait_for_next_item(self, timeout: float = 10.0) -> Dict[str, Any]:
        event = await self.wait_for_next("conversation.item.appended", timeout=timeout)
        return {"item": event["item"]}

    async def wait_for_next_completed_item(self, timeout: float = 10.0) -> Dict[str, Any]:
        event = await self.wait_for_next("conversation.item.completed", timeout=timeout)
        return {"item": event["item"]}

    def _request_response(self) -> None:
        response: Dict[str, Any] = {"modalities": list(self.session_config.get("modalities") or [])}
        if self.session_config.get("instructions"):
            response["instructions"] = self.session_config["instructions"]
        self.realtime.send(ClientEventType.RESPONSE_CREATE, {"response": response})

    def _safe_request_response(self) -> None:
        try:
            self._request_response()
        except RealtimeError as e:
            logger.error(f"Failed to request follow-up response: {e}")

    # ---------------------------
    # Inbound events
    # ---------------------------

    def _handle_server_event(self, event: Dict[str, Any]) -> None:
        event_type = ServerEventType.parse(event["type"])

        if event_type is ServerEventType.SESSION_CREATED:
            self._on_session_created()

        if event_type is ServerEventType.SPEECH_STARTED:
            self.dispatch("conversation.interrupted", event)

        item, delta = self.conversation.process_event(event, self.input_audio_buffer)

        if event_type is ServerEventType.INPUT_TRANSCRIPTION_COMPLETED:
            self.dispatch(
                "conversation.item.input_audio_transcription.completed",
                {"item": item, "delta": delta},
            )

        if item:
            if event_type is ServerEventType.ITEM_CREATED:
                self.dispatch("conversation.item.appended", {"item": item})
            self.dispatch("conversation.updated", {"item": item, "delta": delta})
            if item.get("status") == "completed":
                self.dispatch("conversation.item.completed", {"item": item})
                if item.get("type") == "function_call":
                    self._schedule_tool_call(item)

        if event_type is ServerEventType.SPEECH_STOPPED:
            self._commit_after_speech()

    def _on_session_created(self) -> None:
        self._state = ConnectionState.SESSION_CREATED
        waiters, self._session_waiters = self._session_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        logger.keyinfo("Realtime session created")

    def _commit_after_speech(self) -> None:
        # A commit with no buffered samples is rejected by the server.
        if self.input_audio_buffer.size == 0:
            return
        try:
            self.realtime.send(ClientEventType.INPUT_AUDIO_COMMIT)
        except RealtimeError as e:
            logger.error(f"Failed to commit audio buffer: {e}")
            return
        self.input_audio_buffer = empty_audio()
        self._safe_request_response()

    # ---------------------------
    # Tool calls
    # ---------------------------

    def _schedule_tool_call(self, item: Dict[str, Any]) -> None:
        tool = dict(item["formatted"].get("tool") or {})
        call_id = tool.get("call_id")
        if not call_id:
            logger.warning(f"Function call item {item.get('id')} has no call_id; skipping.")
            return
        if call_id in self._processed_tool_calls:
            logger.debug(f"Tool call {call_id} already dispatched; ignoring duplicate completion.")
            return
        self._processed_tool_calls.add(call_id)

        task = asyncio.get_running_loop().create_task(
            self._call_tool(tool, self._tool_generation)
        )
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)

    def _reset_tool_calls(self) -> None:
        # Tool tasks started before this point no longer belong to the conversation.
        self._processed_tool_calls.clear()
        self._tool_generation += 1

    async def _call_tool(self, tool: Dict[str, Any], generation: int) -> None:
        """
        Run one tool call to completion: exactly one ``function_call_output``
        followed by exactly one ``response.create``.

        Output that resolves after the conversation was cleared or the client
        disconnected is dropped.
        """
        call_id = tool["call_id"]
        name = tool.get("name") or ""
        logger.info(f"Calling tool {name} ({call_id}) with arguments: {tool.get('arguments')}")

        output = await self._execute_tool(call_id, name, tool.get("arguments") or "")
        if generation != self._tool_generation:
            logger.info(f"Discarding stale output for tool call {call_id}")
            return
        try:
            self._send_tool_output(call_id, output)
        except RealtimeError as e:
            logger.error(f"Failed to send output for tool call {call_id}: {e}")
            return
        self._safe_request_response()

    async def _execute_tool(self, call_id: str, name: str, raw_arguments: str) -> Any:
        try:
            arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
        except ValueError as e:
            logger.warning(f"Malformed arguments for tool call {call_id}: {e}")
            return {"error": "Failed to parse tool arguments", "raw": raw_arguments}

        handler = self.tools.get_handler(name)
        if handler is None:
            logger.warning(f"No handler registered for tool '{name}' ({call_id})")
            return {"error": f'No tool registered for "{name}"'}

        try:
            result = handler(arguments, ToolCallContext(call_id=call_id, name=name))
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(traceback.format_exc())
            message = str(e) or type(e).__name__
            self.dispatch(
                "conversation.tool_call.error",
                {"error": message, "tool": name, "call_id": call_id},
            )
            return {"error": message}
        return result

    def _send_tool_output(self, call_id: str, payload: Any) -> None:
        if isinstance(payload, str):
            output = payload
        else:
            try:
                output = json.dumps(payload, separators=(",", ":"), allow_nan=False)
            except (TypeError, ValueError) as e:
                output = json.dumps(
                    {"error": "Failed to serialize tool output", "reason": str(e)},
                    separators=(",", ":"),
                )

        self.realtime.send(
            ClientEventType.ITEM_CREATE,
            {"item": {"type": "function_call_output", "call_id": call_id, "output": output}},
        )
