"""
Realtime WebSocket API communication handler.

Owns the socket: opening it (with retries), decoding inbound frames into
events, and writing outbound events in the order they were sent.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import backoff
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, WebSocketException

from src.earthvoice import settings
from src.earthvoice.errors import RealtimeConnectionError, RealtimeNotConnectedError
from src.earthvoice.event_handler import RealtimeEventHandler
from src.earthvoice.events import ServerEventType
from src.earthvoice.utils import frame_to_text, generate_event_id
from utils.ml_logging import get_logger

logger = get_logger("earthvoice.api")

_RETRYABLE_CONNECT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    InvalidHandshake,
)

_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


def _handshake_status(error: Exception) -> Optional[int]:
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None) or getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def _is_permanent_connect_error(error: Exception) -> bool:
    """True for 4xx handshake rejections other than 429."""
    status = _handshake_status(error)
    return status is not None and 400 <= status < 500 and status != 429


class RealtimeAPI(RealtimeEventHandler):
    """
    WebSocket client for the realtime endpoint.

    Inbound events are dispatched as ``server.<type>`` and ``server.*``;
    outbound events as ``client.<type>`` and ``client.*`` right before they
    are queued for writing. A socket lost without ``disconnect()`` dispatches
    ``close``.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        super().__init__()
        self.url: str = url or settings.REALTIME_URL
        self.api_key: Optional[str] = api_key or settings.REALTIME_API_KEY or None
        self.model: Optional[str] = model or settings.REALTIME_MODEL or None
        self.ws = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._receiver: Optional[asyncio.Task] = None
        self._sender: Optional[asyncio.Task] = None

    def is_connected(self) -> bool:
        """
        Check if the WebSocket connection is active.

        Returns:
            bool: True if connected, False otherwise.
        """
        return self.ws is not None

    def build_connection_url(self) -> str:
        """Return the endpoint URL with ``model`` set as a query parameter."""
        if not self.model:
            return self.url
        parts = urlsplit(self.url)
        query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != "model"]
        query.append(("model", self.model))
        return urlunsplit(parts._replace(query=urlencode(query)))

    def build_subprotocols(self) -> Optional[List[str]]:
        """The API key travels as a subprotocol triplet, never as a header."""
        if not self.api_key:
            return None
        return [
            "realtime",
            f"openai-insecure-api-key.{self.api_key}",
            "openai-beta.realtime-v1",
        ]

    async def connect(self) -> None:
        """
        Establish a WebSocket connection to the realtime endpoint.

        Raises:
            RealtimeConnectionError: If already connected or every attempt failed.
        """
        if self.is_connected():
            raise RealtimeConnectionError("Already connected, use disconnect() first")

        url = self.build_connection_url()
        logger.info(f"Connecting to realtime endpoint at {self.url} (model={self.model})")
        try:
            ws = await self._open_socket(url, self.build_subprotocols())
        except _CONNECT_ERRORS as e:
            logger.error(f"Failed to connect to realtime endpoint: {e}")
            raise RealtimeConnectionError(f"Failed to establish realtime connection: {e}") from e

        self.ws = ws
        self._outbox = asyncio.Queue()
        self._sender = asyncio.create_task(self._send_messages(ws))
        self._receiver = asyncio.create_task(self._receive_messages(ws))
        logger.keyinfo(f"Connected to {self.url}")

    @backoff.on_exception(
        backoff.expo,
        _RETRYABLE_CONNECT_ERRORS,
        max_tries=lambda: settings.REALTIME_CONNECT_MAX_TRIES,
        giveup=_is_permanent_connect_error,
        logger=logger,
    )
    async def _open_socket(self, url: str, subprotocols: Optional[List[str]]):
        return await websockets.connect(
            url,
            subprotocols=subprotocols,
            open_timeout=settings.REALTIME_CONNECT_TIMEOUT,
            max_size=None,
        )

    async def disconnect(self) -> None:
        """
        Close the WebSocket connection. Safe to call when already disconnected.
        """
        ws, self.ws = self.ws, None
        for task in (self._sender, self._receiver):
            if task is not None and task is not asyncio.current_task() and not task.done():
                task.cancel()
        self._sender = self._receiver = None

        if not self._outbox.empty():
            logger.debug(f"Dropping {self._outbox.qsize()} unsent event(s) on disconnect")
        self._outbox = asyncio.Queue()

        if ws is None:
            return
        try:
            await ws.close()
            logger.info(f"Disconnected from realtime endpoint at {self.url}")
        except Exception as e:
            logger.error(f"Error during WebSocket disconnect: {e}", exc_info=True)

    def send(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Queue an event for the socket, in call order.

        Args:
            event_name (str): The event type.
            data (dict, optional): Additional payload data.

        Returns:
            Dict[str, Any]: The full event, including its ``event_id``.

        Raises:
            RealtimeNotConnectedError: If no socket is open.
        """
        if not self.is_connected():
            raise RealtimeNotConnectedError("RealtimeAPI is not connected")

        data = data or {}
        if not isinstance(data, dict):
            raise TypeError("Data must be a dictionary")

        event = {"event_id": generate_event_id("evt_"), "type": str(event_name), **data}
        payload = json.dumps(event)

        self.dispatch(f"client.{event['type']}", event)
        self.dispatch("client.*", event)
        logger.debug(f"Sent: {event['type']} ({event['event_id']})")

        self._outbox.put_nowait(payload)
        return event

    async def flush(self) -> None:
        """Wait until every queued event has been written to the socket."""
        if self.is_connected():
            await self._outbox.join()

    def handle_message(self, raw: Any) -> Optional[Dict[str, Any]]:
        """
        Decode one raw frame and dispatch it as a server event.

        Frames that are not UTF-8 JSON objects with a ``type`` are logged and
        dropped.
        """
        try:
            event = json.loads(frame_to_text(raw))
        except (UnicodeDecodeError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse server event: {e}")
            return None

        if not isinstance(event, dict) or not isinstance(event.get("type"), str):
            logger.warning(f"Ignoring server frame without an event type: {str(event)[:200]}")
            return None

        if event["type"] == ServerEventType.ERROR:
            logger.error(f"Realtime API error event: {event.get('error', event)}")
        else:
            logger.debug(f"Received: {event['type']}")

        self.dispatch(f"server.{event['type']}", event)
        self.dispatch("server.*", event)
        return event

    async def _receive_messages(self, ws) -> None:
        """
        Listen for messages from the WebSocket and dispatch them in order.
        """
        error: Optional[str] = None
        try:
            async for message in ws:
                self.handle_message(message)
        except ConnectionClosed as e:
            error = str(e)
            logger.warning(f"Realtime socket closed: {e}")
        finally:
            if self.ws is ws:
                # Lost without disconnect(); stop writing and tell listeners.
                self.ws = None
                if self._sender is not None:
                    self._sender.cancel()
                self._sender = self._receiver = None
                self.dispatch("close", {"error": error})

    async def _send_messages(self, ws) -> None:
        queue = self._outbox
        while True:
            payload = await queue.get()
            try:
                await ws.send(payload)
            except Exception as e:
                logger.error(f"Error sending WebSocket message: {e}")
            finally:
                queue.task_done()
