"""
earthvoice
==========

Realtime voice protocol client for the Earth-intelligence assistant:
- WebSocket session management against a realtime audio+text model
- Conversation transcript reconstruction from streamed events
- PCM16 audio encoding/decoding and buffering
- Client-side tool (function call) execution
"""

from .api import RealtimeAPI
from .client import ConnectionState, RealtimeClient
from .conversation import PendingSpeechCapture, PendingTranscript, RealtimeConversation
from .errors import RealtimeConnectionError, RealtimeError, RealtimeNotConnectedError
from .event_handler import RealtimeEventHandler
from .events import ClientEventType, EventSource, ServerEventType
from .tools import ToolCallContext, ToolRegistry
from .utils import (
    array_buffer_to_base64,
    base64_to_array_buffer,
    float_to_16bit_pcm,
    merge_int16_arrays,
)

__all__ = [
    "RealtimeClient",
    "RealtimeAPI",
    "RealtimeConversation",
    "RealtimeEventHandler",
    "ConnectionState",
    "PendingSpeechCapture",
    "PendingTranscript",
    "ToolRegistry",
    "ToolCallContext",
    "ServerEventType",
    "ClientEventType",
    "EventSource",
    "RealtimeError",
    "RealtimeConnectionError",
    "RealtimeNotConnectedError",
    "float_to_16bit_pcm",
    "base64_to_array_buffer",
    "array_buffer_to_base64",
    "merge_int16_arrays",
]
