"""
RealtimeConversation folds inbound realtime events into an ordered transcript
of conversation items, including streamed text, transcripts, audio and tool
call arguments.
"""

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from src.earthvoice import settings
from src.earthvoice.events import ServerEventType
from src.earthvoice.utils import (
    base64_to_array_buffer,
    empty_audio,
    merge_int16_arrays,
    ms_to_samples,
)
from utils.ml_logging import get_logger

logger = get_logger("earthvoice.conversation")

Item = Dict[str, Any]
Delta = Dict[str, Any]
Update = Tuple[Optional[Item], Optional[Delta]]

EMPTY_UPDATE: Update = (None, None)


@dataclass
class PendingSpeechCapture:
    """Speech boundaries seen before the owning user item was created."""

    audio_start_ms: int
    audio_end_ms: int
    audio: Optional[np.ndarray] = None


@dataclass
class PendingTranscript:
    """Input transcription that arrived before the owning item was created."""

    transcript: str


class RealtimeConversation:
    """
    In-memory store for conversation items and their audio buffers.

    ``process_event`` never raises: unknown event types, events for unknown
    items and malformed payloads are logged and leave the state untouched.
    """

    default_frequency: int = settings.REALTIME_SAMPLE_RATE

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        """
        Reset the conversation state, clearing all items, responses, and queued data.
        """
        self.item_lookup: Dict[str, Item] = {}
        self.items: List[Item] = []
        self.response_lookup: Dict[str, Dict[str, Any]] = {}
        self.responses: List[Dict[str, Any]] = []
        self.queued_speech_items: Dict[str, PendingSpeechCapture] = {}
        self.queued_transcript_items: Dict[str, PendingTranscript] = {}
        self.queued_input_audio: Optional[np.ndarray] = None

    def queue_input_audio(self, input_audio: np.ndarray) -> None:
        """
        Store manually committed input audio for the next user message item.

        Args:
            input_audio (np.ndarray): Int16 samples that were committed.
        """
        self.queued_input_audio = input_audio

    def process_event(
        self, event: Dict[str, Any], input_audio_buffer: Optional[np.ndarray] = None
    ) -> Update:
        """
        Fold one realtime event into the conversation.

        Args:
            event (Dict[str, Any]): Inbound event containing a ``type``.
            input_audio_buffer (Optional[np.ndarray]): Rolling microphone buffer,
                used to slice captured speech on ``speech_stopped``.

        Returns:
            Update: The affected item (or None) and what changed (or None).
        """
        event_type = ServerEventType.parse(event.get("type"))
        processor = self.EventProcessors.get(event_type)
        if processor is None:
            return EMPTY_UPDATE

        try:
            return processor(self, event, input_audio_buffer)
        except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
            logger.warning(f"Malformed {event_type} event ignored: {e!r}")
            return EMPTY_UPDATE

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.item_lookup.get(item_id)

    def get_items(self) -> List[Item]:
        """
        Return deep copies of all items, in conversation order.
        """
        return copy.deepcopy(self.items)

    def get_response(self, response_id: str) -> Optional[Dict[str, Any]]:
        return self.response_lookup.get(response_id)

    # ---------------------------
    # Event Processors
    # ---------------------------

    def _process_item_created(self, event: Dict[str, Any], _buffer=None) -> Update:
        """
        Handle the creation of a new conversation item.

        A repeated creation event for a known id only reconciles the pending
        transcript and speech capture; the item's text, tool descriptor,
        status and audio are left alone.
        """
        payload = copy.deepcopy(event["item"])
        item_id = payload["id"]

        item = self.item_lookup.get(item_id)
        is_new = item is None
        if is_new:
            item = payload
            if not isinstance(item.get("content"), list):
                item["content"] = []
            item["formatted"] = {"audio": empty_audio(), "text": "", "transcript": ""}
            self.item_lookup[item_id] = item
            self.items.append(item)
            self._initialise_item(item)

        self._reconcile_queued(item, is_new)
        return item, None

    def _initialise_item(self, item: Item) -> None:
        formatted = item["formatted"]
        for part in item["content"]:
            if part.get("type") in ("text", "input_text"):
                formatted["text"] += part.get("text") or ""

        if item.get("type") == "message":
            item["status"] = "completed" if item.get("role") == "user" else "in_progress"
        elif item.get("type") == "function_call":
            item["status"] = "in_progress"
            formatted["tool"] = {
                "type": "function",
                "name": item.get("name") or "",
                "call_id": item.get("call_id") or "",
                "arguments": "",
            }
        elif item.get("type") == "function_call_output":
            item["status"] = "completed"
            formatted["output"] = item.get("output")

    def _reconcile_queued(self, item: Item, is_new: bool) -> None:
        item_id = item["id"]
        formatted = item["formatted"]

        pending_transcript = self.queued_transcript_items.pop(item_id, None)
        if pending_transcript is not None:
            formatted["transcript"] = pending_transcript.transcript

        speech = self.queued_speech_items.get(item_id)
        if speech is not None and speech.audio is not None:
            formatted["audio"] = speech.audio
            del self.queued_speech_items[item_id]
        elif (
            is_new
            and item.get("type") == "message"
            and item.get("role") == "user"
            and self.queued_input_audio is not None
        ):
            formatted["audio"] = self.queued_input_audio
            self.queued_input_audio = None

    def _process_item_truncated(self, event: Dict[str, Any], _buffer=None) -> Update:
        item = self.item_lookup.get(event["item_id"])
        if not item:
            logger.debug(f"Item '{event['item_id']}' not found for truncation.")
            return EMPTY_UPDATE

        end_index = ms_to_samples(event["audio_end_ms"], self.default_frequency)
        item["formatted"]["transcript"] = ""
        item["formatted"]["audio"] = item["formatted"]["audio"][:end_index].copy()
        return item, None

    def _process_item_deleted(self, event: Dict[str, Any], _buffer=None) -> Update:
        item_id = event["item_id"]
        item = self.item_lookup.pop(item_id, None)
        if not item:
            logger.debug(f"Item '{item_id}' not found for deletion.")
            return EMPTY_UPDATE

        self.items = [i for i in self.items if i is not item]
        return item, None

    def _process_input_audio_transcription_completed(
        self, event: Dict[str, Any], _buffer=None
    ) -> Update:
        """
        Handle the completion of input audio transcription.

        If the item does not exist yet the transcript is queued and applied
        when its ``conversation.item.created`` arrives.
        """
        item_id = event["item_id"]
        transcript = event.get("transcript") or ""
        formatted_transcript = transcript or " "

        item = self.item_lookup.get(item_id)
        if not item:
            self.queued_transcript_items[item_id] = PendingTranscript(formatted_transcript)
            return EMPTY_UPDATE

        part = _content_part(item, event.get("content_index", 0))
        if part is not None:
            part["transcript"] = (part.get("transcript") or "") + transcript
        item["formatted"]["transcript"] += formatted_transcript
        return item, {"transcript": formatted_transcript}

    def _process_speech_started(self, event: Dict[str, Any], _buffer=None) -> Update:
        audio_start_ms = event["audio_start_ms"]
        self.queued_speech_items[event["item_id"]] = PendingSpeechCapture(
            audio_start_ms=audio_start_ms, audio_end_ms=audio_start_ms
        )
        return EMPTY_UPDATE

    def _process_speech_stopped(
        self, event: Dict[str, Any], input_audio_buffer: Optional[np.ndarray]
    ) -> Update:
        """
        Handle the end of speech input.

        The captured slice of ``input_audio_buffer`` is attached straight away
        when the user item already exists, otherwise it waits in the queue.
        """
        item_id = event["item_id"]
        audio_end_ms = event["audio_end_ms"]

        speech = self.queued_speech_items.get(item_id) or PendingSpeechCapture(
            audio_start_ms=audio_end_ms, audio_end_ms=audio_end_ms
        )
        speech.audio_end_ms = audio_end_ms

        if input_audio_buffer is not None:
            start_index = ms_to_samples(speech.audio_start_ms, self.default_frequency)
            end_index = ms_to_samples(speech.audio_end_ms, self.default_frequency)
            speech.audio = input_audio_buffer[start_index:end_index].copy()

        item = self.item_lookup.get(item_id)
        if item is not None and speech.audio is not None:
            self.queued_speech_items.pop(item_id, None)
            item["formatted"]["audio"] = speech.audio
            return item, None

        self.queued_speech_items[item_id] = speech
        return EMPTY_UPDATE

    def _process_response_created(self, event: Dict[str, Any], _buffer=None) -> Update:
        response = event["response"]
        if response["id"] not in self.response_lookup:
            record = {"id": response["id"], "output": list(response.get("output") or [])}
            self.response_lookup[response["id"]] = record
            self.responses.append(record)
        return EMPTY_UPDATE

    def _process_output_item_added(self, event: Dict[str, Any], _buffer=None) -> Update:
        response = self.response_lookup.get(event["response_id"])
        if not response:
            logger.debug(f"Response '{event['response_id']}' not found for output item addition.")
            return EMPTY_UPDATE

        response["output"].append(event["item"]["id"])
        return EMPTY_UPDATE

    def _process_output_item_done(self, event: Dict[str, Any], _buffer=None) -> Update:
        done_item = event["item"]
        item = self.item_lookup.get(done_item["id"])
        if not item:
            logger.debug(f"Item '{done_item['id']}' not found in output item done event.")
            return EMPTY_UPDATE

        item["status"] = done_item["status"]
        return item, None

    def _process_content_part_added(self, event: Dict[str, Any], _buffer=None) -> Update:
        item = self.item_lookup.get(event["item_id"])
        if not item:
            return EMPTY_UPDATE

        item["content"].append(event["part"])
        return item, None

    def _process_audio_transcript_delta(self, event: Dict[str, Any], _buffer=None) -> Update:
        item = self.item_lookup.get(event["item_id"])
        if not item:
            return EMPTY_UPDATE

        delta = event["delta"]
        part = _content_part(item, event.get("content_index", 0))
        if part is not None:
            part["transcript"] = (part.get("transcript") or "") + delta
        item["formatted"]["transcript"] += delta
        return item, {"transcript": delta}

    def _process_audio_delta(self, event: Dict[str, Any], _buffer=None) -> Update:
        item = self.item_lookup.get(event["item_id"])
        if not item:
            logger.debug(f"Item '{event['item_id']}' not found for audio delta.")
            return EMPTY_UPDATE

        append_values = base64_to_array_buffer(event["delta"])
        item["formatted"]["audio"] = merge_int16_arrays(item["formatted"]["audio"], append_values)
        return item, {"audio": append_values}

    def _process_text_delta(self, event: Dict[str, Any], _buffer=None) -> Update:
        item = self.item_lookup.get(event["item_id"])
        if not item:
            return EMPTY_UPDATE

        delta = event["delta"]
        part = _content_part(item, event.get("content_index", 0))
        if part is not None:
            part["text"] = (part.get("text") or "") + delta
        item["formatted"]["text"] += delta
        return item, {"text": delta}

    def _process_function_call_arguments_delta(
        self, event: Dict[str, Any], _buffer=None
    ) -> Update:
        item = self.item_lookup.get(event["item_id"])
        if not item:
            return EMPTY_UPDATE

        delta = event["delta"]
        item["arguments"] = (item.get("arguments") or "") + delta
        tool = item["formatted"].get("tool")
        if tool is not None:
            tool["arguments"] += delta
        return item, {"arguments": delta}

    # Event dispatch table
    EventProcessors: Dict[ServerEventType, Callable[..., Update]] = {
        ServerEventType.ITEM_CREATED: _process_item_created,
        ServerEventType.ITEM_TRUNCATED: _process_item_truncated,
        ServerEventType.ITEM_DELETED: _process_item_deleted,
        ServerEventType.INPUT_TRANSCRIPTION_COMPLETED: _process_input_audio_transcription_completed,
        ServerEventType.SPEECH_STARTED: _process_speech_started,
        ServerEventType.SPEECH_STOPPED: _process_speech_stopped,
        ServerEventType.RESPONSE_CREATED: _process_response_created,
        ServerEventType.OUTPUT_ITEM_ADDED: _process_output_item_added,
        ServerEventType.OUTPUT_ITEM_DONE: _process_output_item_done,
        ServerEventType.CONTENT_PART_ADDED: _process_content_part_added,
        ServerEventType.AUDIO_TRANSCRIPT_DELTA: _process_audio_transcript_delta,
        ServerEventType.AUDIO_DELTA: _process_audio_delta,
        ServerEventType.TEXT_DELTA: _process_text_delta,
        ServerEventType.FUNCTION_CALL_ARGUMENTS_DELTA: _process_function_call_arguments_delta,
    }


def _content_part(item: Item, index: int) -> Optional[Dict[str, Any]]:
    content = item.get("content")
    if isinstance(content, list) and 0 <= index < len(content):
        return content[index]
    return None
