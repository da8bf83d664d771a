from enum import Enum
from typing import Optional


class ServerEventType(str, Enum):
    """Inbound event types the realtime client understands."""

    ERROR = "error"
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    ITEM_CREATED = "conversation.item.created"
    ITEM_TRUNCATED = "conversation.item.truncated"
    ITEM_DELETED = "conversation.item.deleted"
    INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    RESPONSE_CREATED = "response.created"
    OUTPUT_ITEM_ADDED = "response.output_item.added"
    OUTPUT_ITEM_DONE = "response.output_item.done"
    CONTENT_PART_ADDED = "response.content_part.added"
    AUDIO_TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    AUDIO_DELTA = "response.audio.delta"
    TEXT_DELTA = "response.text.delta"
    FUNCTION_CALL_ARGUMENTS_DELTA = "response.function_call_arguments.delta"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value) -> Optional["ServerEventType"]:
        """Return the matching member, or None for types this client ignores."""
        try:
            return cls(value)
        except ValueError:
            return None


class ClientEventType(str, Enum):
    """Outbound event types sent by the realtime client."""

    SESSION_UPDATE = "session.update"
    INPUT_AUDIO_APPEND = "input_audio_buffer.append"
    INPUT_AUDIO_COMMIT = "input_audio_buffer.commit"
    RESPONSE_CREATE = "response.create"
    RESPONSE_CANCEL = "response.cancel"
    ITEM_CREATE = "conversation.item.create"
    ITEM_DELETE = "conversation.item.delete"

    def __str__(self) -> str:
        return self.value


class EventSource(str, Enum):
    """Origin tag attached to every ``realtime.event`` entry."""

    CLIENT = "client"
    SERVER = "server"
    SYSTEM = "system"

    def __str__(self) -> str:
        return self.value
