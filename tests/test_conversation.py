"""
Tests for RealtimeConversation
==============================

Folding of inbound events into conversation items, including the races
between speech boundaries, transcriptions and item creation.
"""

import base64

import numpy as np
import pytest

from src.earthvoice.conversation import (
    PendingSpeechCapture,
    PendingTranscript,
    RealtimeConversation,
)


def pcm_b64(values):
    return base64.b64encode(np.array(values, dtype=np.int16).tobytes()).decode("utf-8")


def created(item_id, item_type="message", role="assistant", **extra):
    item = {"id": item_id, "type": item_type, "content": extra.pop("content", [])}
    if item_type == "message":
        item["role"] = role
    item.update(extra)
    return {"type": "conversation.item.created", "item": item}


@pytest.fixture
def conversation():
    return RealtimeConversation()


def test_user_message_is_completed_with_text(conversation):
    item, delta = conversation.process_event(
        created("u1", role="user", content=[{"type": "input_text", "text": "Where is Lisbon?"}])
    )

    assert delta is None
    assert item["status"] == "completed"
    assert item["formatted"]["text"] == "Where is Lisbon?"
    assert item["formatted"]["transcript"] == ""
    assert item["formatted"]["audio"].dtype == np.int16


def test_assistant_message_starts_in_progress(conversation):
    item, _ = conversation.process_event(created("a1"))
    assert item["status"] == "in_progress"


def test_function_call_item_gets_tool_descriptor(conversation):
    item, _ = conversation.process_event(
        created("fc1", item_type="function_call", name="get_weather", call_id="call_9")
    )

    assert item["status"] == "in_progress"
    assert item["formatted"]["tool"] == {
        "type": "function",
        "name": "get_weather",
        "call_id": "call_9",
        "arguments": "",
    }


def test_function_call_output_item_is_completed(conversation):
    item, _ = conversation.process_event(
        created("out1", item_type="function_call_output", call_id="call_9", output='{"ok":true}')
    )
    assert item["status"] == "completed"
    assert item["formatted"]["output"] == '{"ok":true}'


def test_streamed_deltas_concatenate_in_order(conversation):
    conversation.process_event(created("a1", content=[{"type": "text", "text": ""}]))
    for piece in ["Hel", "lo", "!"]:
        conversation.process_event(
            {"type": "response.text.delta", "item_id": "a1", "content_index": 0, "delta": piece}
        )
    for piece in ["Sun", "ny"]:
        conversation.process_event(
            {"type": "response.audio_transcript.delta", "item_id": "a1", "delta": piece}
        )

    item = conversation.get_item("a1")
    assert item["formatted"]["text"] == "Hello!"
    assert item["content"][0]["text"] == "Hello!"
    assert item["formatted"]["transcript"] == "Sunny"


def test_audio_deltas_append_samples(conversation):
    conversation.process_event(created("a1"))

    _, first = conversation.process_event(
        {"type": "response.audio.delta", "item_id": "a1", "delta": pcm_b64([1, 2])}
    )
    conversation.process_event({"type": "response.audio.delta", "item_id": "a1", "delta": pcm_b64([3])})

    np.testing.assert_array_equal(first["audio"], np.array([1, 2], dtype=np.int16))
    np.testing.assert_array_equal(
        conversation.get_item("a1")["formatted"]["audio"], np.array([1, 2, 3], dtype=np.int16)
    )


def test_function_call_arguments_accumulate(conversation):
    conversation.process_event(created("fc1", item_type="function_call", name="echo", call_id="c1"))
    conversation.process_event(
        {"type": "response.function_call_arguments.delta", "item_id": "fc1", "delta": '{"x":'}
    )
    item, delta = conversation.process_event(
        {"type": "response.function_call_arguments.delta", "item_id": "fc1", "delta": "1}"}
    )

    assert delta == {"arguments": "1}"}
    assert item["arguments"] == '{"x":1}'
    assert item["formatted"]["tool"]["arguments"] == '{"x":1}'


def test_speech_capture_before_item_creation(conversation):
    buffer = np.arange(48_000, dtype=np.int16)
    conversation.process_event(
        {"type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 1000}
    )
    item, _ = conversation.process_event(
        {"type": "input_audio_buffer.speech_stopped", "item_id": "u1", "audio_end_ms": 1500},
        buffer,
    )
    assert item is None
    assert isinstance(conversation.queued_speech_items["u1"], PendingSpeechCapture)

    item, _ = conversation.process_event(created("u1", role="user"))

    np.testing.assert_array_equal(item["formatted"]["audio"], buffer[24_000:36_000])
    assert "u1" not in conversation.queued_speech_items


def test_speech_capture_after_item_creation_attaches_immediately(conversation):
    buffer = np.arange(24_000, dtype=np.int16)
    conversation.process_event(
        {"type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 0}
    )
    conversation.process_event(created("u1", role="user"))

    item, _ = conversation.process_event(
        {"type": "input_audio_buffer.speech_stopped", "item_id": "u1", "audio_end_ms": 100},
        buffer,
    )

    assert item["id"] == "u1"
    np.testing.assert_array_equal(item["formatted"]["audio"], buffer[:2_400])


def test_captured_audio_is_a_copy_of_the_buffer(conversation):
    buffer = np.arange(2_400, dtype=np.int16)
    conversation.process_event(
        {"type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 0}
    )
    conversation.process_event(
        {"type": "input_audio_buffer.speech_stopped", "item_id": "u1", "audio_end_ms": 100}, buffer
    )
    buffer[:] = 0

    item, _ = conversation.process_event(created("u1", role="user"))
    assert item["formatted"]["audio"][1] == 1


def test_transcript_before_item_creation_is_applied_on_creation(conversation):
    conversation.process_event(
        {
            "type": "conversation.item.input_audio_transcription.completed",
            "item_id": "u1",
            "content_index": 0,
            "transcript": "fly to Paris",
        }
    )

    item, _ = conversation.process_event(created("u1", role="user"))

    assert item["formatted"]["transcript"] == "fly to Paris"
    assert conversation.queued_transcript_items == {}


def test_empty_transcript_is_stored_as_single_space(conversation):
    conversation.process_event(created("u1", role="user", content=[{"type": "input_audio"}]))

    item, delta = conversation.process_event(
        {
            "type": "conversation.item.input_audio_transcription.completed",
            "item_id": "u1",
            "content_index": 0,
            "transcript": "",
        }
    )

    assert delta == {"transcript": " "}
    assert item["formatted"]["transcript"] == " "


def test_manually_committed_audio_attaches_to_next_user_message(conversation):
    audio = np.array([9, 8, 7], dtype=np.int16)
    conversation.queue_input_audio(audio)

    conversation.process_event(created("a1"))
    assert conversation.get_item("a1")["formatted"]["audio"].size == 0

    item, _ = conversation.process_event(created("u1", role="user"))
    np.testing.assert_array_equal(item["formatted"]["audio"], audio)
    assert conversation.queued_input_audio is None


def test_truncation_clamps_audio_and_clears_transcript(conversation):
    conversation.process_event(created("a1"))
    conversation.process_event(
        {"type": "response.audio.delta", "item_id": "a1", "delta": pcm_b64(range(4_800))}
    )
    conversation.process_event(
        {"type": "response.audio_transcript.delta", "item_id": "a1", "delta": "long answer"}
    )

    item, _ = conversation.process_event(
        {"type": "conversation.item.truncated", "item_id": "a1", "content_index": 0, "audio_end_ms": 50}
    )
    assert item["formatted"]["audio"].size == 1_200
    assert item["formatted"]["transcript"] == ""

    item, _ = conversation.process_event(
        {"type": "conversation.item.truncated", "item_id": "a1", "content_index": 0, "audio_end_ms": 10_000}
    )
    assert item["formatted"]["audio"].size == 1_200


def test_deletion_removes_item_from_order_and_lookup(conversation):
    conversation.process_event(created("a1"))
    conversation.process_event(created("a2"))

    item, _ = conversation.process_event({"type": "conversation.item.deleted", "item_id": "a1"})

    assert item["id"] == "a1"
    assert [i["id"] for i in conversation.get_items()] == ["a2"]
    assert conversation.get_item("a1") is None


def test_duplicate_creation_keeps_existing_item(conversation):
    conversation.process_event(created("a1", content=[{"type": "text", "text": "first"}]))
    conversation.process_event({"type": "response.text.delta", "item_id": "a1", "delta": "!"})

    conversation.process_event(created("a1", content=[{"type": "text", "text": "second"}]))

    items = conversation.get_items()
    assert len(items) == 1
    assert items[0]["formatted"]["text"] == "first!"


def test_response_tracks_output_item_ids(conversation):
    conversation.process_event({"type": "response.created", "response": {"id": "r1", "output": []}})
    conversation.process_event(created("a1"))
    conversation.process_event(
        {"type": "response.output_item.added", "response_id": "r1", "item": {"id": "a1"}}
    )
    item, _ = conversation.process_event(
        {"type": "response.output_item.done", "response_id": "r1", "item": {"id": "a1", "status": "completed"}}
    )

    assert conversation.get_response("r1")["output"] == ["a1"]
    assert item["status"] == "completed"


@pytest.mark.parametrize(
    "event",
    [
        {"type": "response.text.delta", "item_id": "ghost", "delta": "x"},
        {"type": "response.audio.delta", "item_id": "ghost", "delta": pcm_b64([1])},
        {"type": "conversation.item.truncated", "item_id": "ghost", "audio_end_ms": 10},
        {"type": "conversation.item.deleted", "item_id": "ghost"},
        {"type": "response.output_item.done", "item": {"id": "ghost", "status": "completed"}},
        {"type": "response.output_item.added", "response_id": "nope", "item": {"id": "x"}},
        {"type": "rate_limits.updated", "rate_limits": []},
        {"type": "response.text.delta"},
        {"type": "conversation.item.created", "item": "not-a-dict"},
    ],
)
def test_unknown_or_malformed_events_leave_state_untouched(conversation, event):
    conversation.process_event(created("a1"))
    before = conversation.get_items()

    assert conversation.process_event(event) == (None, None)
    assert conversation.get_items()[0]["formatted"]["text"] == before[0]["formatted"]["text"]
    assert len(conversation.get_items()) == 1


def test_get_items_returns_copies(conversation):
    conversation.process_event(created("a1"))
    snapshot = conversation.get_items()
    snapshot[0]["status"] = "tampered"

    assert conversation.get_item("a1")["status"] == "in_progress"


def test_clear_resets_everything(conversation):
    conversation.process_event(created("a1"))
    conversation.queue_input_audio(np.array([1], dtype=np.int16))
    conversation.process_event(
        {"type": "input_audio_buffer.speech_started", "item_id": "u1", "audio_start_ms": 0}
    )

    conversation.clear()

    assert conversation.get_items() == []
    assert conversation.queued_speech_items == {}
    assert conversation.queued_input_audio is None


def test_repeated_creation_keeps_audio_and_leaves_queued_audio_for_next_turn(conversation):
    conversation.queue_input_audio(np.array([1, 1], dtype=np.int16))
    conversation.process_event(created("u1", role="user"))
    conversation.queue_input_audio(np.array([2, 2, 2], dtype=np.int16))

    item, _ = conversation.process_event(created("u1", role="user"))
    np.testing.assert_array_equal(item["formatted"]["audio"], np.array([1, 1], dtype=np.int16))

    next_item, _ = conversation.process_event(created("u2", role="user"))
    np.testing.assert_array_equal(
        next_item["formatted"]["audio"], np.array([2, 2, 2], dtype=np.int16)
    )


def test_repeated_creation_still_applies_pending_transcript(conversation):
    conversation.process_event(created("u1", role="user"))
    conversation.queued_transcript_items["u1"] = PendingTranscript("late words")

    item, _ = conversation.process_event(created("u1", role="user"))

    assert item["formatted"]["transcript"] == "late words"
