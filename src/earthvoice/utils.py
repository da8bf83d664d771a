"""
Utility functions for audio and base64 conversion.
"""

import base64
import uuid
from typing import Union

import numpy as np

from utils.ml_logging import get_logger

logger = get_logger("earthvoice.utils")

AudioLike = Union[np.ndarray, bytes, bytearray, memoryview]


def float_to_16bit_pcm(float32_array: np.ndarray) -> np.ndarray:
    """
    Convert a float32 numpy array to int16 PCM format.

    Args:
        float32_array (np.ndarray): Input array of dtype float32.

    Returns:
        np.ndarray: Output array of dtype int16.
    """
    if float32_array.dtype != np.float32:
        logger.warning("Input array is not float32, attempting conversion.")
        float32_array = float32_array.astype(np.float32)

    int16_array = np.clip(float32_array, -1, 1) * 32767
    return int16_array.astype(np.int16)


def to_int16_array(audio: AudioLike) -> np.ndarray:
    """
    Coerce raw PCM16 bytes or a numpy array into an int16 array.

    Float arrays are treated as [-1, 1] amplitudes and scaled. A trailing odd
    byte in a raw buffer cannot form a sample and is dropped.
    """
    if isinstance(audio, np.ndarray):
        if audio.dtype == np.int16:
            return audio
        if np.issubdtype(audio.dtype, np.floating):
            return float_to_16bit_pcm(audio)
        return audio.astype(np.int16)

    raw = bytes(audio)
    if len(raw) % 2:
        logger.debug(f"Dropping trailing byte from {len(raw)}-byte PCM16 buffer.")
        raw = raw[:-1]
    return np.frombuffer(raw, dtype=np.int16)


def base64_to_array_buffer(base64_string: str) -> np.ndarray:
    """
    Decode a base64 string of little-endian PCM16 into an int16 array.

    Args:
        base64_string (str): Base64-encoded input string.

    Returns:
        np.ndarray: Decoded samples as an int16 numpy array.
    """
    try:
        binary_data = base64.b64decode(base64_string)
    except Exception as e:
        logger.error(f"Failed to decode base64 string: {e}")
        raise
    return to_int16_array(binary_data)


def array_buffer_to_base64(array_buffer: AudioLike) -> str:
    """
    Encode PCM16 samples into a base64 string.

    Args:
        array_buffer (AudioLike): Int16 or float32 array, or raw PCM16 bytes.

    Returns:
        str: Base64-encoded string.
    """
    try:
        array_bytes = to_int16_array(array_buffer).tobytes()
        return base64.b64encode(array_bytes).decode("utf-8")
    except Exception as e:
        logger.error(f"Failed to encode array buffer: {e}")
        raise


def merge_int16_arrays(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """
    Merge two int16 numpy arrays into a newly allocated array.

    Args:
        left (np.ndarray): First array (must be int16).
        right (np.ndarray): Second array (must be int16).

    Returns:
        np.ndarray: Concatenated int16 array.

    Raises:
        ValueError: If input arrays are not both int16.
    """
    if left.dtype != np.int16 or right.dtype != np.int16:
        logger.error("Attempted to merge arrays that are not int16.")
        raise ValueError("Both arrays must have dtype int16.")
    return np.concatenate((left, right))


def empty_audio() -> np.ndarray:
    return np.zeros(0, dtype=np.int16)


def ms_to_samples(milliseconds: float, sample_rate: int) -> int:
    return int((milliseconds * sample_rate) // 1000)


def generate_event_id(prefix: str = "evt_") -> str:
    """Return a locally unique event id such as ``evt_3f2a...`` (24 hex chars)."""
    return f"{prefix}{uuid.uuid4().hex[:24]}"


def frame_to_text(data) -> str:
    """
    Normalise a raw socket payload into a UTF-8 string.

    Text frames arrive as ``str``; binary frames as ``bytes``. Anything else
    exposing the buffer protocol (bytearray, memoryview, numpy arrays) is
    decoded the same way.
    """
    if isinstance(data, str):
        return data
    if isinstance(data, np.ndarray):
        return data.tobytes().decode("utf-8")
    return bytes(data).decode("utf-8")
