"""
Session configuration defaults and YAML overrides for the realtime client.
"""

import copy
from typing import Any, Dict, Optional

import yaml

from src.earthvoice import settings
from utils.ml_logging import get_logger

logger = get_logger("earthvoice.session")

DEFAULT_SESSION_CONFIG: Dict[str, Any] = {
    "modalities": ["text", "audio"],
    "instructions": "",
    "voice": settings.REALTIME_VOICE,
    "input_audio_format": "pcm16",
    "output_audio_format": "pcm16",
    "input_audio_transcription": None,
    "turn_detection": None,
    "tools": [],
    "tool_choice": "auto",
    "temperature": 0.8,
    "max_response_output_tokens": 4096,
}

# Keys whose dict values are merged key-wise instead of replaced.
_NESTED_KEYS = ("turn_detection", "input_audio_transcription")


def default_session_config() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_SESSION_CONFIG)


def merge_session_config(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return ``base`` updated with ``overrides``.

    ``turn_detection`` and ``input_audio_transcription`` are merged key-wise
    when both sides are dicts; an explicit ``None`` disables them.
    """
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if key in _NESTED_KEYS and isinstance(current, dict) and isinstance(value, dict):
            nested = dict(current)
            nested.update(value)
            merged[key] = nested
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_session_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load session defaults, applying overrides from a YAML file when given.

    Unreadable or malformed files are logged and ignored so a bad override
    never prevents a voice session from starting.
    """
    config = default_session_config()
    path = path or settings.REALTIME_SESSION_CONFIG
    if not path:
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            config_from_yaml = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading session config from {path}: {e}")
        return config

    if not isinstance(config_from_yaml, dict):
        logger.warning(f"Session config YAML is not a dict, ignoring: {path}")
        return config

    logger.info(f"Loading session config from {path}")
    return merge_session_config(config, config_from_yaml)
