"""
Execution context shared by the Earth tool handlers.
"""

import inspect
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from src.earthvoice.tool_store.http import fetch_json

MapCallback = Callable[[Dict[str, Any]], Any]
FetchJson = Callable[[str, Dict[str, Any]], Awaitable[Any]]


@dataclass
class ToolExecutionContext:
    """
    Hooks into the surrounding application.

    :param on_map_position_change: Called with ``{"lat", "lng"}`` to recenter the map.
    :param on_marker_update: Called with partial marker details (location, readings).
    :param fetch_json: Coroutine ``(url, params) -> payload`` used for HTTP lookups.
    """

    on_map_position_change: Optional[MapCallback] = None
    on_marker_update: Optional[MapCallback] = None
    fetch_json: FetchJson = field(default=fetch_json)

    async def move_map(self, lat: float, lng: float) -> None:
        await _notify(self.on_map_position_change, {"lat": lat, "lng": lng})

    async def update_marker(self, **details: Any) -> None:
        await _notify(self.on_marker_update, details)


async def _notify(callback: Optional[MapCallback], payload: Dict[str, Any]) -> None:
    if callback is None:
        return
    result = callback(payload)
    if inspect.isawaitable(result):
        await result


def ensure_number(value: Any, label: str) -> float:
    """Coerce ``value`` to a finite float or raise ValueError naming ``label``."""
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {label} value: {value}") from None
    if not math.isfinite(numeric):
        raise ValueError(f"Invalid {label} value: {value}")
    return numeric


def require_text(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValueError(f'The "{key}" parameter must be a non-empty string.')
    return text
