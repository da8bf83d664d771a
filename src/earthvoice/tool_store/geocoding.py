"""
Place-name geocoding against OpenStreetMap Nominatim, with a small TTL cache.
"""

import math
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

from src.earthvoice import settings
from src.earthvoice.tool_store.context import FetchJson
from utils.ml_logging import get_logger

logger = get_logger("earthvoice.tool_store.geocoding")


class GeocodeCache:
    """Insertion-ordered cache; the oldest entry is evicted when full."""

    def __init__(
        self,
        max_size: int = settings.GEOCODE_CACHE_MAX_SIZE,
        ttl_seconds: float = settings.GEOCODE_CACHE_TTL_SECONDS,
    ) -> None:
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if time.monotonic() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return result

    def put(self, key: str, result: Dict[str, Any]) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (time.monotonic(), result)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_cache = GeocodeCache()


def _parse_float(value: Any) -> Optional[float]:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    return numeric if math.isfinite(numeric) else None


def parse_bounding_box(raw: Optional[List[Any]]) -> Optional[Dict[str, float]]:
    """Nominatim orders the box as [south, north, west, east]."""
    if not raw or len(raw) != 4:
        return None
    south, north, west, east = (_parse_float(v) for v in raw)
    if None in (south, north, west, east):
        return None
    return {"north": north, "south": south, "east": east, "west": west}


def parse_center(lat: Any, lon: Any) -> Optional[Dict[str, float]]:
    parsed_lat, parsed_lon = _parse_float(lat), _parse_float(lon)
    if parsed_lat is None or parsed_lon is None:
        return None
    return {"lat": parsed_lat, "lon": parsed_lon}


def pick_best_place(places: List[Dict[str, Any]], query: str) -> Optional[Dict[str, Any]]:
    """Highest-importance candidate that carries a usable bounding box."""
    candidates = []
    for place in places:
        box = parse_bounding_box(place.get("boundingbox"))
        if box is None:
            continue
        importance = place.get("importance")
        weight = importance if isinstance(importance, (int, float)) else 0
        candidates.append((weight, place, box))

    if not candidates:
        return None

    _, best, box = max(candidates, key=lambda c: c[0])
    return {
        "bounding_box": box,
        "display_name": best.get("display_name") or query,
        "center": parse_center(best.get("lat"), best.get("lon")),
        "source": "nominatim",
    }


async def lookup_bounding_box_for_place(
    query: str, fetch: FetchJson, cache: GeocodeCache = _cache
) -> Dict[str, Any]:
    """
    Resolve a place name to ``{bounding_box, display_name, center, source}``.

    Raises:
        ValueError: If the query is empty or no usable place is found.
    """
    if not isinstance(query, str) or not query.strip():
        raise ValueError("Place query must be a non-empty string.")

    key = query.strip().lower()
    cached = cache.get(key)
    if cached is not None:
        logger.debug(f"Geocoding cache hit for: {query}")
        return cached

    params = {
        "q": query,
        "format": "jsonv2",
        "limit": "3",
        "polygon_geojson": "0",
        "addressdetails": "0",
        "accept-language": "en",
    }
    if settings.NOMINATIM_CONTACT_EMAIL:
        params["email"] = settings.NOMINATIM_CONTACT_EMAIL

    payload = await fetch(settings.NOMINATIM_SEARCH_URL, params)
    if not isinstance(payload, list) or not payload:
        raise ValueError("No bounding box found for the requested location.")

    result = pick_best_place(payload, query)
    if result is None:
        raise ValueError("Bounding box data unavailable for the selected location.")

    cache.put(key, result)
    logger.info(f"Geocoded '{query}' to {result['display_name']}")
    return result
