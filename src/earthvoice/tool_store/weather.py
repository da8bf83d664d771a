"""
Weather tools backed by the Open-Meteo forecast and archive APIs.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from src.earthvoice import settings
from src.earthvoice.tool_store.context import ToolExecutionContext, ensure_number
from src.earthvoice.tools import ToolCallContext

RAIN_LOOKBACK_DAYS = 30
RAIN_STALE_AFTER_DAYS = 10

get_weather_def = {
    "name": "get_weather",
    "description": (
        "Retrieves current temperature and wind speed for the given coordinates. "
        "Provide a descriptive label for the location."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "lat": {"type": "number", "description": "Latitude"},
            "lng": {"type": "number", "description": "Longitude"},
            "location": {"type": "string", "description": "Label for the location"},
        },
        "required": ["lat", "lng", "location"],
        "additionalProperties": False,
    },
}

get_last_rain_def = {
    "name": "get_last_rain",
    "description": (
        "Returns the number of days since measurable rain occurred at the provided "
        "coordinates. Responds with -1 when it has been more than 10 days."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "lat": {"type": "number", "description": "Latitude"},
            "lng": {"type": "number", "description": "Longitude"},
        },
        "required": ["lat", "lng"],
        "additionalProperties": False,
    },
}


def _reading(payload: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = (payload.get("current") or {}).get(key)
    units = (payload.get("current_units") or {}).get(key)
    if isinstance(value, (int, float)) and isinstance(units, str):
        return {"value": value, "units": units}
    return None


def days_since_rain(precipitation: List[Any], days: List[str], today: date) -> int:
    """
    Days since the most recent day with precipitation above zero.

    Returns -1 when no rain is found or the last rain is older than
    ``RAIN_STALE_AFTER_DAYS``.
    """
    for amount, day in zip(reversed(precipitation), reversed(days)):
        try:
            value = float(amount)
        except (TypeError, ValueError):
            continue
        if value > 0:
            elapsed = (today - date.fromisoformat(day)).days
            return -1 if elapsed > RAIN_STALE_AFTER_DAYS else elapsed
    return -1


async def get_weather_handler(
    args: Dict[str, Any], call: ToolCallContext, context: ToolExecutionContext
) -> Dict[str, Any]:
    latitude = ensure_number(args.get("lat"), "lat")
    longitude = ensure_number(args.get("lng"), "lng")
    location = args.get("location")
    label = location.strip() if isinstance(location, str) and location.strip() else "Selected location"

    await context.update_marker(lat=latitude, lng=longitude, location=label)
    await context.move_map(latitude, longitude)

    payload = await context.fetch_json(
        settings.OPEN_METEO_FORECAST_URL,
        {
            "latitude": latitude,
            "longitude": longitude,
            "current": "temperature_2m,wind_speed_10m",
        },
    )
    temperature = _reading(payload, "temperature_2m")
    wind_speed = _reading(payload, "wind_speed_10m")

    await context.update_marker(
        lat=latitude, lng=longitude, location=label, temperature=temperature, wind_speed=wind_speed
    )
    return {
        "latitude": latitude,
        "longitude": longitude,
        "location": label,
        "temperature": temperature,
        "wind_speed": wind_speed,
    }


async def get_last_rain_handler(
    args: Dict[str, Any], call: ToolCallContext, context: ToolExecutionContext
) -> Dict[str, Any]:
    latitude = ensure_number(args.get("lat"), "lat")
    longitude = ensure_number(args.get("lng"), "lng")
    await context.move_map(latitude, longitude)

    today = date.today()
    payload = await context.fetch_json(
        settings.OPEN_METEO_ARCHIVE_URL,
        {
            "latitude": latitude,
            "longitude": longitude,
            "start_date": (today - timedelta(days=RAIN_LOOKBACK_DAYS)).isoformat(),
            "end_date": today.isoformat(),
            "daily": "precipitation_sum",
        },
    )
    daily = payload.get("daily") or {}
    elapsed = days_since_rain(
        daily.get("precipitation_sum") or [], daily.get("time") or [], today
    )

    await context.update_marker(lat=latitude, lng=longitude, days_since_rain=elapsed)
    return {"latitude": latitude, "longitude": longitude, "days_since_rain": elapsed}
