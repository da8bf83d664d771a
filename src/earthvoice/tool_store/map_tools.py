"""
Map navigation tools: geocode-and-fly, bounding box lookup, fly to coordinates.
"""

from typing import Any, Dict

from src.earthvoice.tool_store.context import ToolExecutionContext, ensure_number, require_text
from src.earthvoice.tool_store.geocoding import lookup_bounding_box_for_place
from src.earthvoice.tools import ToolCallContext

fly_to_place_def = {
    "name": "fly_to_place",
    "description": (
        "FASTEST way to navigate the map to a location. Instantly geocodes place name "
        "and flies map there. Use this for all navigation requests."
    ),
    "parameters": {
        "type": "object",
        "required": ["place"],
        "properties": {
            "place": {
                "type": "string",
                "description": 'City, region, or country name (e.g., "Tokyo", "California", "Brazil").',
            }
        },
        "additionalProperties": False,
    },
}

lookup_bounding_box_def = {
    "name": "lookup_bounding_box",
    "description": (
        "Resolves a place name to a geographic bounding box using OpenStreetMap Nominatim. "
        "For navigation, use fly_to_place instead."
    ),
    "parameters": {
        "type": "object",
        "required": ["place"],
        "properties": {
            "place": {
                "type": "string",
                "description": 'City, region, or country name to geocode (e.g., "Lisbon", "Peru").',
            }
        },
        "additionalProperties": False,
    },
}

map_fly_to_def = {
    "name": "map_fly_to",
    "description": "Centers the geospatial map on the provided coordinates.",
    "parameters": {
        "type": "object",
        "properties": {
            "lat": {"type": "number", "description": "Latitude"},
            "lng": {"type": "number", "description": "Longitude"},
            "location": {"type": "string", "description": "Optional label for the map marker"},
        },
        "required": ["lat", "lng"],
        "additionalProperties": False,
    },
}


async def fly_to_place_handler(
    args: Dict[str, Any], call: ToolCallContext, context: ToolExecutionContext
) -> Dict[str, Any]:
    place = require_text(args, "place")
    result = await lookup_bounding_box_for_place(place, context.fetch_json)
    center = result["center"]

    if center:
        await context.move_map(center["lat"], center["lon"])
        await context.update_marker(
            lat=center["lat"], lng=center["lon"], location=result["display_name"]
        )

    return {
        "success": True,
        "location": result["display_name"],
        "latitude": center["lat"] if center else None,
        "longitude": center["lon"] if center else None,
        "bounding_box": result["bounding_box"],
    }


async def lookup_bounding_box_handler(
    args: Dict[str, Any], call: ToolCallContext, context: ToolExecutionContext
) -> Dict[str, Any]:
    place = require_text(args, "place")
    return dict(await lookup_bounding_box_for_place(place, context.fetch_json))


async def map_fly_to_handler(
    args: Dict[str, Any], call: ToolCallContext, context: ToolExecutionContext
) -> Dict[str, Any]:
    latitude = ensure_number(args.get("lat"), "lat")
    longitude = ensure_number(args.get("lng"), "lng")
    location = args.get("location") if isinstance(args.get("location"), str) else None

    await context.move_map(latitude, longitude)
    await context.update_marker(
        lat=latitude,
        lng=longitude,
        location=location.strip() if location and location.strip() else None,
    )
    return {"latitude": latitude, "longitude": longitude, "location": location}
