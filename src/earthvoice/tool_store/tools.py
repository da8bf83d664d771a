from functools import partial
from typing import List, Optional

from src.earthvoice.client import RealtimeClient
from src.earthvoice.tool_store.context import ToolExecutionContext
from src.earthvoice.tool_store.map_tools import (
    fly_to_place_def,
    fly_to_place_handler,
    lookup_bounding_box_def,
    lookup_bounding_box_handler,
    map_fly_to_def,
    map_fly_to_handler,
)
from src.earthvoice.tool_store.weather import (
    get_last_rain_def,
    get_last_rain_handler,
    get_weather_def,
    get_weather_handler,
)

# -----------------------------------------------------------
# Tools List
# -----------------------------------------------------------

tools = [
    (fly_to_place_def, fly_to_place_handler),
    (lookup_bounding_box_def, lookup_bounding_box_handler),
    (get_weather_def, get_weather_handler),
    (get_last_rain_def, get_last_rain_handler),
    (map_fly_to_def, map_fly_to_handler),
]


def register_earth_tools(
    client: RealtimeClient, context: Optional[ToolExecutionContext] = None
) -> List[str]:
    """
    Register every Earth tool on ``client``, bound to ``context``.

    Returns:
        List[str]: Names of the registered tools.
    """
    context = context or ToolExecutionContext()
    for definition, handler in tools:
        client.add_tool(definition, partial(handler, context=context))
    return [definition["name"] for definition, _ in tools]
