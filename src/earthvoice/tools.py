"""
Registry of client-executable tools offered to the realtime model.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from utils.ml_logging import get_logger

logger = get_logger("earthvoice.tools")


@dataclass(frozen=True)
class ToolCallContext:
    """Identifies the function call a handler is answering."""

    call_id: str
    name: str


# handler(arguments, context) -> JSON-serialisable value, or an awaitable of one
ToolHandler = Callable[[Dict[str, Any], ToolCallContext], Any]


@dataclass
class RegisteredTool:
    definition: Dict[str, Any]
    handler: ToolHandler


class ToolRegistry:
    """
    Name -> handler map. The tool list declared to the server is always
    generated from here, so a declared tool without a handler cannot exist.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, RegisteredTool] = {}

    def register(self, definition: Dict[str, Any], handler: ToolHandler) -> RegisteredTool:
        """
        Register (or replace) a tool.

        Raises:
            ValueError: If the definition has no name or the handler is not callable.
        """
        name = definition.get("name")
        if not name:
            raise ValueError("Tool definition must have a 'name'.")
        if not callable(handler):
            raise ValueError(f"Handler for tool '{name}' must be callable.")

        if name in self._tools:
            logger.info(f"Replacing registered tool '{name}'")
        normalized = {**definition, "type": "function"}
        tool = RegisteredTool(definition=normalized, handler=handler)
        self._tools[name] = tool
        return tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def clear(self) -> None:
        self._tools.clear()

    def get_handler(self, name: str) -> Optional[ToolHandler]:
        tool = self._tools.get(name)
        return tool.handler if tool else None

    def definitions(self) -> List[Dict[str, Any]]:
        return [dict(tool.definition) for tool in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
