from .context import ToolExecutionContext
from .tools import register_earth_tools, tools

__all__ = ["ToolExecutionContext", "register_earth_tools", "tools"]
