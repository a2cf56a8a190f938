"""Model Context Protocol gateway for taskgate."""

from .executor import ToolExecutor
from .gatekeeper import GateRejection, Gatekeeper
from .server import DispatchResult, MCPError, MCPGateway
from .tools import CATEGORIES, TOOLS, ToolNotFoundError, ToolSpec, list_tool_summaries

__all__ = [
    "CATEGORIES",
    "DispatchResult",
    "GateRejection",
    "Gatekeeper",
    "MCPError",
    "MCPGateway",
    "TOOLS",
    "ToolExecutor",
    "ToolNotFoundError",
    "ToolSpec",
    "list_tool_summaries",
]
