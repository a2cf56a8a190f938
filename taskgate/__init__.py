"""Task gateway exposing a task repository to AI agents over MCP."""

__version__ = "0.1.0"
