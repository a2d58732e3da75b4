"""MCP server exposing a random programming joke tool over HTTP+SSE."""

__version__ = "1.0.0"
