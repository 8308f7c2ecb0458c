"""ServiceNow MCP Server - incident management for AI assistants."""

__version__ = "1.0.0"
