"""TickTick MCP Server: TickTick projects and tasks as MCP tools and resources."""

__version__ = "1.0.0"
