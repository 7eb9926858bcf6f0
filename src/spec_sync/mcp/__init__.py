"""MCP management surface."""
