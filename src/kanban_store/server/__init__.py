"""Boundary adapter and MCP surface."""
