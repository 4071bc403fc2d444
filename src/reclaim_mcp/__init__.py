"""Reclaim.ai MCP server: local-time resolution and chunked-duration normalization for Reclaim tasks."""

__version__ = "0.3.0"
