"""Logseq MCP server that turns a block into a page."""

__version__ = "0.1.0"
