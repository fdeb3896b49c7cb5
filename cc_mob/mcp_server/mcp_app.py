"""
MCP Application instance for cc-mob.

This module creates the FastMCP application instance that all tools register with.
"""

from mcp.server.fastmcp import FastMCP

# Create the MCP app instance
mcp = FastMCP("cc-mob")
