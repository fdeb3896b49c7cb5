"""
MCP Tools for cc-mob.
"""

# Import all tool modules to register them with the MCP app
from . import ask

__all__ = ["ask"]
