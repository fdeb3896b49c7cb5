"""
cc-mob MCP Server Package.

Exposes `ask_user` so a coding agent can put a question on the human's
phone and block until it is answered. Talks to a running cc-mob server
over HTTP only.

Usage:
    Add to .mcp.json in your project:
        {
            "mcpServers": {
                "cc-mob": {
                    "command": "cc-mob-mcp",
                    "env": {"CC_MOB_URL": "http://127.0.0.1:3456"}
                }
            }
        }

The token is read from AUTH_TOKEN or from ~/.cc-mob/.env, which the server
creates on first run.
"""

import sys

from . import state

# Import MCP app instance
from .mcp_app import mcp

# Import all tools to register them with the MCP app
from . import tools


def main():
    """Run the MCP server."""
    # stdout is the MCP transport; everything human-readable goes to stderr
    print("[MCP] cc-mob MCP starting...", file=sys.stderr)
    print(f"[MCP] Server: {state.SERVER_URL}", file=sys.stderr)
    if not state.load_token():
        print(f"[MCP] No token found in AUTH_TOKEN or {state.TOKEN_PATH}; start cc-mob first", file=sys.stderr)
    mcp.run()


__all__ = ["mcp", "main"]
