"""
HTTP and websocket gateway for cc-mob.

Modules:
- app: FastAPI app factory and uvicorn runner
- auth: Token, header and session-cookie checks
- limits: Rate limiting and body size dependencies
- errors: Uniform `{"error": ...}` responses
- routes/: Route handlers organized by domain
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
