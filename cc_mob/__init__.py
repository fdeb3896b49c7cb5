"""
cc-mob: ask the human on their phone.

Local relay server that lets a coding agent pause, ask a human a question or
for a permission decision through a phone browser, and resume once the human
answers.

Public API:
- create_app: Build the FastAPI gateway for a given Settings
- Settings: Explicit runtime configuration
- CredentialManager: Shared-secret storage and rotation
- RequestRegistry: In-memory table of outstanding requests
"""

from .config import Settings
from .credentials import CredentialManager
from .registry import RequestRegistry

__version__ = "0.1.0"


def create_app(settings=None, credentials=None):
    """Build the gateway application. Imported lazily so the MCP adapter never loads the server."""
    from .server.app import create_app as _create_app
    return _create_app(settings, credentials)


__all__ = [
    "Settings",
    "CredentialManager",
    "RequestRegistry",
    "create_app",
    "__version__",
]
