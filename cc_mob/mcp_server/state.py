"""
Global state for the cc-mob MCP adapter.

The adapter shares the config directory with the server, so it can always
find the current token even after a rotation.
"""

import os
from typing import Optional

from dotenv import dotenv_values

from ..config import Settings
from ..credentials import TOKEN_KEY


_settings = Settings.from_env()

# Gateway base URL
SERVER_URL = (os.environ.get("CC_MOB_URL") or f"http://127.0.0.1:{_settings.port}").rstrip("/")

# Token file written by the server
TOKEN_PATH = _settings.env_path

# Authentication state
AUTH_TOKEN: Optional[str] = None

# Timeouts (seconds)
REQUEST_TIMEOUT = 10
try:
    ASK_TIMEOUT = float(os.environ.get("CC_MOB_ASK_TIMEOUT") or 300)
except ValueError:
    ASK_TIMEOUT = 300.0


def read_stored_token() -> Optional[str]:
    """Read AUTH_TOKEN from the server's token file, if present."""
    if not TOKEN_PATH.exists():
        return None
    return dotenv_values(TOKEN_PATH).get(TOKEN_KEY) or None


def load_token(from_store: bool = False) -> Optional[str]:
    """Resolve the token: environment first, then the token file.

    With from_store the environment is skipped, used after a 401 when the
    server has rotated the token behind an older environment value.
    """
    global AUTH_TOKEN
    token = None
    if not from_store:
        token = os.environ.get(TOKEN_KEY) or None
    if token is None:
        token = read_stored_token()
    AUTH_TOKEN = token
    return token
