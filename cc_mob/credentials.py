"""
Shared-secret management for cc-mob.

Handles the single AUTH_TOKEN: loading it from the key=value store in the
config directory, generating it on first run, and rotating it.
"""

import hmac
import os
import secrets
import threading
from pathlib import Path
from typing import MutableMapping, Optional

from dotenv import dotenv_values, set_key

from .errors import CredentialStoreError


TOKEN_KEY = "AUTH_TOKEN"
TOKEN_BYTES = 24  # rendered as 48 hex chars


def generate_token() -> str:
    """Generate a fresh random token."""
    return secrets.token_hex(TOKEN_BYTES)


class CredentialManager:
    """Owns the current auth token and its persisted copy."""

    def __init__(self, env_path: Path, environ: Optional[MutableMapping[str, str]] = None):
        self.env_path = Path(env_path)
        self._environ = os.environ if environ is None else environ
        self._lock = threading.Lock()
        self._token: Optional[str] = None
        self.generation = 0

    def load(self) -> str:
        """Load the token, generating and persisting one on first run.

        Values already present in the environment are never overwritten by the
        file, so an operator can pin AUTH_TOKEN explicitly.
        """
        try:
            self.env_path.parent.mkdir(parents=True, exist_ok=True)
            if self.env_path.exists():
                for key, value in dotenv_values(self.env_path).items():
                    if value is not None and not self._environ.get(key):
                        self._environ[key] = value
        except OSError as e:
            raise CredentialStoreError(f"Cannot read token store {self.env_path}: {e}") from e

        token = (self._environ.get(TOKEN_KEY) or "").strip()
        if not token:
            token = generate_token()
            self._persist(token)
            self._environ[TOKEN_KEY] = token
            print(f"[Auth] Generated new auth token in {self.env_path}")

        with self._lock:
            self._token = token
        return token

    def current_token(self) -> str:
        """Return the current token, loading it on first use."""
        if self._token is None:
            return self.load()
        return self._token

    def rotate(self) -> str:
        """Replace the token in memory and on disk. Returns the new token.

        Callers must close anything that authenticated with the old token.
        """
        new_token = generate_token()
        with self._lock:
            self._persist(new_token)
            self._environ[TOKEN_KEY] = new_token
            self._token = new_token
            self.generation += 1
        print(f"[Auth] Token rotated (generation {self.generation})")
        return new_token

    def matches(self, candidate: Optional[str]) -> bool:
        """Constant-time check of a presented token against the current one."""
        if not candidate:
            return False
        return hmac.compare_digest(candidate.encode(), self.current_token().encode())

    def _persist(self, token: str) -> None:
        try:
            self.env_path.parent.mkdir(parents=True, exist_ok=True)
            set_key(str(self.env_path), TOKEN_KEY, token, quote_mode="never")
            os.chmod(self.env_path, 0o600)
        except OSError as e:
            raise CredentialStoreError(f"Cannot write token store {self.env_path}: {e}") from e
