"""
HTTP client the MCP adapter uses to reach the cc-mob gateway.

Every call carries the shared token in `x-auth-token`. A 401 usually means
the server rotated its token, so the token file is re-read once and the
call replayed with the new value.
"""

import sys
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import state


_session: Optional[requests.Session] = None


def create_session() -> requests.Session:
    """Session that retries idempotent calls when the gateway hiccups (5xx)."""
    session = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=[500, 502, 503, 504],
        # A create must never be replayed
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    for prefix in ("http://", "https://"):
        session.mount(prefix, adapter)
    return session


def get_session() -> requests.Session:
    global _session
    if _session is None:
        _session = create_session()
    return _session


def reset_session():
    """Drop the pooled session so the next call opens fresh connections."""
    global _session
    _session = None


def _auth_headers(token: Optional[str]) -> dict:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["x-auth-token"] = token
    return headers


def api_request(method: str, endpoint: str, **kwargs) -> dict:
    """Call the gateway and return the decoded JSON body.

    Raises requests exceptions for transport failures and error statuses.
    """
    url = f"{state.SERVER_URL}/{endpoint.lstrip('/')}"
    token = state.AUTH_TOKEN or state.load_token()
    headers = {**kwargs.pop("headers", {}), **_auth_headers(token)}
    kwargs.setdefault("timeout", state.REQUEST_TIMEOUT)

    response = get_session().request(method, url, headers=headers, **kwargs)

    if response.status_code == 401:
        fresh = state.load_token(from_store=True)
        if fresh and fresh != token:
            print("[MCP] Token rejected, retrying with the stored token", file=sys.stderr)
            reset_session()
            headers.update(_auth_headers(fresh))
            response = get_session().request(method, url, headers=headers, **kwargs)

    response.raise_for_status()
    if not response.content:
        return {}
    return response.json()


def api_get(endpoint: str, **kwargs) -> dict:
    return api_request("GET", endpoint, **kwargs)


def api_post(endpoint: str, data: dict = None, **kwargs) -> dict:
    return api_request("POST", endpoint, json=data, **kwargs)
